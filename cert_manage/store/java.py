# -*- coding: utf-8 -*-

"""
Java 密钥库 (cacerts) 证书存储，通过 keytool 读取和删除证书
"""

import re
import shutil
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from cryptography import x509

from ..backup import BackupDirectory
from ..certs import dedupe_by_fingerprint, fingerprint, parse_pem_certificates
from ..command import Deadline, run_command
from ..config import JAVA_KEYSTORE_CANDIDATES, StoreConfig
from ..errors import UnsupportedStore
from ..log import logger
from ..whitelist import WhitelistItem, keep

ALIAS_PATTERN = re.compile(r'^Alias name:\s*(.+?)\s*$', re.MULTILINE)


def parse_keytool_listing(output: str) -> List[Tuple[str, x509.Certificate]]:
    """解析 `keytool -list -rfc` 的输出，返回 (别名, 证书) 列表"""
    entries = []
    matches = list(ALIAS_PATTERN.finditer(output))
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(output)
        certs = parse_pem_certificates(output[match.end():end])
        if not certs:
            logger.warning(f"别名 {match.group(1)} 没有可解析的证书")
            continue
        entries.append((match.group(1), certs[0]))
    return entries


class JavaStore:
    """Java 运行时的 cacerts 密钥库"""

    name = "java"
    backup_suffix = ".keystore"

    def __init__(self, config: Optional[StoreConfig] = None) -> None:
        self.config = config or StoreConfig()
        self.backups = BackupDirectory(self.config.backup_dir(self.name), self.backup_suffix)

    def keystore_path(self) -> Path:
        """找到 cacerts 密钥库的位置"""
        if self.config.java_keystore is not None:
            return Path(self.config.java_keystore)
        if self.config.java_home is None:
            raise UnsupportedStore("没有设置 JAVA_HOME，也没有指定密钥库")
        for candidate in JAVA_KEYSTORE_CANDIDATES:
            path = Path(self.config.java_home) / candidate
            if path.exists():
                return path
        raise UnsupportedStore(f"在 {self.config.java_home} 下找不到 cacerts 密钥库")

    def _keytool(self, args: List[str], deadline: Deadline, privileged: bool = False) -> str:
        command = [self.config.keytool_path] + args + [
            "-keystore", self.keystore_path().as_posix(),
            "-storepass", self.config.keystore_password,
        ]
        if privileged and self.config.use_sudo:
            command = ["sudo"] + command
        return run_command(command, verbose=self.config.debug_enabled, timeout=deadline.remaining())

    def entries(self, timeout: Optional[float] = None) -> List[Tuple[str, x509.Certificate]]:
        return self._entries(Deadline(timeout))

    def _entries(self, deadline: Deadline) -> List[Tuple[str, x509.Certificate]]:
        return parse_keytool_listing(self._keytool(["-list", "-rfc"], deadline))

    def list(self, timeout: Optional[float] = None) -> List[x509.Certificate]:
        """返回密钥库中的证书，按指纹去重"""
        return dedupe_by_fingerprint(cert for _, cert in self.entries(timeout))

    def backup(self, timeout: Optional[float] = None) -> Path:
        """复制当前的密钥库"""
        with self.backups.lock():
            return self.backups.save(self.keystore_path())

    def remove(self, whitelist: Sequence[WhitelistItem], timeout: Optional[float] = None) -> None:
        """从密钥库中删除白名单以外的证书"""
        deadline = Deadline(timeout)
        with self.backups.lock():
            entries = self._entries(deadline)
            kept = {fingerprint(cert) for cert in keep([cert for _, cert in entries], whitelist)}

            removed = 0
            for alias, cert in entries:
                if fingerprint(cert) in kept:
                    continue
                logger.debug(f"删除证书: {alias}")
                self._keytool(["-delete", "-noprompt", "-alias", alias], deadline, privileged=True)
                removed += 1
            logger.info(f"保留 {len(entries) - removed} 个证书，删除了 {removed} 个证书")

    def restore(self, path: Optional[Union[str, Path]] = None, timeout: Optional[float] = None) -> None:
        """用备份覆盖密钥库，未指定文件时使用最新的备份"""
        deadline = Deadline(timeout)
        with self.backups.lock():
            where = self.backups.resolve(path)
            keystore = self.keystore_path()
            logger.info(f"从 {where} 恢复密钥库 {keystore}")
            if self.config.use_sudo:
                run_command(["sudo", "cp", where.as_posix(), keystore.as_posix()],
                            verbose=self.config.debug_enabled, timeout=deadline.remaining())
            else:
                shutil.copyfile(where, keystore)
