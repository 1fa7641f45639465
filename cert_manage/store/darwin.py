# -*- coding: utf-8 -*-

"""
macOS (darwin) 证书存储

通过 `security` 命令行工具读取和修改各个钥匙串中证书的信任设置。
用户的 login 钥匙串被忽略，因为其中的证书通常由用户自己（或用户信任的应用）管理。

每个操作的 timeout 是整个操作的截止时间，操作中的各个命令共享剩余的时间。

https://developer.apple.com/legacy/library/documentation/Darwin/Reference/ManPages/man1/security.1.html
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Union

from cryptography import x509

from ..backup import BackupDirectory, scoped_temp_file
from ..certs import dedupe_by_signature, parse_pem_certificates
from ..command import Deadline, run_command
from ..config import StoreConfig
from ..log import logger
from ..plist import TrustPolicySnapshot, TrustRecord, parse_snapshot, serialize_snapshot
from ..whitelist import WhitelistItem, keep


class DarwinStore:
    """macOS 钥匙串的信任设置"""

    name = "darwin"
    backup_suffix = ".xml"

    def __init__(self, config: Optional[StoreConfig] = None) -> None:
        self.config = config or StoreConfig()
        self.backups = BackupDirectory(self.config.backup_dir(self.name), self.backup_suffix)

    def _security(self, args: List[str], deadline: Deadline, privileged: bool = False) -> str:
        command = [self.config.security_path] + args
        if privileged and self.config.use_sudo:
            command = ["sudo"] + command
        return run_command(command, verbose=self.config.debug_enabled, timeout=deadline.remaining())

    def list(self, timeout: Optional[float] = None) -> List[x509.Certificate]:
        """返回系统钥匙串中带有信任设置的证书"""
        return self._list(Deadline(timeout))

    def _list(self, deadline: Deadline) -> List[x509.Certificate]:
        installed = self._read_installed_certs(deadline)
        snapshot = self._export_snapshot(deadline)

        logger.debug(f"{len(installed)} 个已安装证书, {len(snapshot)} 个带信任策略")

        kept = []
        for cert in installed:
            if cert is None:
                continue
            if snapshot.contains(cert):
                kept.append(cert)
        return kept

    def read_installed_certs(self, timeout: Optional[float] = None) -> List[x509.Certificate]:
        """读取已安装的证书（不包含信任状态），按签名去重"""
        return self._read_installed_certs(Deadline(timeout))

    def _read_installed_certs(self, deadline: Deadline) -> List[x509.Certificate]:
        output = self._security(["find-certificate", "-a", "-p"] + list(self.config.system_keychains), deadline)
        return dedupe_by_signature(parse_pem_certificates(output))

    def export_snapshot(self, timeout: Optional[float] = None) -> TrustPolicySnapshot:
        """导出并解析当前的信任设置"""
        return self._export_snapshot(Deadline(timeout))

    def _export_snapshot(self, deadline: Deadline) -> TrustPolicySnapshot:
        with scoped_temp_file("trust-settings") as tmp:
            self._export_to(tmp, deadline)
            return parse_snapshot(tmp.read_bytes())

    def _export_to(self, path: Path, deadline: Deadline) -> None:
        self._security(["trust-settings-export", "-d", path.as_posix()], deadline)

    def backup(self, timeout: Optional[float] = None) -> Path:
        """保存当前信任策略的副本"""
        deadline = Deadline(timeout)
        with self.backups.lock():
            with scoped_temp_file("trust-settings") as tmp:
                self._export_to(tmp, deadline)
                return self.backups.save(tmp)

    def remove(self, whitelist: Sequence[WhitelistItem], timeout: Optional[float] = None) -> None:
        """只保留白名单中证书的信任设置"""
        deadline = Deadline(timeout)
        with self.backups.lock():
            certs = self._list(deadline)
            kept = keep(certs, whitelist)
            logger.info(f"保留 {len(kept)} 个证书，移除 {len(certs) - len(kept)} 个证书的信任")

            now = datetime.now(timezone.utc)
            snapshot = TrustPolicySnapshot(TrustRecord.from_certificate(cert, now) for cert in kept)

            with scoped_temp_file("cert-manage", ".xml") as tmp:
                tmp.write_bytes(serialize_snapshot(snapshot))
                self._import(tmp, deadline)

    def restore(self, path: Optional[Union[str, Path]] = None, timeout: Optional[float] = None) -> None:
        """从备份恢复信任设置，未指定文件时使用最新的备份

        文件内容不做校验，由 security 工具决定是否有效。
        """
        deadline = Deadline(timeout)
        with self.backups.lock():
            where = self.backups.resolve(path)
            logger.info(f"从 {where} 恢复信任设置")
            self._import(where, deadline)

    def _import(self, path: Path, deadline: Deadline) -> None:
        self._security(["trust-settings-import", "-d", path.as_posix()], deadline, privileged=True)
