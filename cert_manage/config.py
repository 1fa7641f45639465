# -*- coding: utf-8 -*-

"""
证书信任存储管理的主要配置和设置
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

# macOS 系统钥匙串 (不包含用户的 login 钥匙串)
SYSTEM_KEYCHAINS = (
    "/System/Library/Keychains/SystemRootCertificates.keychain",
    "/Library/Keychains/System.keychain",
)

# 用户钥匙串由用户自己管理，不属于系统信任策略
USER_KEYCHAINS = (
    "Library/Keychains/login.keychain",
    "Library/Keychains/login.keychain-db",
)

SECURITY_BIN = "/usr/bin/security"
KEYTOOL_BIN = "keytool"

# Java cacerts 相对于 JAVA_HOME 的候选位置
JAVA_KEYSTORE_CANDIDATES = (
    "lib/security/cacerts",
    "jre/lib/security/cacerts",
)
DEFAULT_KEYSTORE_PASSWORD = "changeit"

# plist 中 modDate 的固定格式 (UTC)
PLIST_MOD_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# 备份设置
BACKUP_ROOT = Path.home() / ".cert-manage"
BACKUP_PREFIX = "trust-backup-"
LOCK_FILENAME = ".lock"
BACKUP_DIR_PERMS = 0o700

# 读取的环境变量 (仅在 StoreConfig.from_env 中使用)
ENV_DEBUG = "CERT_MANAGE_DEBUG"
ENV_BACKUP_DIR = "CERT_MANAGE_BACKUP_DIR"
ENV_JAVA_HOME = "JAVA_HOME"


@dataclass
class StoreConfig:
    """存储后端的运行配置"""

    debug_enabled: bool = False
    backup_root: Path = BACKUP_ROOT
    security_path: str = SECURITY_BIN
    system_keychains: Tuple[str, ...] = SYSTEM_KEYCHAINS
    use_sudo: bool = True
    keytool_path: str = KEYTOOL_BIN
    java_home: Optional[Path] = None
    java_keystore: Optional[Path] = None
    keystore_password: str = field(default=DEFAULT_KEYSTORE_PASSWORD, repr=False)

    def backup_dir(self, name: str) -> Path:
        """返回某个平台或应用的备份目录"""
        return Path(self.backup_root) / name

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "StoreConfig":
        """从环境变量构建配置

        Args:
            environ: 环境变量映射，默认为 os.environ
            overrides: 覆盖的字段

        Returns:
            StoreConfig 实例
        """
        if environ is None:
            environ = os.environ

        values: Dict[str, object] = {}
        debug = environ.get(ENV_DEBUG, "").strip().lower()
        if debug:
            values["debug_enabled"] = debug in ("1", "true", "yes", "on")
        if environ.get(ENV_BACKUP_DIR):
            values["backup_root"] = Path(environ[ENV_BACKUP_DIR])
        if environ.get(ENV_JAVA_HOME):
            values["java_home"] = Path(environ[ENV_JAVA_HOME])

        values.update(overrides)
        return cls(**values)
