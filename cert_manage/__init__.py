# -*- coding: utf-8 -*-

"""
cert-manage: 管理操作系统和应用中受信任的CA证书
"""

from .certs import fingerprint, fingerprint_preview
from .config import StoreConfig
from .errors import (
    DuplicateTrustRecord,
    InvocationFailure,
    MalformedSnapshot,
    NoBackupFound,
    RestoreFileMissing,
    TrustStoreError,
    UnsupportedStore,
    WhitelistError,
)
from .log import setup_logging
from .plist import TrustPolicySnapshot, TrustRecord, parse_snapshot, serialize_snapshot
from .store import Store, get_store
from .whitelist import keep, load_whitelist, parse_whitelist

__version__ = "1.0.0"
