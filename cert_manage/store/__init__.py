# -*- coding: utf-8 -*-

"""
平台证书存储

每个后端 (macOS 钥匙串、Java 密钥库...) 都提供相同的四个操作：
list、backup、remove、restore。每次调用都从系统重新读取状态。
"""

import sys
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, Union

from cryptography import x509

from ..config import StoreConfig
from ..errors import UnsupportedStore
from ..whitelist import WhitelistItem
from .darwin import DarwinStore
from .java import JavaStore


class Store(Protocol):
    """证书存储后端"""

    name: str

    def list(self, timeout: Optional[float] = None) -> List[x509.Certificate]:
        ...

    def backup(self, timeout: Optional[float] = None) -> Path:
        ...

    def remove(self, whitelist: Sequence[WhitelistItem], timeout: Optional[float] = None) -> None:
        ...

    def restore(self, path: Optional[Union[str, Path]] = None, timeout: Optional[float] = None) -> None:
        ...


STORES: Dict[str, type] = {
    DarwinStore.name: DarwinStore,
    JavaStore.name: JavaStore,
}


def default_store_name(platform: Optional[str] = None) -> str:
    """根据操作系统确定默认的存储后端"""
    platform = platform or sys.platform
    if platform == "darwin":
        return DarwinStore.name
    raise UnsupportedStore(f"平台 {platform} 没有默认的证书存储后端")


def get_store(name: Optional[str] = None, config: Optional[StoreConfig] = None) -> Store:
    """按平台或应用名称选择存储后端

    Args:
        name: "darwin"、"java"；为空时根据当前平台选择
        config: 存储配置

    Returns:
        存储后端实例
    """
    if not name:
        name = default_store_name()
    try:
        store_cls = STORES[name.strip().lower()]
    except KeyError:
        raise UnsupportedStore(f"未知的证书存储: {name}") from None
    return store_cls(config or StoreConfig())


__all__ = ["Store", "STORES", "DarwinStore", "JavaStore", "default_store_name", "get_store"]
