# -*- coding: utf-8 -*-

"""
白名单匹配 - 决定哪些已安装的CA证书在策略变更后保留信任

白名单文件是JSON格式：

    {
      "fingerprints": ["<sha1 或 sha256 十六进制>"],
      "issuers": [{"common_name": "...", "organization": "..."}],
      "serials": [{"issuer": {"common_name": "..."}, "serial_number": "<十六进制>"}],
      "not_after": "2030-01-01T00:00:00Z"
    }
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence, Union

from cryptography import x509
from cryptography.x509.oid import NameOID
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .certs import fingerprint, normalize_fingerprint
from .errors import WhitelistError
from .log import logger


class WhitelistItem(Protocol):
    """白名单条目：判断一个证书是否被允许"""

    def matches(self, cert: x509.Certificate) -> bool:
        ...


def _issuer_attribute(cert: x509.Certificate, oid: x509.ObjectIdentifier) -> Optional[str]:
    attrs = cert.issuer.get_attributes_for_oid(oid)
    if not attrs:
        return None
    value = attrs[0].value
    return value if isinstance(value, str) else value.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class FingerprintItem:
    """按 SHA-1 或 SHA-256 指纹匹配"""

    fingerprint: str

    def matches(self, cert: x509.Certificate) -> bool:
        wanted = normalize_fingerprint(self.fingerprint)
        algorithm = "sha1" if len(wanted) == 40 else "sha256"
        return fingerprint(cert, algorithm) == wanted


@dataclass(frozen=True)
class IssuerItem:
    """按颁发者属性匹配，所有给出的属性都必须相同"""

    common_name: Optional[str] = None
    organization: Optional[str] = None

    def matches(self, cert: x509.Certificate) -> bool:
        if self.common_name is None and self.organization is None:
            return False
        if self.common_name is not None:
            if _issuer_attribute(cert, NameOID.COMMON_NAME) != self.common_name:
                return False
        if self.organization is not None:
            if _issuer_attribute(cert, NameOID.ORGANIZATION_NAME) != self.organization:
                return False
        return True


@dataclass(frozen=True)
class IssuerSerialItem:
    """按颁发者和序列号匹配"""

    issuer: IssuerItem
    serial_number: int

    def matches(self, cert: x509.Certificate) -> bool:
        return cert.serial_number == self.serial_number and self.issuer.matches(cert)


@dataclass(frozen=True)
class NotAfterItem:
    """保留在指定时间之后才过期的证书"""

    after: datetime

    def matches(self, cert: x509.Certificate) -> bool:
        after = self.after
        if after.tzinfo is None:
            after = after.replace(tzinfo=timezone.utc)
        return cert.not_valid_after_utc > after


def keep(installed: Iterable[Optional[x509.Certificate]],
         whitelist: Sequence[WhitelistItem]) -> List[x509.Certificate]:
    """按白名单过滤证书，只保留被允许的证书

    任意一个条目匹配即保留，每个证书最多出现一次。
    空结果是有效的输出。
    """
    kept = []
    fingerprints = set()
    for cert in installed:
        if cert is None:
            continue
        for item in whitelist:
            if item.matches(cert):
                fp = fingerprint(cert)
                if fp not in fingerprints:
                    fingerprints.add(fp)
                    kept.append(cert)
                break
    return kept


class _IssuerSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    common_name: Optional[str] = None
    organization: Optional[str] = None


class _SerialSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    issuer: _IssuerSpec
    serial_number: str

    @field_validator("serial_number")
    @classmethod
    def _check_serial(cls, value: str) -> str:
        cleaned = normalize_fingerprint(value)
        if cleaned.startswith("0x"):
            cleaned = cleaned[2:]
        int(cleaned, 16)
        return cleaned


class WhitelistDocument(BaseModel):
    """白名单文件结构"""

    model_config = ConfigDict(extra="forbid")

    fingerprints: List[str] = []
    issuers: List[_IssuerSpec] = []
    serials: List[_SerialSpec] = []
    not_after: Optional[datetime] = None

    @field_validator("fingerprints")
    @classmethod
    def _check_fingerprints(cls, values: List[str]) -> List[str]:
        result = []
        for value in values:
            fp = normalize_fingerprint(value)
            if len(fp) not in (40, 64):
                raise ValueError(f"指纹长度无效: {value}")
            int(fp, 16)
            result.append(fp)
        return result

    def to_items(self) -> List[WhitelistItem]:
        items: List[WhitelistItem] = [FingerprintItem(fp) for fp in self.fingerprints]
        items.extend(IssuerItem(i.common_name, i.organization) for i in self.issuers)
        items.extend(
            IssuerSerialItem(IssuerItem(s.issuer.common_name, s.issuer.organization), int(s.serial_number, 16))
            for s in self.serials
        )
        if self.not_after is not None:
            items.append(NotAfterItem(self.not_after))
        return items


def parse_whitelist(text: Union[str, bytes]) -> List[WhitelistItem]:
    """解析JSON格式的白名单"""
    try:
        document = WhitelistDocument.model_validate_json(text)
    except ValidationError as e:
        raise WhitelistError(f"白名单格式无效: {e}") from e
    items = document.to_items()
    logger.debug(f"白名单包含 {len(items)} 个条目")
    return items


def load_whitelist(path: Union[str, Path]) -> List[WhitelistItem]:
    """从文件读取白名单"""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise WhitelistError(f"无法读取白名单文件 {path}: {e}") from e
    return parse_whitelist(text)
