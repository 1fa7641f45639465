# -*- coding: utf-8 -*-

"""
macOS 信任设置 (plist) 的解析与生成

`security trust-settings-export` 导出的 plist 结构如下::

    <plist><dict>
      <key>trustList</key>
      <dict>
        <key>SHA1指纹</key>
        <dict>
          <key>issuerName</key><data>...</data>
          <key>modDate</key><date>...</date>
          <key>serialNumber</key><data>...</data>
          <key>trustSettings</key><array>...</array>
        </dict>
        ...
      </dict>
      <key>trustVersion</key><integer>1</integer>
    </dict></plist>

记录之间没有显式的标签关联：第 i 条记录对应第 i 个 key、第 2i 和 2i+1 个
data、第 i 个 date。
"""

import base64
import binascii
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Optional, Union

from asn1crypto import x509 as asn1_x509
from bs4 import BeautifulSoup
from cryptography import x509

from .certs import fingerprint, serial_bytes
from .config import PLIST_MOD_DATE_FORMAT
from .errors import DuplicateTrustRecord, MalformedSnapshot
from .log import logger

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

BASE64_NOISE = re.compile(r'[^a-zA-Z0-9+/=]')

# 输出的字节布局是固定的，按模板拼接
PLIST_HEADER = "<plist><dict><key>trustList</key><dict>"
PLIST_ITEM = (
    "<key>{fingerprint}</key><dict>"
    "<key>issuerName</key><data>{issuer}</data>"
    "<key>modDate</key><date>{mod_date}</date>"
    "<key>serialNumber</key><data>{serial}</data>"
    "</dict>"
)
PLIST_FOOTER = """</dict>
  <key>trustVersion</key>
  <integer>1</integer>
</dict></plist>"""

TRUST_LIST_KEY = "trustList"
TRUST_RESULT_KEY = "kSecTrustSettingsResult"


def empty_name() -> asn1_x509.Name:
    """空的 RDN 序列"""
    return asn1_x509.Name.build({})


def format_mod_date(value: datetime) -> str:
    """按 plist 的固定格式输出 UTC 时间"""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    # strftime 不会给小于1000的年份补零
    return (f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
            f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}Z")


def parse_mod_date(text: str) -> datetime:
    return datetime.strptime(text.strip(), PLIST_MOD_DATE_FORMAT).replace(tzinfo=timezone.utc)


def decode_base64(text: str) -> bytes:
    """去掉空白和非 base64 字符后解码"""
    return base64.b64decode(BASE64_NOISE.sub('', text), validate=True)


def decode_name(der: bytes) -> asn1_x509.Name:
    """解码 ASN.1 DER 编码的 distinguished name"""
    name = asn1_x509.Name.load(der, strict=True)
    # asn1crypto 延迟解析，访问 native 才会暴露错误
    name.native
    return name


@dataclass
class FieldDecodeSkipped:
    """某条记录的字段解码失败，字段被置为空值"""

    index: int
    fingerprint: str
    field: str
    reason: str


@dataclass
class TrustRecord:
    """plist 中的一条信任记录"""

    fingerprint: str
    issuer_name: asn1_x509.Name = field(default_factory=empty_name)
    modification_time: datetime = ZERO_TIME
    serial_number: bytes = b""
    trust_result: Optional[int] = None

    @classmethod
    def from_certificate(cls, cert: x509.Certificate, now: Optional[datetime] = None) -> "TrustRecord":
        if now is None:
            now = datetime.now(timezone.utc)
        return cls(
            fingerprint=fingerprint(cert, "sha1"),
            issuer_name=asn1_x509.Name.load(cert.issuer.public_bytes()),
            modification_time=now,
            serial_number=serial_bytes(cert),
        )

    @property
    def serial(self) -> int:
        return int.from_bytes(self.serial_number, "big")

    def issuer_attribute(self, attribute: str) -> str:
        value = self.issuer_name.native.get(attribute, "")
        if isinstance(value, list):
            return " ".join(str(v) for v in value)
        return str(value)

    def __str__(self) -> str:
        name = f"O={self.issuer_attribute('organization_name')}"
        common_name = self.issuer_attribute("common_name")
        if common_name:
            name = f"CN={common_name}"
        country = self.issuer_attribute("country_name")
        return (f"SHA1 Fingerprint: {self.fingerprint}\n"
                f" {name} ({country})\n"
                f" modDate: {format_mod_date(self.modification_time)}\n"
                f" serialNumber: {self.serial}")


class TrustPolicySnapshot:
    """某一时刻完整的信任策略，指纹在快照内唯一"""

    def __init__(self, records: Iterable[TrustRecord] = ()) -> None:
        self._records: List[TrustRecord] = []
        self._index: Dict[str, TrustRecord] = {}
        self.diagnostics: List[FieldDecodeSkipped] = []
        for record in records:
            self.add(record)

    def add(self, record: TrustRecord) -> None:
        fp = record.fingerprint.lower()
        if fp in self._index:
            raise DuplicateTrustRecord(fp)
        self._index[fp] = record
        self._records.append(record)

    def get(self, fp: str) -> Optional[TrustRecord]:
        return self._index.get(fp.lower())

    def contains(self, cert: Optional[x509.Certificate]) -> bool:
        """证书是否有信任记录；None 视为存在"""
        if cert is None:
            return True
        return fingerprint(cert, "sha1") in self._index

    def fingerprints(self) -> List[str]:
        return [r.fingerprint for r in self._records]

    @property
    def records(self) -> List[TrustRecord]:
        return list(self._records)

    def __contains__(self, fp: str) -> bool:
        return fp.lower() in self._index

    def __iter__(self) -> Iterator[TrustRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)


def _trust_result(entry) -> Optional[int]:
    array = entry.find("array", recursive=False)
    if array is None:
        return None
    for key in array.find_all("key"):
        if key.get_text().strip() != TRUST_RESULT_KEY:
            continue
        value = key.find_next_sibling("integer")
        if value is None:
            return None
        try:
            return int(value.get_text().strip())
        except ValueError:
            return None
    return None


def parse_snapshot(data: Union[bytes, str]) -> TrustPolicySnapshot:
    """解析 trust-settings-export 生成的 plist

    单个字段解码失败时该字段置空，并记录在 diagnostics 中；
    只有顶层结构无效时才会失败。

    Raises:
        MalformedSnapshot: 文档不是格式良好的 XML，或缺少 plist / dict / trustList 结构
    """
    # html.parser 会容忍截断和标签不匹配，先用严格的 XML 解析器检查
    try:
        ET.fromstring(data)
    except ET.ParseError as e:
        raise MalformedSnapshot(f"plist 不是格式良好的 XML: {e}") from e

    soup = BeautifulSoup(data, "html.parser")

    root = soup.find("plist")
    if root is None:
        raise MalformedSnapshot("缺少 plist 根元素")
    outer = root.find("dict", recursive=False)
    if outer is None:
        raise MalformedSnapshot("缺少最外层 dict")
    trust_list = None
    for key in outer.find_all("key", recursive=False):
        if key.get_text().strip() == TRUST_LIST_KEY:
            trust_list = key.find_next_sibling("dict")
            break
    if trust_list is None:
        raise MalformedSnapshot("缺少 trustList dict")

    keys = trust_list.find_all("key", recursive=False)
    entries = trust_list.find_all("dict", recursive=False)
    data_items = []
    dates = []
    for entry in entries:
        data_items.extend(entry.find_all("data", recursive=False))
        dates.extend(entry.find_all("date", recursive=False))

    count = len(data_items) // 2
    if len(keys) < count:
        raise MalformedSnapshot(f"记录数 ({count}) 多于指纹数 ({len(keys)})")

    snapshot = TrustPolicySnapshot()

    def skipped(index: int, fp: str, name: str, reason: str) -> None:
        logger.debug(f"记录 {index} ({fp}) 的 {name} 无法解码: {reason}")
        snapshot.diagnostics.append(FieldDecodeSkipped(index, fp, name, reason))

    for i in range(count):
        record = TrustRecord(fingerprint=keys[i].get_text().strip().lower())

        try:
            record.issuer_name = decode_name(decode_base64(data_items[2 * i].get_text()))
        except (binascii.Error, ValueError, TypeError) as e:
            skipped(i, record.fingerprint, "issuerName", str(e))

        try:
            record.serial_number = decode_base64(data_items[2 * i + 1].get_text())
        except binascii.Error as e:
            skipped(i, record.fingerprint, "serialNumber", str(e))

        if i < len(dates):
            try:
                record.modification_time = parse_mod_date(dates[i].get_text())
            except ValueError as e:
                skipped(i, record.fingerprint, "modDate", str(e))
        else:
            skipped(i, record.fingerprint, "modDate", "缺少 date")

        if len(entries) == count:
            record.trust_result = _trust_result(entries[i])

        try:
            snapshot.add(record)
        except DuplicateTrustRecord as e:
            skipped(i, record.fingerprint, "fingerprint", str(e))

    logger.debug(f"从 plist 解析出 {len(snapshot)} 条信任记录")
    return snapshot


def serialize_snapshot(snapshot: Iterable[TrustRecord]) -> bytes:
    """生成 trust-settings-import 可以接受的 plist"""
    parts = [PLIST_HEADER]
    for record in snapshot:
        parts.append(PLIST_ITEM.format(
            fingerprint=record.fingerprint.upper(),
            issuer=base64.b64encode(record.issuer_name.dump()).decode("ascii"),
            mod_date=format_mod_date(record.modification_time),
            serial=base64.b64encode(record.serial_number).decode("ascii"),
        ))
    parts.append(PLIST_FOOTER)
    return "".join(parts).encode("utf-8")
