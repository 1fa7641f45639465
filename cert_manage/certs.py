# -*- coding: utf-8 -*-

"""
证书指纹与身份工具
"""

import re
from typing import Dict, Iterable, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes

from .log import logger

FINGERPRINT_PREVIEW_LENGTH = 16

CERT_PATTERN = re.compile(r'-----BEGIN CERTIFICATE-----.+?-----END CERTIFICATE-----', re.DOTALL)

_HASHES: Dict[str, type] = {
    "sha1": hashes.SHA1,
    "sha256": hashes.SHA256,
}


def fingerprint(cert: x509.Certificate, algorithm: str = "sha256") -> str:
    """计算证书的十六进制指纹（小写）

    Args:
        cert: 证书
        algorithm: "sha1" 或 "sha256"

    Returns:
        DER 编码证书的摘要
    """
    try:
        digest = _HASHES[algorithm.lower()]
    except KeyError:
        raise ValueError(f"不支持的指纹算法: {algorithm}") from None
    return cert.fingerprint(digest()).hex()


def fingerprint_preview(cert: x509.Certificate, length: int = FINGERPRINT_PREVIEW_LENGTH) -> str:
    """截断的 SHA-256 指纹，用于显示"""
    return fingerprint(cert, "sha256")[:length]


def normalize_fingerprint(text: str) -> str:
    """去掉冒号和空白并转换为小写"""
    return re.sub(r'[\s:]', '', text).lower()


def serial_bytes(cert: x509.Certificate) -> bytes:
    """证书序列号的大端字节（最短表示）"""
    serial = abs(cert.serial_number)
    return serial.to_bytes((serial.bit_length() + 7) // 8, "big")


def parse_pem_certificates(text: str) -> List[x509.Certificate]:
    """把包含多个 PEM 证书的文本拆分并解析

    无法解析的证书块会被跳过。
    """
    certs = []
    for i, block in enumerate(CERT_PATTERN.findall(text)):
        try:
            certs.append(x509.load_pem_x509_certificate(block.encode("ascii")))
        except ValueError as e:
            logger.warning(f"跳过无法解析的证书 {i}: {e}")
    return certs


def dedupe_by_signature(certs: Iterable[Optional[x509.Certificate]]) -> List[x509.Certificate]:
    """按签名去重，保留第一次出现的证书"""
    seen = set()
    result = []
    for cert in certs:
        if cert is None:
            continue
        if cert.signature in seen:
            continue
        seen.add(cert.signature)
        result.append(cert)
    return result


def dedupe_by_fingerprint(certs: Iterable[Optional[x509.Certificate]]) -> List[x509.Certificate]:
    """按 SHA-256 指纹去重，保留第一次出现的证书"""
    fingerprints = set()
    result = []
    for cert in certs:
        if cert is None:
            continue
        fp = fingerprint(cert)
        if fp in fingerprints:
            continue
        fingerprints.add(fp)
        result.append(cert)
    return result
