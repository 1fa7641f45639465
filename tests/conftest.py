# -*- coding: utf-8 -*-

"""
测试用的证书和假的 security / keytool 工具
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import NameOID

from cert_manage.certs import fingerprint
from cert_manage.config import StoreConfig
from cert_manage.errors import InvocationFailure
from cert_manage.plist import TrustPolicySnapshot, TrustRecord, parse_snapshot, serialize_snapshot

# Let's Encrypt 的根证书 (ISRG Root X1)
ISRG_ROOT_X1 = """-----BEGIN CERTIFICATE-----
MIIFazCCA1OgAwIBAgIRAIIQz7DSQONZRGPgu2OCiwAwDQYJKoZIhvcNAQELBQAw
TzELMAkGA1UEBhMCVVMxKTAnBgNVBAoTIEludGVybmV0IFNlY3VyaXR5IFJlc2Vh
cmNoIEdyb3VwMRUwEwYDVQQDEwxJU1JHIFJvb3QgWDEwHhcNMTUwNjA0MTEwNDM4
WhcNMzUwNjA0MTEwNDM4WjBPMQswCQYDVQQGEwJVUzEpMCcGA1UEChMgSW50ZXJu
ZXQgU2VjdXJpdHkgUmVzZWFyY2ggR3JvdXAxFTATBgNVBAMTDElTUkcgUm9vdCBY
MTCCAiIwDQYJKoZIhvcNAQEBBQADggIPADCCAgoCggIBAK3oJHP0FDfzm54rVygc
h77ct984kIxuPOZXoHj3dcKi/vVqbvYATyjb3miGbESTtrFj/RQSa78f0uoxmyF+
0TM8ukj13Xnfs7j/EvEhmkvBioZxaUpmZmyPfjxwv60pIgbz5MDmgK7iS4+3mX6U
A5/TR5d8mUgjU+g4rk8Kb4Mu0UlXjIB0ttov0DiNewNwIRt18jA8+o+u3dpjq+sW
T8KOEUt+zwvo/7V3LvSye0rgTBIlDHCNAymg4VMk7BPZ7hm/ELNKjD+Jo2FR3qyH
B5T0Y3HsLuJvW5iB4YlcNHlsdu87kGJ55tukmi8mxdAQ4Q7e2RCOFvu396j3x+UC
B5iPNgiV5+I3lg02dZ77DnKxHZu8A/lJBdiB3QW0KtZB6awBdpUKD9jf1b0SHzUv
KBds0pjBqAlkd25HN7rOrFleaJ1/ctaJxQZBKT5ZPt0m9STJEadao0xAH0ahmbWn
OlFuhjuefXKnEgV4We0+UXgVCwOPjdAvBbI+e0ocS3MFEvzG6uBQE3xDk3SzynTn
jh8BCNAw1FtxNrQHusEwMFxIt4I7mKZ9YIqioymCzLq9gwQbooMDQaHWBfEbwrbw
qHyGO0aoSCqI3Haadr8faqU9GY/rOPNk3sgrDQoo//fb4hVC1CLQJ13hef4Y53CI
rU7m2Ys6xt0nUW7/vGT1M0NPAgMBAAGjQjBAMA4GA1UdDwEB/wQEAwIBBjAPBgNV
HRMBAf8EBTADAQH/MB0GA1UdDgQWBBR5tFnme7bl5AFzgAiIyBpY9umbbjANBgkq
hkiG9w0BAQsFAAOCAgEAVR9YqbyyqFDQDLHYGmkgJykIrGF1XIpu+ILlaS/V9lZL
ubhzEFnTIZd+50xx+7LSYK05qAvqFyFWhfFQDlnrzuBZ6brJFe+GnY+EgPbk6ZGQ
3BebYhtF8GaV0nxvwuo77x/Py9auJ/GpsMiu/X1+mvoiBOv/2X/qkSsisRcOj/KK
NFtY2PwByVS5uCbMiogziUwthDyC3+6WVwW6LLv3xLfHTjuCvjHIInNzktHCgKQ5
ORAzI4JMPJ+GslWYHb4phowim57iaztXOoJwTdwJx4nLCgdNbOhdjsnvzqvHu7Ur
TkXWStAmzOVyyghqpZXjFaH3pO3JLF+l+/+sKAIuvtd7u+Nxe5AW0wdeRlN8NwdC
jNPElpzVmbUq4JUagEiuTDkHzsxHpFKVK7q4+63SM1N95R1NbdWhscdCb+ZAJzVc
oyi3B43njTOQ5yOf+1CceWxG1bQVs5ZufpsMljq4Ui0/1lvh+wjChP4kqKOJ2qxq
4RgqsahDYVvTH9w7jXbyLeiNdd8XM2w9U/t7y0Ff/9yi0GE44Za4rF2LN9d11TPA
mRGunUHBcnWEvgJBQl9nJEiU0Zsnvgc/ubhPgXRR4Xq37Z0j4r7g1SgEEzwxA57d
emyPxgcYxn/eR44/KJ4EBs+lVDR3veyJm+kXQ99b21/+jh5Xos1AnX5iItreGCc=
-----END CERTIFICATE-----
"""

ISRG_SHA1 = "cabd2a79a1076a31f21d253635cb039d4329a5e8"
ISRG_SHA256 = "96bcec06264976f37460779acf28c5a7cfe8a3c0aae11a8ffcee05c0bddf08c6"

_KEY = ec.generate_private_key(ec.SECP256R1())


def make_ca(common_name: str, organization: str = "Example CA Organization",
            serial: Optional[int] = None, not_after: Optional[datetime] = None) -> x509.Certificate:
    """创建一个自签名的CA证书"""
    name = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(_KEY.public_key())
        .serial_number(serial if serial is not None else x509.random_serial_number())
        .not_valid_before(datetime(2020, 1, 1, tzinfo=timezone.utc))
        .not_valid_after(not_after or datetime(2040, 1, 1, tzinfo=timezone.utc))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(_KEY, hashes.SHA256())
    )


def to_pem(certs: List[x509.Certificate]) -> str:
    return "".join(cert.public_bytes(Encoding.PEM).decode("ascii") for cert in certs)


@pytest.fixture
def isrg_root():
    return x509.load_pem_x509_certificate(ISRG_ROOT_X1.encode("ascii"))


@pytest.fixture(scope="session")
def ca_certs():
    """148 个不同的CA证书"""
    return [make_ca(f"Test Root CA {i:03d}", serial=1000 + i) for i in range(148)]


def _argument(args: List[str], flag: str) -> str:
    return args[args.index(flag) + 1]


class FakeSecurity:
    """模拟 /usr/bin/security 的 find-certificate、trust-settings-export/import"""

    def __init__(self, installed: List[x509.Certificate], trusted: List[x509.Certificate]) -> None:
        self.installed = list(installed)
        self.trusted = {fingerprint(c, "sha1") for c in trusted}
        self.calls: List[List[str]] = []
        self.timeouts: List[Optional[float]] = []
        self.fail_import = False

    def export(self) -> bytes:
        seen = set()
        records = []
        for cert in self.installed:
            fp = fingerprint(cert, "sha1")
            if fp in self.trusted and fp not in seen:
                seen.add(fp)
                records.append(TrustRecord.from_certificate(cert))
        return serialize_snapshot(TrustPolicySnapshot(records))

    def __call__(self, command, cwd=None, verbose=False, timeout=None) -> str:
        self.calls.append(list(command))
        self.timeouts.append(timeout)
        args = list(command)
        if args[0] == "sudo":
            args = args[1:]
        action = args[1]

        if action == "find-certificate":
            return to_pem(self.installed)
        if action == "trust-settings-export":
            Path(_argument(args, "-d")).write_bytes(self.export())
            return ""
        if action == "trust-settings-import":
            if self.fail_import:
                raise InvocationFailure(command, 1, "SecTrustSettingsImportExternalRepresentation: failed")
            snapshot = parse_snapshot(Path(_argument(args, "-d")).read_bytes())
            self.trusted = set(snapshot.fingerprints())
            return ""
        raise AssertionError(f"unexpected security call: {command}")


class FakeKeytool:
    """模拟 keytool -list -rfc / -delete"""

    def __init__(self, entries) -> None:
        self.entries = list(entries)
        self.calls: List[List[str]] = []

    def listing(self) -> str:
        lines = [
            "Keystore type: JKS",
            "Keystore provider: SUN",
            "",
            f"Your keystore contains {len(self.entries)} entries",
            "",
        ]
        for alias, cert in self.entries:
            lines.extend([
                f"Alias name: {alias}",
                "Creation date: Jan 1, 2020",
                "Entry type: trustedCertEntry",
                "",
                "Certificate[1]:",
                cert.public_bytes(Encoding.PEM).decode("ascii").strip(),
                "",
                "",
                "*******************************************",
                "*******************************************",
                "",
            ])
        return "\n".join(lines)

    def __call__(self, command, cwd=None, verbose=False, timeout=None) -> str:
        self.calls.append(list(command))
        args = list(command)
        if args[0] == "sudo":
            args = args[1:]
        if args[0] == "cp":
            Path(args[2]).write_bytes(Path(args[1]).read_bytes())
            return ""
        if "-list" in args:
            return self.listing()
        if "-delete" in args:
            alias = _argument(args, "-alias")
            self.entries = [(a, c) for a, c in self.entries if a != alias]
            return ""
        raise AssertionError(f"unexpected keytool call: {command}")


@pytest.fixture
def temp_dir(tmp_path, monkeypatch):
    """把临时文件放到测试目录下，便于检查是否清理干净"""
    path = tmp_path / "tmp"
    path.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(path))
    return path


@pytest.fixture
def store_config(tmp_path):
    return StoreConfig(backup_root=tmp_path / "backups")
