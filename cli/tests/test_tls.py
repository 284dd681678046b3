from __future__ import annotations

import ipaddress
import stat
from datetime import datetime, timedelta, timezone

from cryptography import x509

from nbstack.tls import certificate_matches, ensure_self_signed_cert


def test_certificate_names_the_host_address(tmp_path) -> None:
    cert_path = tmp_path / "certs" / "netbox.crt"
    key_path = tmp_path / "private" / "netbox.key"
    assert ensure_self_signed_cert(cert_path, key_path, "192.0.2.10") is True

    cert = x509.load_pem_x509_certificate(cert_path.read_bytes())
    san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    assert san.get_values_for_type(x509.IPAddress) == [ipaddress.ip_address("192.0.2.10")]
    assert stat.S_IMODE(key_path.stat().st_mode) == 0o600


def test_valid_certificate_is_kept(tmp_path) -> None:
    cert_path = tmp_path / "netbox.crt"
    key_path = tmp_path / "netbox.key"
    ensure_self_signed_cert(cert_path, key_path, "192.0.2.10")
    before = cert_path.read_bytes()
    assert ensure_self_signed_cert(cert_path, key_path, "192.0.2.10") is False
    assert cert_path.read_bytes() == before


def test_address_change_regenerates(tmp_path) -> None:
    cert_path = tmp_path / "netbox.crt"
    key_path = tmp_path / "netbox.key"
    ensure_self_signed_cert(cert_path, key_path, "192.0.2.10")
    assert ensure_self_signed_cert(cert_path, key_path, "netbox.example.com") is True
    cert = x509.load_pem_x509_certificate(cert_path.read_bytes())
    san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    assert san.get_values_for_type(x509.DNSName) == ["netbox.example.com"]


def test_expiring_certificate_does_not_match(tmp_path) -> None:
    cert_path = tmp_path / "netbox.crt"
    ensure_self_signed_cert(cert_path, tmp_path / "netbox.key", "192.0.2.10", days=365)
    later = datetime.now(timezone.utc) + timedelta(days=340)
    assert certificate_matches(cert_path, "192.0.2.10") is True
    assert certificate_matches(cert_path, "192.0.2.10", now=later) is False


def test_garbage_certificate_does_not_match(tmp_path) -> None:
    cert_path = tmp_path / "netbox.crt"
    cert_path.write_text("not a certificate", encoding="utf-8")
    assert certificate_matches(cert_path, "192.0.2.10") is False
