from __future__ import annotations

from nbstack.semver import normalize_version, parse_python_version, tag_from_release_url


def test_tag_from_release_url() -> None:
    url = "https://github.com/netbox-community/netbox/releases/tag/v4.2.1"
    assert tag_from_release_url(url) == "v4.2.1"
    assert tag_from_release_url("https://github.com/netbox-community/netbox/releases") is None


def test_normalize_version() -> None:
    assert normalize_version("v4.2.1") == "4.2.1"
    assert normalize_version("4.2") is None


def test_parse_python_version() -> None:
    assert parse_python_version("3.12\n") == (3, 12)
    assert parse_python_version("3.12.4") == (3, 12)
    assert parse_python_version("Python") is None
