from __future__ import annotations

import os

import pytest

from nbstack.errors import HostEnvironmentError
from nbstack.host import Apt, Postgres, discover_address, ensure_symlink, quote_literal, write_file


def test_apt_installs_only_missing_packages(fake_host) -> None:
    fake_host.packages.add("git")
    installed = Apt(fake_host).ensure(["git", "curl", "git"])
    assert installed == ["curl"]
    assert fake_host.commands("apt-get install") == [["apt-get", "install", "-y", "curl"]]


def test_apt_skips_update_when_nothing_is_missing(fake_host) -> None:
    fake_host.packages.update({"git", "curl"})
    assert Apt(fake_host).ensure(["git", "curl"]) == []
    assert not fake_host.commands("apt-get")


def test_postgres_creates_role_then_only_updates_it(fake_host) -> None:
    pg = Postgres(fake_host)
    assert pg.ensure_role("netbox", "s3cret") is True
    assert pg.ensure_role("netbox", "s3cret") is False
    assert fake_host.roles == {"netbox"}
    assert fake_host.sql[-1] == "ALTER ROLE \"netbox\" WITH LOGIN PASSWORD 's3cret';"


def test_postgres_database_owner_is_always_reasserted(fake_host) -> None:
    pg = Postgres(fake_host)
    assert pg.ensure_database("netbox", "netbox") is True
    assert pg.ensure_database("netbox", "netbox") is False
    owner_sql = [sql for sql in fake_host.sql if sql.startswith("ALTER DATABASE")]
    assert len(owner_sql) == 2


def test_psql_never_gets_sql_on_the_command_line(fake_host) -> None:
    Postgres(fake_host).ensure_role("netbox", "s3cret")
    for cmd in fake_host.commands("runuser"):
        assert not any("s3cret" in part for part in cmd)


def test_quote_literal_escapes_quotes() -> None:
    assert quote_literal("it's") == "'it''s'"


@pytest.mark.parametrize(
    ("output", "expected"),
    [
        ("192.0.2.10 10.0.0.5\n", "192.0.2.10"),
        ("fe80::1 2001:db8::1 198.51.100.7", "198.51.100.7"),
        ("127.0.1.1 169.254.3.4 203.0.113.9", "203.0.113.9"),
        ("", "127.0.0.1"),
        ("garbage", "127.0.0.1"),
    ],
)
def test_discover_address(fake_host, output, expected) -> None:
    fake_host.hostname_output = output
    assert discover_address(fake_host, fallback="127.0.0.1") == expected


def test_write_file_reports_changes(tmp_path) -> None:
    path = tmp_path / "etc" / "site"
    assert write_file(path, "one\n") is True
    assert write_file(path, "one\n") is False
    assert write_file(path, "two\n") is True
    assert path.read_text(encoding="utf-8") == "two\n"


def test_ensure_symlink_switches_target(tmp_path) -> None:
    link = tmp_path / "netbox"
    old = tmp_path / "netbox-4.1.0"
    new = tmp_path / "netbox-4.2.1"
    old.mkdir()
    new.mkdir()
    assert ensure_symlink(link, old) is True
    assert ensure_symlink(link, new) is True
    assert ensure_symlink(link, new) is False
    assert os.readlink(link) == str(new)


def test_ensure_symlink_refuses_to_replace_directory(tmp_path) -> None:
    link = tmp_path / "netbox"
    link.mkdir()
    with pytest.raises(HostEnvironmentError):
        ensure_symlink(link, tmp_path / "netbox-4.2.1")
