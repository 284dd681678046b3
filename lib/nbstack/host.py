"""Query and idempotent-mutate operations for each kind of host resource.

Every mutation here is either preceded by an existence check or is
naturally idempotent (overwrite with identical content, ``enable --now``).
"""
from __future__ import annotations

import ipaddress
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .errors import CommandError, HostEnvironmentError
from .runner import CommandRunner
from .semver import parse_python_version

log = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


@dataclass
class Apt:
    runner: CommandRunner
    _updated: bool = field(default=False, init=False, repr=False)

    def is_installed(self, package: str) -> bool:
        res = self.runner.run(["dpkg-query", "-W", "-f=${Status}", package])
        return res.returncode == 0 and "install ok installed" in (res.stdout or "")

    def missing(self, packages: Iterable[str]) -> list[str]:
        return [p for p in packages if not self.is_installed(p)]

    def update(self) -> None:
        if self._updated:
            return
        self.runner.run_checked(["apt-get", "update", "-y"], label="update apt package lists", env=APT_ENV)
        self._updated = True

    def upgrade(self) -> None:
        self.update()
        self.runner.run_checked(["apt-get", "upgrade", "-y"], label="upgrade installed packages", env=APT_ENV)

    def ensure(self, packages: Iterable[str]) -> list[str]:
        """Install whatever is missing; return the names that were installed."""
        wanted = list(dict.fromkeys(packages))
        missing = self.missing(wanted)
        if not missing:
            return []
        self.update()
        self.runner.run_checked(
            ["apt-get", "install", "-y", *missing],
            label=f"install {', '.join(missing)}",
            env=APT_ENV,
        )
        return missing


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


@dataclass
class Postgres:
    runner: CommandRunner
    superuser: str = "postgres"

    def _psql(self, sql: str, *, label: str, database: str | None = None) -> str:
        argv = ["runuser", "-u", self.superuser, "--", "psql", "-X", "-q", "-t", "-A", "-v", "ON_ERROR_STOP=1"]
        if database:
            argv += ["-d", database]
        res = self.runner.run_checked(argv, label=label, input=sql + "\n")
        return (res.stdout or "").strip()

    def database_exists(self, name: str) -> bool:
        out = self._psql(
            f"SELECT 1 FROM pg_database WHERE datname = {quote_literal(name)};",
            label=f"look up database {name}",
        )
        return out == "1"

    def role_exists(self, name: str) -> bool:
        out = self._psql(
            f"SELECT 1 FROM pg_roles WHERE rolname = {quote_literal(name)};",
            label=f"look up role {name}",
        )
        return out == "1"

    def ensure_role(self, name: str, password: str) -> bool:
        """Create the login role, or re-assert its password. Returns True when created."""
        if self.role_exists(name):
            self._psql(
                f"ALTER ROLE {quote_ident(name)} WITH LOGIN PASSWORD {quote_literal(password)};",
                label=f"update role {name}",
            )
            return False
        self._psql(
            f"CREATE ROLE {quote_ident(name)} WITH LOGIN PASSWORD {quote_literal(password)};",
            label=f"create role {name}",
        )
        return True

    def ensure_database(self, name: str, owner: str) -> bool:
        """Create the database if absent and re-assert its owner. Returns True when created."""
        created = False
        if not self.database_exists(name):
            self._psql(
                f"CREATE DATABASE {quote_ident(name)} OWNER {quote_ident(owner)};",
                label=f"create database {name}",
            )
            created = True
        self._psql(
            f"ALTER DATABASE {quote_ident(name)} OWNER TO {quote_ident(owner)};",
            label=f"set owner of database {name}",
        )
        return created

    def grant_schema_create(self, database: str, role: str, schema: str = "public") -> None:
        # PostgreSQL 15+ no longer grants CREATE on public to every role.
        self._psql(
            f"GRANT CREATE ON SCHEMA {quote_ident(schema)} TO {quote_ident(role)};",
            label=f"grant CREATE on schema {schema} to {role}",
            database=database,
        )


@dataclass
class Systemd:
    runner: CommandRunner

    def daemon_reload(self) -> None:
        self.runner.run_checked(["systemctl", "daemon-reload"], label="reload systemd units")

    def enable_now(self, *units: str) -> None:
        self.runner.run_checked(
            ["systemctl", "enable", "--now", *units],
            label=f"enable and start {', '.join(units)}",
        )

    def reload_or_restart(self, unit: str) -> None:
        self.runner.run_checked(["systemctl", "reload-or-restart", unit], label=f"reload {unit}")


@dataclass
class Accounts:
    runner: CommandRunner

    def user_exists(self, name: str) -> bool:
        return self.runner.succeeds(["id", "-u", name])

    def ensure_system_user(self, name: str) -> bool:
        if self.user_exists(name):
            return False
        self.runner.run_checked(
            ["adduser", "--system", "--group", name],
            label=f"create system user {name}",
        )
        return True

    def chown_tree(self, owner: str, paths: Iterable[Path]) -> None:
        targets = [str(p) for p in paths]
        if not targets:
            return
        self.runner.run_checked(
            ["chown", "-R", f"{owner}:{owner}", *targets],
            label=f"hand {', '.join(targets)} to {owner}",
        )

    def set_group(self, path: Path, group: str) -> None:
        self.runner.run_checked(["chgrp", group, str(path)], label=f"set group of {path} to {group}")


def discover_address(runner: CommandRunner, *, fallback: str) -> str:
    """First IPv4 address reported by ``hostname -I``, else ``fallback``."""
    try:
        res = runner.run(["hostname", "-I"])
    except CommandError:
        res = None
    output = (res.stdout or "") if res is not None and res.returncode == 0 else ""
    for token in output.split():
        try:
            addr = ipaddress.ip_address(token)
        except ValueError:
            continue
        if addr.version == 4 and not addr.is_loopback and not addr.is_link_local:
            return str(addr)
    log.warning("could not determine host address; falling back to %s", fallback)
    return fallback


def python_version(runner: CommandRunner, interpreter: str = "python3") -> tuple[int, int]:
    res = runner.run_checked(
        [interpreter, "-c", "import sys; print('%d.%d' % sys.version_info[:2])"],
        label=f"query {interpreter} version",
    )
    parsed = parse_python_version(res.stdout or "")
    if parsed is None:
        raise HostEnvironmentError(f"Unexpected {interpreter} version output: {(res.stdout or '').strip()!r}")
    return parsed


def write_file(path: Path, content: str, *, mode: int = 0o644) -> bool:
    """Write ``content`` unless it is already there. Returns True when the file changed."""
    path = Path(path)
    changed = True
    if path.is_file():
        changed = path.read_text(encoding="utf-8") != content
    if changed:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}-", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    else:
        os.chmod(path, mode)
    return changed


def copy_file(src: Path, dst: Path, *, mode: int = 0o644) -> bool:
    src = Path(src)
    if not src.is_file():
        raise HostEnvironmentError(f"Missing file: {src}")
    return write_file(Path(dst), src.read_text(encoding="utf-8"), mode=mode)


def ensure_symlink(link: Path, target: Path) -> bool:
    """Point ``link`` at ``target`` (replaced atomically, like ``ln -sfn``)."""
    link = Path(link)
    if link.is_symlink() and os.readlink(link) == str(target):
        return False
    if link.exists() and not link.is_symlink():
        raise HostEnvironmentError(f"{link} exists and is not a symlink; move it away and re-run.")
    link.parent.mkdir(parents=True, exist_ok=True)
    tmp = link.with_name(f".{link.name}.tmp-{os.getpid()}")
    if tmp.is_symlink() or tmp.exists():
        tmp.unlink()
    os.symlink(str(target), tmp)
    os.replace(tmp, link)
    return True


def remove_link(path: Path) -> bool:
    path = Path(path)
    if path.is_symlink() or path.is_file():
        path.unlink()
        return True
    return False
