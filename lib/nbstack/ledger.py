from __future__ import annotations

import logging
import os
import secrets
import string
import tempfile
import tomllib
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import tomli_w

from .errors import HostEnvironmentError

log = logging.getLogger(__name__)

SECRET_ALPHABET = string.ascii_letters + string.digits


@dataclass(frozen=True)
class SecretSpec:
    name: str
    length: int


DB_PASSWORD = SecretSpec("db_password", 32)
SECRET_KEY = SecretSpec("secret_key", 60)
API_TOKEN_PEPPER = SecretSpec("api_token_pepper", 60)
ADMIN_PASSWORD = SecretSpec("admin_password", 16)

STACK_SECRETS = (DB_PASSWORD, SECRET_KEY, API_TOKEN_PEPPER, ADMIN_PASSWORD)

ADMIN_ACCOUNT_MARKER = "admin_account"
# The account existed before nbstack; its password is not the stored admin_password.
ADMIN_PREEXISTING_MARKER = "admin_account_preexisting"


def generate_secret(length: int, alphabet: str = SECRET_ALPHABET) -> str:
    if length <= 0:
        raise ValueError("Secret length must be positive.")
    return "".join(secrets.choice(alphabet) for _ in range(length))


class Ledger:
    """Persisted secrets and completion markers for one host.

    A secret is written to disk before it is handed out, and once written it
    is returned as-is on every later call, including from later processes.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._data: dict[str, dict[str, Any]] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, dict[str, Any]]:
        if self._data is not None:
            return self._data
        try:
            with self._path.open("rb") as f:
                raw = tomllib.load(f)
        except FileNotFoundError:
            raw = {}
        except tomllib.TOMLDecodeError as exc:
            raise HostEnvironmentError(
                f"Ledger {self._path} is unreadable ({exc}). Fix or restore it; "
                "secrets are never regenerated over an existing ledger."
            ) from exc
        data: dict[str, dict[str, Any]] = {"secrets": {}, "markers": {}}
        for table in ("secrets", "markers"):
            value = raw.get(table)
            if value is None:
                continue
            if not isinstance(value, dict):
                raise HostEnvironmentError(f"Ledger {self._path}: [{table}] must be a table.")
            data[table] = dict(value)
        self._data = data
        return data

    def _save(self) -> None:
        data = self._load()
        parent = self._path.parent
        if not parent.is_dir():
            parent.mkdir(parents=True)
            os.chmod(parent, 0o700)
        payload = tomli_w.dumps(data).encode("utf-8")
        fd, tmp_name = tempfile.mkstemp(prefix=".ledger-", dir=self._path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get_secret(self, name: str) -> str | None:
        value = self._load()["secrets"].get(name)
        if value is None:
            return None
        if not isinstance(value, str) or not value:
            raise HostEnvironmentError(f"Ledger {self._path}: secret {name!r} is corrupt.")
        return value

    def secret(self, item: SecretSpec) -> str:
        existing = self.get_secret(item.name)
        if existing is not None:
            return existing
        value = generate_secret(item.length)
        self._load()["secrets"][item.name] = value
        self._save()
        log.info("generated secret %s", item.name)
        return value

    def secret_names(self) -> list[str]:
        return sorted(self._load()["secrets"])

    def is_done(self, marker: str) -> bool:
        return marker in self._load()["markers"]

    def mark_done(self, marker: str, *, at: datetime | None = None) -> None:
        stamp = (at or datetime.now(timezone.utc)).isoformat()
        self._load()["markers"][marker] = stamp
        self._save()

    def markers(self) -> dict[str, str]:
        return {str(k): str(v) for k, v in self._load()["markers"].items()}
