"""Operator configuration file (optional TOML overrides of the stack defaults)."""
from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import replace
from typing import Any

import tomli_w
from platformdirs import user_config_dir

from nbstack.config_types import APP_NAME, StackConfig
from nbstack.semver import normalize_version, parse_python_version

log = logging.getLogger(__name__)

CONFIG_FILENAME = "config.toml"
ENV_CONFIG_PATH = "NBSTACK_CONFIG"

# key -> expected TOML type
CONFIG_KEYS: dict[str, type] = {
    "install_root": str,
    "state_dir": str,
    "version": str,
    "address": str,
    "extra_allowed_hosts": list,
    "admin_username": str,
    "admin_email": str,
    "upgrade_system": bool,
    "min_python": str,
}


class ConfigFileError(ValueError):
    pass


def default_config_path() -> str:
    return os.path.join(user_config_dir(APP_NAME), CONFIG_FILENAME)


def config_path(override: str | None = None) -> str:
    return override or os.getenv(ENV_CONFIG_PATH, "").strip() or default_config_path()


def _is_explicit(override: str | None) -> bool:
    return bool(override or os.getenv(ENV_CONFIG_PATH, "").strip())


def _check(key: str, value: Any) -> Any:
    expected = CONFIG_KEYS[key]
    if not isinstance(value, expected):
        raise ConfigFileError(f"{key} must be a {expected.__name__}, got {type(value).__name__}.")
    if key == "extra_allowed_hosts":
        if not all(isinstance(item, str) and item.strip() for item in value):
            raise ConfigFileError("extra_allowed_hosts must be a list of non-empty strings.")
        return tuple(item.strip() for item in value)
    if expected is str:
        value = value.strip()
        if not value:
            raise ConfigFileError(f"{key} must not be empty.")
    if key == "version" and normalize_version(value) is None:
        raise ConfigFileError(f"version must look like X.Y.Z, got {value!r}.")
    if key == "min_python" and parse_python_version(value) is None:
        raise ConfigFileError(f"min_python must look like 3.12, got {value!r}.")
    return value


def from_toml(data: dict[str, Any], *, base: StackConfig | None = None) -> StackConfig:
    overrides: dict[str, Any] = {}
    for key, value in data.items():
        if key not in CONFIG_KEYS:
            log.warning("ignoring unknown config key %r", key)
            continue
        overrides[key] = _check(key, value)
    return replace(base or StackConfig(), **overrides)


def to_toml(cfg: StackConfig) -> dict[str, Any]:
    data = {key: getattr(cfg, key) for key in CONFIG_KEYS}
    data["extra_allowed_hosts"] = list(cfg.extra_allowed_hosts)
    return {k: v for k, v in data.items() if v is not None}


def load_config(override: str | None = None) -> StackConfig:
    path = config_path(override)
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        if _is_explicit(override):
            raise ConfigFileError(f"Config file not found: {path}") from None
        return StackConfig()
    except tomllib.TOMLDecodeError as exc:
        raise ConfigFileError(f"{path}: {exc}") from exc
    return from_toml(data)


def save_config(cfg: StackConfig, override: str | None = None) -> str:
    path = config_path(override)
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    with open(path, "wb") as f:
        f.write(tomli_w.dumps(to_toml(cfg)).encode("utf-8"))
    os.chmod(path, 0o600)
    return path
