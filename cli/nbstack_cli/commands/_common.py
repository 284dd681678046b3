from __future__ import annotations

import typer

from nbstack.config_types import StackConfig

from .. import console
from ..config import ConfigFileError, load_config


def config_override(ctx: typer.Context) -> str | None:
    obj = ctx.find_root().obj or {}
    return obj.get("config_path")


def load_config_or_exit(override: str | None) -> StackConfig:
    try:
        return load_config(override)
    except ConfigFileError as exc:
        console.err(f"Invalid configuration: {exc}")
        raise typer.Exit(code=2)
