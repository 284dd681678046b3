from __future__ import annotations

import os

import tomli_w
import typer

from nbstack.config_types import StackConfig

from .. import console
from ..config import config_path, save_config, to_toml
from ._common import config_override, load_config_or_exit

app = typer.Typer(help="Operator configuration file.")


@app.command("init")
def init(
        ctx: typer.Context,
        force: bool = typer.Option(False, "--force", help="Overwrite an existing file."),
) -> None:
    """Write the default settings to the config file for editing."""
    override = config_override(ctx)
    path = config_path(override)
    if os.path.exists(path) and not force:
        console.err(f"{path} already exists (use --force to overwrite).")
        raise typer.Exit(code=2)
    saved = save_config(StackConfig(), override)
    console.ok(f"Wrote {saved}")


@app.command("show")
def show(ctx: typer.Context) -> None:
    """Print the effective settings."""
    override = config_override(ctx)
    cfg = load_config_or_exit(override)
    console.info(f"Config file: {config_path(override)}")
    console.print(tomli_w.dumps(to_toml(cfg)), markup=False, highlight=False)
