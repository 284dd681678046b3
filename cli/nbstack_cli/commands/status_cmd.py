from __future__ import annotations

import typer
from rich.table import Table

from nbstack.errors import HostEnvironmentError
from nbstack.ledger import Ledger

from .. import console
from ..formatting import format_list_timestamp
from ._common import config_override, load_config_or_exit


def status(ctx: typer.Context) -> None:
    """Show stored secrets (names only) and completion markers."""
    cfg = load_config_or_exit(config_override(ctx))
    ledger = Ledger(cfg.ledger_path)
    if not ledger.path.exists():
        console.warn(f"No ledger at {ledger.path}; nbstack has not run on this host yet.")
        return
    try:
        names = ledger.secret_names()
        markers = ledger.markers()
    except HostEnvironmentError as exc:
        console.err(str(exc))
        raise typer.Exit(code=2)

    table = Table(title="Ledger")
    table.add_column("kind", style="bold")
    table.add_column("name")
    table.add_column("state", no_wrap=True)
    for name in names:
        table.add_row("secret", name, "stored")
    for name, stamp in sorted(markers.items()):
        table.add_row("marker", name, format_list_timestamp(stamp))
    console.console.print(table)
    console.info(f"Ledger file: {ledger.path}")
