from __future__ import annotations

import typer

from .commands import config_cmd, install_cmd, status_cmd
from .logging_ import setup_logging


def _build_app() -> typer.Typer:
    app = typer.Typer(
        name="nbstack",
        help="Provision a NetBox stack on this host.",
        no_args_is_help=False,
    )

    app.command("install")(install_cmd.install)
    app.command("status")(status_cmd.status)
    app.add_typer(config_cmd.app, name="config")

    @app.callback(invoke_without_command=True)
    def _main(
            ctx: typer.Context,
            verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logs."),
            config: str | None = typer.Option(None, "--config", help="Path to the config file."),
    ):
        setup_logging(verbose)
        ctx.obj = {"config_path": config}
        if ctx.invoked_subcommand is None:
            install_cmd.run_install(config)

    return app


app = _build_app()
