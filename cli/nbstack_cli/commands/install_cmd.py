from __future__ import annotations

import shlex

import typer

from nbstack.errors import CommandError, ProvisionError, ReleaseError
from nbstack.provision import ProvisionSummary, Provisioner, StepEvent

from .. import console
from ..formatting import tail
from ._common import config_override, load_config_or_exit


class StepPrinter:
    """Renders provisioner progress and remembers which step failed."""

    def __init__(self) -> None:
        self.failed_step: str | None = None

    def __call__(self, event: StepEvent) -> None:
        if event.phase == "started":
            console.step(event.index, event.total, event.title)
        elif event.phase == "done":
            console.ok(f"[{event.index}/{event.total}] {event.step}: {event.note}")
        elif event.phase == "failed":
            self.failed_step = event.step


def exit_code_for(exc: ProvisionError) -> int:
    if isinstance(exc, (CommandError, ReleaseError)):
        return 1
    return 2


def report_failure(step: str | None, exc: ProvisionError) -> None:
    console.err(f"{step or 'install'}: {exc}")
    if isinstance(exc, CommandError):
        if exc.argv:
            console.print(f"Command: {shlex.join(exc.argv)}", markup=False)
        console.output_tail("Last stdout", tail(exc.stdout))
        console.output_tail("Last stderr", tail(exc.stderr))
    console.info("Fix the problem and re-run nbstack; finished work is detected and kept.")


def print_summary(summary: ProvisionSummary) -> None:
    console.rule("NetBox is ready")
    console.ok(f"URL: {summary.url}")
    if summary.version:
        console.info(f"Version: {summary.version}")
    console.info(f"Admin user: {summary.admin_username}")
    if summary.admin_password_stored:
        console.info(f"Credentials: {summary.ledger_path} (admin_password)")
    else:
        console.warn(
            f"Admin user {summary.admin_username} already existed; its password was left unchanged "
            f"and is not the admin_password in {summary.ledger_path}."
        )
    console.warn("The TLS certificate is self-signed; browsers will ask you to trust it.")


def run_install(override: str | None) -> None:
    cfg = load_config_or_exit(override)
    printer = StepPrinter()
    provisioner = Provisioner(cfg, on_step=printer)
    console.rule("nbstack install")
    try:
        summary = provisioner.run()
    except ProvisionError as exc:
        report_failure(printer.failed_step, exc)
        raise typer.Exit(code=exit_code_for(exc))
    print_summary(summary)


def install(ctx: typer.Context) -> None:
    """Provision (or re-assert) the NetBox stack on this host."""
    run_install(config_override(ctx))
