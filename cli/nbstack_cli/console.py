from __future__ import annotations

from rich.console import Console
from rich.markup import escape

console = Console()
# Log records go to stderr so progress and summary stay readable on stdout.
err_console = Console(stderr=True)


def info(msg: str) -> None:
    console.print(f"[bold cyan]•[/] {escape(msg)}")


def ok(msg: str) -> None:
    console.print(f"[bold green]OK[/] {escape(msg)}")


def warn(msg: str) -> None:
    console.print(f"[bold yellow]WARN[/] {escape(msg)}")


def err(msg: str) -> None:
    console.print(f"[bold red]ERR[/] {escape(msg)}")


def step(index: int, total: int, title: str) -> None:
    console.print(f"[dim]\\[{index}/{total}][/] [bold]{escape(title)}[/]")


def output_tail(label: str, text: str) -> None:
    """Print captured command output verbatim under a dim label."""
    if not text:
        return
    console.print(f"[dim]{escape(label)}:[/]")
    console.print(text, markup=False, highlight=False)


def print(*args, **kwargs):
    """Proxy to underlying rich Console.print()."""
    console.print(*args, **kwargs)


def rule(*args, **kwargs):
    """Proxy to underlying rich Console.rule()."""
    console.rule(*args, **kwargs)
