from __future__ import annotations

import logging

from rich.logging import RichHandler

from .console import err_console

# Chatty at INFO; only let them through with --verbose.
_NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    handler = RichHandler(
        console=err_console,
        show_time=verbose,
        show_path=verbose,
        markup=False,
        rich_tracebacks=False,
    )
    logging.basicConfig(level=level, format="%(name)s: %(message)s", datefmt="[%X]", handlers=[handler])

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)
