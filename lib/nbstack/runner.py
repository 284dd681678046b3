from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from typing import Mapping, Sequence

from .errors import CommandError

log = logging.getLogger(__name__)


class CommandRunner:
    """Runs host commands without a shell.

    Every provisioning step reaches the host through one of these, so tests
    substitute a fake that answers queries from an in-memory host.
    Command input and environment values are never logged.
    """

    def __init__(self, *, base_env: Mapping[str, str] | None = None) -> None:
        self._base_env = dict(base_env) if base_env is not None else None

    def _env(self, extra: Mapping[str, str] | None) -> dict[str, str] | None:
        if extra is None and self._base_env is None:
            return None
        env = dict(os.environ if self._base_env is None else self._base_env)
        if extra:
            env.update(extra)
        return env

    def run(
        self,
        argv: Sequence[str],
        *,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
        cwd: str | os.PathLike[str] | None = None,
        stream: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        cmd = [str(part) for part in argv]
        log.debug("run: %s", shlex.join(cmd))
        stdin = None if input is not None else subprocess.DEVNULL
        try:
            if stream:
                return subprocess.run(
                    cmd,
                    text=True,
                    input=input,
                    stdin=stdin,
                    env=self._env(env),
                    cwd=cwd,
                )
            return subprocess.run(
                cmd,
                text=True,
                input=input,
                stdin=stdin,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                env=self._env(env),
                cwd=cwd,
            )
        except FileNotFoundError as exc:
            raise CommandError(f"Command not found: {cmd[0]}", argv=cmd) from exc

    def run_checked(
        self,
        argv: Sequence[str],
        *,
        label: str,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
        cwd: str | os.PathLike[str] | None = None,
        stream: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        res = self.run(argv, input=input, env=env, cwd=cwd, stream=stream)
        if res.returncode != 0:
            raise CommandError(
                f"Failed to {label} (exit {res.returncode}).",
                argv=[str(part) for part in argv],
                returncode=res.returncode,
                stdout=res.stdout,
                stderr=res.stderr,
            )
        return res

    def succeeds(self, argv: Sequence[str]) -> bool:
        try:
            return self.run(argv).returncode == 0
        except CommandError:
            return False

    def which(self, name: str) -> bool:
        return shutil.which(name) is not None
