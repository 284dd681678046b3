from __future__ import annotations


class ProvisionError(RuntimeError):
    """Base provisioning error."""


class HostEnvironmentError(ProvisionError):
    """The host cannot be provisioned as it is (privileges, missing tools, broken state)."""


class CommandError(ProvisionError):
    def __init__(
        self,
        message: str,
        *,
        argv: list[str] | None = None,
        returncode: int | None = None,
        stdout: str | None = None,
        stderr: str | None = None,
    ) -> None:
        super().__init__(message)
        self.argv = list(argv or [])
        self.returncode = returncode
        self.stdout = stdout or ""
        self.stderr = stderr or ""


class ConfigSynthesisError(ProvisionError):
    """Configuration document could not be parsed or rewritten."""


class ReleaseError(ProvisionError):
    """Application release could not be discovered or retrieved."""
