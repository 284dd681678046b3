"""The provisioning sequence.

Steps run strictly in order and each one is safe to repeat: it queries the
host first and only mutates what is missing or out of date. The first
exception aborts the run; re-running picks up where the host state left off.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import httpx

from .config_doc import synthesize
from .config_types import StackConfig
from .errors import CommandError, HostEnvironmentError
from .host import Accounts, Apt, Postgres, Systemd, copy_file, discover_address, python_version, write_file
from .ledger import (
    ADMIN_ACCOUNT_MARKER,
    ADMIN_PASSWORD,
    ADMIN_PREEXISTING_MARKER,
    API_TOKEN_PEPPER,
    DB_PASSWORD,
    SECRET_KEY,
    STACK_SECRETS,
    Ledger,
)
from .nginx import install_site
from .release import activate_release, fetch_release, make_http_client, resolve_version
from .runner import CommandRunner
from .semver import parse_python_version
from .tls import ensure_self_signed_cert

log = logging.getLogger(__name__)

REQUIRED_TOOLS = ("apt-get", "dpkg-query", "systemctl")
LEGACY_SETTINGS = ("DATABASE",)
ACCOUNT_TAKEN = "already taken"


@dataclass(frozen=True)
class StepEvent:
    step: str
    title: str
    phase: str  # started | done | failed
    index: int
    total: int
    note: str = ""


@dataclass(frozen=True)
class Step:
    name: str
    title: str
    run: Callable[[], str]


@dataclass(frozen=True)
class ProvisionSummary:
    url: str
    address: str
    version: str
    admin_username: str
    ledger_path: Path
    # False when the admin account predates nbstack and kept its own password.
    admin_password_stored: bool = True
    notes: dict[str, str] = field(default_factory=dict)


def stack_settings(cfg: StackConfig, address: str, secrets: dict[str, str]) -> dict[str, Any]:
    """Values for every setting the provisioner owns in ``configuration.py``."""
    hosts = list(dict.fromkeys([address, *cfg.extra_allowed_hosts]))
    redis_common = {
        "HOST": cfg.redis_host,
        "PORT": cfg.redis_port,
        "USERNAME": "",
        "PASSWORD": "",
    }
    return {
        "ALLOWED_HOSTS": hosts,
        "DATABASES": {
            "default": {
                "ENGINE": "django.db.backends.postgresql",
                "NAME": cfg.db_name,
                "USER": cfg.db_user,
                "PASSWORD": secrets[DB_PASSWORD.name],
                "HOST": cfg.db_host,
                "PORT": cfg.db_port,
                "CONN_MAX_AGE": cfg.db_conn_max_age,
            }
        },
        "REDIS": {
            "tasks": {**redis_common, "DATABASE": 0, "SSL": False},
            "caching": {**redis_common, "DATABASE": 1, "SSL": False},
        },
        "SECRET_KEY": secrets[SECRET_KEY.name],
        "API_TOKEN_PEPPERS": {1: secrets[API_TOKEN_PEPPER.name]},
    }


def _count(n: int, noun: str) -> str:
    return f"{n} {noun}" if n == 1 else f"{n} {noun}s"


class Provisioner:
    def __init__(
        self,
        cfg: StackConfig,
        *,
        runner: CommandRunner | None = None,
        ledger: Ledger | None = None,
        http_client: httpx.Client | None = None,
        on_step: Callable[[StepEvent], None] | None = None,
        is_root: Callable[[], bool] | None = None,
    ) -> None:
        self.cfg = cfg
        self.runner = runner or CommandRunner()
        self.ledger = ledger or Ledger(cfg.ledger_path)
        self.on_step = on_step
        self._http_client = http_client
        self._is_root = is_root or (lambda: os.geteuid() == 0)
        self.apt = Apt(self.runner)
        self.postgres = Postgres(self.runner)
        self.systemd = Systemd(self.runner)
        self.accounts = Accounts(self.runner)
        self.secrets: dict[str, str] = {}
        self.address: str | None = None
        self.version: str | None = None

    def steps(self) -> list[Step]:
        return [
            Step("preflight", "Check host", self.preflight),
            Step("base-packages", "Install base packages", self.base_packages),
            Step("python", "Check Python version", self.check_python),
            Step("secrets", "Load secrets", self.load_secrets),
            Step("network", "Discover host address", self.discover_network),
            Step("postgresql", "Set up PostgreSQL", self.setup_postgresql),
            Step("redis", "Set up Redis", self.setup_redis),
            Step("nginx", "Install nginx", self.setup_nginx),
            Step("release", "Fetch NetBox release", self.fetch_release),
            Step("system-user", "Create system user", self.setup_system_user),
            Step("configuration", "Write configuration.py", self.write_configuration),
            Step("upgrade", "Run upgrade.sh", self.run_upgrade),
            Step("services", "Register services", self.register_services),
            Step("tls", "Ensure TLS certificate", self.ensure_tls),
            Step("proxy", "Configure reverse proxy", self.configure_proxy),
            Step("admin-account", "Create admin account", self.create_admin_account),
        ]

    def _emit(self, event: StepEvent) -> None:
        if self.on_step is not None:
            self.on_step(event)

    def run(self) -> ProvisionSummary:
        steps = self.steps()
        total = len(steps)
        notes: dict[str, str] = {}
        for index, step in enumerate(steps, start=1):
            self._emit(StepEvent(step.name, step.title, "started", index, total))
            log.debug("step %s started", step.name)
            try:
                note = step.run()
            except Exception as exc:
                self._emit(StepEvent(step.name, step.title, "failed", index, total, str(exc)))
                raise
            notes[step.name] = note
            log.debug("step %s done: %s", step.name, note)
            self._emit(StepEvent(step.name, step.title, "done", index, total, note))
        return self.summary(notes)

    def summary(self, notes: dict[str, str] | None = None) -> ProvisionSummary:
        address = self.address or self.cfg.fallback_address
        return ProvisionSummary(
            url=f"https://{address}/",
            address=address,
            version=self.version or "",
            admin_username=self.cfg.admin_username,
            ledger_path=self.ledger.path,
            admin_password_stored=not self.ledger.is_done(ADMIN_PREEXISTING_MARKER),
            notes=dict(notes or {}),
        )

    def preflight(self) -> str:
        if not self._is_root():
            raise HostEnvironmentError("nbstack must run as root (try sudo).")
        missing = [tool for tool in REQUIRED_TOOLS if not self.runner.which(tool)]
        if missing:
            raise HostEnvironmentError(
                f"Required tools not found: {', '.join(missing)}. A Debian-family host with systemd is required."
            )
        return "ok"

    def base_packages(self) -> str:
        installed = self.apt.ensure(self.cfg.base_packages)
        if self.cfg.upgrade_system:
            self.apt.upgrade()
        note = f"installed {_count(len(installed), 'package')}" if installed else "already present"
        if self.cfg.upgrade_system:
            note += ", system upgraded"
        return note

    def check_python(self) -> str:
        wanted = parse_python_version(self.cfg.min_python)
        if wanted is None:
            raise HostEnvironmentError(f"Invalid min_python setting: {self.cfg.min_python!r}")
        found = python_version(self.runner)
        if found < wanted:
            raise HostEnvironmentError(
                f"python3 is {found[0]}.{found[1]}; NetBox needs {wanted[0]}.{wanted[1]} or newer."
            )
        return f"python {found[0]}.{found[1]}"

    def load_secrets(self) -> str:
        generated = 0
        for item in STACK_SECRETS:
            if self.ledger.get_secret(item.name) is None:
                generated += 1
            self.secrets[item.name] = self.ledger.secret(item)
        if generated:
            return f"generated {_count(generated, 'secret')}"
        return "reused from ledger"

    def discover_network(self) -> str:
        if self.cfg.address:
            self.address = self.cfg.address
            return f"{self.address} (configured)"
        self.address = discover_address(self.runner, fallback=self.cfg.fallback_address)
        if self.address == self.cfg.fallback_address:
            return f"{self.address} (fallback)"
        return self.address

    def setup_postgresql(self) -> str:
        self.apt.ensure(["postgresql"])
        self.systemd.enable_now("postgresql")
        role_created = self.postgres.ensure_role(self.cfg.db_user, self.secrets[DB_PASSWORD.name])
        db_created = self.postgres.ensure_database(self.cfg.db_name, self.cfg.db_user)
        self.postgres.grant_schema_create(self.cfg.db_name, self.cfg.db_user)
        created = [label for label, flag in (("role", role_created), ("database", db_created)) if flag]
        return f"created {' and '.join(created)}" if created else "already present"

    def _service_package(self, package: str, unit: str) -> str:
        installed = self.apt.ensure([package])
        self.systemd.enable_now(unit)
        return "installed" if installed else "already present"

    def setup_redis(self) -> str:
        return self._service_package("redis-server", "redis-server")

    def setup_nginx(self) -> str:
        return self._service_package("nginx", "nginx")

    def fetch_release(self) -> str:
        if self._http_client is not None:
            return self._fetch_release(self._http_client)
        with make_http_client(self.cfg) as client:
            return self._fetch_release(client)

    def _fetch_release(self, client: httpx.Client) -> str:
        version, source = resolve_version(self.cfg, client)
        self.version = version
        fetched = fetch_release(self.cfg, version, client)
        activate_release(self.cfg, version)
        return f"{self.cfg.app_name} {version} ({source}, {'downloaded' if fetched else 'already present'})"

    def setup_system_user(self) -> str:
        created = self.accounts.ensure_system_user(self.cfg.system_user)
        dirs = self.cfg.writable_dirs
        for path in dirs:
            path.mkdir(parents=True, exist_ok=True)
        self.accounts.chown_tree(self.cfg.system_user, dirs)
        return "created" if created else "already present"

    def write_configuration(self) -> str:
        target = self.cfg.configuration_path
        source = target if target.is_file() else self.cfg.configuration_example_path
        if not source.is_file():
            raise HostEnvironmentError(f"Neither {target.name} nor {source.name} found in {target.parent}.")
        document = synthesize(
            source.read_text(encoding="utf-8"),
            stack_settings(self.cfg, self.address or self.cfg.fallback_address, self.secrets),
            remove=LEGACY_SETTINGS,
        )
        changed = write_file(target, document, mode=0o640)
        self.accounts.set_group(target, self.cfg.system_user)
        return "updated" if changed else "unchanged"

    def run_upgrade(self) -> str:
        script = self.cfg.upgrade_script
        if not script.is_file():
            raise HostEnvironmentError(f"Missing {script}; the release tree is incomplete.")
        self.runner.run_checked([str(script)], label="run upgrade.sh", cwd=self.cfg.app_dir, stream=True)
        return "done"

    def register_services(self) -> str:
        contrib = self.cfg.contrib_dir
        changed = copy_file(contrib / "gunicorn.py", self.cfg.gunicorn_config_path)
        for unit in self.cfg.units:
            changed = copy_file(contrib / unit, Path(self.cfg.systemd_dir) / unit) or changed
        self.systemd.daemon_reload()
        self.systemd.enable_now(*self.cfg.units)
        return "updated" if changed else "unchanged"

    def ensure_tls(self) -> str:
        written = ensure_self_signed_cert(
            Path(self.cfg.tls_cert_path),
            Path(self.cfg.tls_key_path),
            self.address or self.cfg.fallback_address,
            days=self.cfg.tls_days,
        )
        return "generated" if written else "kept existing"

    def configure_proxy(self) -> str:
        changed = install_site(self.cfg, self.address or self.cfg.fallback_address, self.runner)
        return "updated" if changed else "unchanged"

    def create_admin_account(self) -> str:
        if self.ledger.is_done(ADMIN_ACCOUNT_MARKER):
            return "skipped (marker present)"
        argv = [
            str(self.cfg.venv_python),
            str(self.cfg.manage_py),
            "createsuperuser",
            "--no-input",
            "--username",
            self.cfg.admin_username,
            "--email",
            self.cfg.admin_email,
        ]
        res = self.runner.run(
            argv,
            env={"DJANGO_SUPERUSER_PASSWORD": self.secrets[ADMIN_PASSWORD.name]},
            cwd=self.cfg.project_dir,
        )
        note = "created"
        if res.returncode != 0:
            output = f"{res.stdout or ''}\n{res.stderr or ''}"
            if ACCOUNT_TAKEN not in output.lower():
                raise CommandError(
                    f"Failed to create admin account {self.cfg.admin_username} (exit {res.returncode}).",
                    argv=argv,
                    returncode=res.returncode,
                    stdout=res.stdout,
                    stderr=res.stderr,
                )
            log.warning("admin account %s already exists; recording it as done", self.cfg.admin_username)
            note = "already exists"
            self.ledger.mark_done(ADMIN_PREEXISTING_MARKER)
        self.ledger.mark_done(ADMIN_ACCOUNT_MARKER)
        return note
