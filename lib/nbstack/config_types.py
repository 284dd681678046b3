from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from platformdirs import user_state_dir

APP_NAME = "nbstack"
FALLBACK_ADDRESS = "127.0.0.1"

BASE_PACKAGES = (
    "python3",
    "python3-pip",
    "python3-venv",
    "python3-dev",
    "build-essential",
    "libxml2-dev",
    "libxslt1-dev",
    "libffi-dev",
    "libpq-dev",
    "libssl-dev",
    "zlib1g-dev",
    "git",
    "curl",
)


def default_state_dir() -> str:
    return user_state_dir(APP_NAME)


@dataclass(frozen=True)
class StackConfig:
    install_root: str = "/opt"
    app_name: str = "netbox"
    release_repo: str = "netbox-community/netbox"
    github_url: str = "https://github.com"
    version: str | None = None
    state_dir: str = field(default_factory=default_state_dir)
    address: str | None = None
    fallback_address: str = FALLBACK_ADDRESS
    extra_allowed_hosts: tuple[str, ...] = ()
    db_name: str = "netbox"
    db_user: str = "netbox"
    db_host: str = "localhost"
    db_port: str = ""
    db_conn_max_age: int = 300
    redis_host: str = "localhost"
    redis_port: int = 6379
    system_user: str = "netbox"
    admin_username: str = "admin"
    admin_email: str = "admin@example.com"
    upgrade_system: bool = False
    min_python: str = "3.12"
    base_packages: tuple[str, ...] = BASE_PACKAGES
    units: tuple[str, ...] = ("netbox.service", "netbox-rq.service")
    systemd_dir: str = "/etc/systemd/system"
    nginx_sites_available: str = "/etc/nginx/sites-available"
    nginx_sites_enabled: str = "/etc/nginx/sites-enabled"
    tls_cert_path: str = "/etc/ssl/certs/netbox.crt"
    tls_key_path: str = "/etc/ssl/private/netbox.key"
    tls_days: int = 365
    gunicorn_bind: str = "127.0.0.1:8001"
    http_timeout_s: float = 30.0

    @property
    def app_dir(self) -> Path:
        return Path(self.install_root) / self.app_name

    def release_dir(self, version: str) -> Path:
        return Path(self.install_root) / f"{self.app_name}-{version}"

    @property
    def project_dir(self) -> Path:
        return self.app_dir / "netbox"

    @property
    def config_dir(self) -> Path:
        return self.project_dir / "netbox"

    @property
    def configuration_path(self) -> Path:
        return self.config_dir / "configuration.py"

    @property
    def configuration_example_path(self) -> Path:
        return self.config_dir / "configuration_example.py"

    @property
    def writable_dirs(self) -> list[Path]:
        return [self.project_dir / name for name in ("media", "reports", "scripts")]

    @property
    def upgrade_script(self) -> Path:
        return self.app_dir / "upgrade.sh"

    @property
    def venv_python(self) -> Path:
        return self.app_dir / "venv" / "bin" / "python"

    @property
    def manage_py(self) -> Path:
        return self.project_dir / "manage.py"

    @property
    def contrib_dir(self) -> Path:
        return self.app_dir / "contrib"

    @property
    def gunicorn_config_path(self) -> Path:
        return self.app_dir / "gunicorn.py"

    @property
    def ledger_path(self) -> Path:
        return Path(self.state_dir).expanduser() / "ledger.toml"

    @property
    def nginx_site_path(self) -> Path:
        return Path(self.nginx_sites_available) / self.app_name

    @property
    def nginx_enabled_path(self) -> Path:
        return Path(self.nginx_sites_enabled) / self.app_name

    @property
    def nginx_default_enabled_path(self) -> Path:
        return Path(self.nginx_sites_enabled) / "default"

    @property
    def release_archive_url_base(self) -> str:
        return f"{self.github_url.rstrip('/')}/{self.release_repo}"
