from __future__ import annotations

from .config_types import StackConfig
from .host import Systemd, ensure_symlink, remove_link, write_file
from .runner import CommandRunner


def render_site(cfg: StackConfig, address: str) -> str:
    static_dir = cfg.project_dir / "static"
    return "\n".join(
        [
            "server {",
            "    listen 80;",
            f"    server_name {address};",
            "    return 301 https://$host$request_uri;",
            "}",
            "",
            "server {",
            "    listen 443 ssl;",
            f"    server_name {address};",
            "",
            f"    ssl_certificate {cfg.tls_cert_path};",
            f"    ssl_certificate_key {cfg.tls_key_path};",
            "",
            "    client_max_body_size 25m;",
            "",
            "    location /static/ {",
            f"        alias {static_dir}/;",
            "    }",
            "",
            "    location / {",
            f"        proxy_pass http://{cfg.gunicorn_bind};",
            "        proxy_set_header X-Forwarded-Host $http_host;",
            "        proxy_set_header X-Real-IP $remote_addr;",
            "        proxy_set_header X-Forwarded-Proto $scheme;",
            "    }",
            "}",
            "",
        ]
    )


def install_site(cfg: StackConfig, address: str, runner: CommandRunner) -> bool:
    """Write and enable the site, then validate and reload nginx. Returns True when the site file changed."""
    changed = write_file(cfg.nginx_site_path, render_site(cfg, address))
    remove_link(cfg.nginx_default_enabled_path)
    ensure_symlink(cfg.nginx_enabled_path, cfg.nginx_site_path)
    runner.run_checked(["nginx", "-t"], label="validate nginx configuration")
    Systemd(runner).reload_or_restart("nginx")
    return changed
