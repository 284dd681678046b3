from __future__ import annotations

import os
import subprocess

import pytest

from nbstack.errors import CommandError
from nbstack.nginx import install_site, render_site


def test_render_site_redirects_and_proxies(stack) -> None:
    site = render_site(stack.cfg, "192.0.2.10")
    assert "return 301 https://$host$request_uri;" in site
    assert "listen 443 ssl;" in site
    assert "server_name 192.0.2.10;" in site
    assert "client_max_body_size 25m;" in site
    assert f"alias {stack.cfg.app_dir}/netbox/static/;" in site
    assert "proxy_pass http://127.0.0.1:8001;" in site
    assert f"ssl_certificate_key {stack.cfg.tls_key_path};" in site


def test_install_site_enables_and_reloads(stack) -> None:
    cfg = stack.cfg
    os.makedirs(cfg.nginx_sites_enabled)
    default = cfg.nginx_default_enabled_path
    os.symlink("/etc/nginx/sites-available/default", default)

    assert install_site(cfg, "192.0.2.10", stack.host) is True
    assert not os.path.lexists(default)
    assert os.readlink(cfg.nginx_enabled_path) == str(cfg.nginx_site_path)
    assert stack.host.calls == [["nginx", "-t"], ["systemctl", "reload-or-restart", "nginx"]]

    assert install_site(cfg, "192.0.2.10", stack.host) is False


def test_failed_config_test_skips_reload(stack, monkeypatch) -> None:
    calls = []

    def run(argv, **kwargs):
        calls.append(list(argv))
        return subprocess.CompletedProcess(list(argv), 1, "", "nginx: [emerg] unknown directive")

    monkeypatch.setattr(stack.host, "run", run)
    with pytest.raises(CommandError) as excinfo:
        install_site(stack.cfg, "192.0.2.10", stack.host)
    assert "unknown directive" in excinfo.value.stderr
    assert calls == [["nginx", "-t"]]
