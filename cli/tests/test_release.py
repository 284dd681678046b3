from __future__ import annotations

import os
from dataclasses import replace

import httpx
import pytest

from nbstack.errors import ReleaseError
from nbstack.release import activate_release, fetch_release, installed_version, resolve_version

from fakes import RELEASE, build_release_archive


def test_latest_release_is_read_from_redirect(stack) -> None:
    with stack.http_client() as client:
        assert resolve_version(stack.cfg, client) == (RELEASE, "latest")


def test_pinned_version_skips_discovery(stack) -> None:
    stack.github.offline = True
    cfg = replace(stack.cfg, version="v4.1.0")
    with stack.http_client() as client:
        assert resolve_version(cfg, client) == ("4.1.0", "pinned")


def test_discovery_failure_falls_back_to_installed_release(stack) -> None:
    cfg = stack.cfg
    cfg.release_dir("4.0.9").mkdir(parents=True)
    activate_release(cfg, "4.0.9")
    stack.github.offline = True
    with stack.http_client() as client:
        assert resolve_version(cfg, client) == ("4.0.9", "installed")


def test_discovery_failure_without_installed_release_is_fatal(stack) -> None:
    stack.github.offline = True
    with stack.http_client() as client, pytest.raises(ReleaseError):
        resolve_version(stack.cfg, client)


def test_unparseable_landing_page_is_an_error(stack) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="rate limited")

    with httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True) as client:
        with pytest.raises(ReleaseError):
            resolve_version(stack.cfg, client)


def test_fetch_release_extracts_and_is_skipped_afterwards(stack) -> None:
    cfg = stack.cfg
    with stack.http_client() as client:
        assert fetch_release(cfg, RELEASE, client) is True
        assert fetch_release(cfg, RELEASE, client) is False
    root = cfg.release_dir(RELEASE)
    assert (root / "upgrade.sh").is_file()
    assert (root / "netbox" / "netbox" / "configuration_example.py").is_file()
    assert stack.github.downloads == 1
    assert sorted(os.listdir(cfg.install_root)) == [f"netbox-{RELEASE}"]


def test_missing_archive_is_a_release_error(stack) -> None:
    with stack.http_client() as client, pytest.raises(ReleaseError) as excinfo:
        fetch_release(stack.cfg, "9.9.9", client)
    assert "404" in str(excinfo.value)
    assert not stack.cfg.release_dir("9.9.9").exists()


def test_archive_without_expected_tree_is_rejected(stack) -> None:
    stack.github.archive = build_release_archive("4.0.0")
    with stack.http_client() as client, pytest.raises(ReleaseError):
        fetch_release(stack.cfg, RELEASE, client)
    assert os.listdir(stack.cfg.install_root) == []


def test_installed_version_reads_symlink(stack) -> None:
    cfg = stack.cfg
    assert installed_version(cfg) is None
    cfg.release_dir(RELEASE).mkdir(parents=True)
    activate_release(cfg, RELEASE)
    assert installed_version(cfg) == RELEASE
