from __future__ import annotations

import logging
import os
import shutil
import tarfile
import tempfile
from pathlib import Path

import httpx

from .config_types import StackConfig
from .errors import ReleaseError
from .host import ensure_symlink
from .semver import normalize_version, tag_from_release_url

log = logging.getLogger(__name__)

USER_AGENT = "nbstack/0.1.0"


def make_http_client(cfg: StackConfig, *, transport: httpx.BaseTransport | None = None) -> httpx.Client:
    return httpx.Client(
        timeout=cfg.http_timeout_s,
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
        transport=transport,
    )


def discover_latest_tag(cfg: StackConfig, client: httpx.Client) -> str:
    url = f"{cfg.release_archive_url_base}/releases/latest"
    try:
        response = client.get(url)
    except httpx.RequestError as exc:
        raise ReleaseError(f"Failed to reach {url}: {exc}") from exc
    tag = tag_from_release_url(str(response.url))
    if tag is None:
        raise ReleaseError(f"Could not determine the latest release from {url} (landed on {response.url}).")
    return tag


def installed_version(cfg: StackConfig) -> str | None:
    link = cfg.app_dir
    if not link.is_symlink():
        return None
    target = Path(os.readlink(link)).name
    prefix = f"{cfg.app_name}-"
    if not target.startswith(prefix):
        return None
    return normalize_version(target[len(prefix):])


def resolve_version(cfg: StackConfig, client: httpx.Client) -> tuple[str, str]:
    """Return ``(version, source)`` where source is ``pinned``, ``latest`` or ``installed``."""
    if cfg.version:
        pinned = normalize_version(cfg.version)
        if pinned is None:
            raise ReleaseError(f"Invalid version pin: {cfg.version!r} (expected X.Y.Z).")
        return pinned, "pinned"
    try:
        tag = discover_latest_tag(cfg, client)
    except ReleaseError as exc:
        current = installed_version(cfg)
        if current is None:
            raise
        log.warning("%s; keeping installed version %s", exc, current)
        return current, "installed"
    version = normalize_version(tag)
    if version is None:
        raise ReleaseError(f"Latest release tag {tag!r} is not a version.")
    return version, "latest"


def _download(url: str, dest: Path, client: httpx.Client) -> None:
    try:
        with client.stream("GET", url) as response:
            response.raise_for_status()
            with dest.open("wb") as f:
                for chunk in response.iter_bytes():
                    f.write(chunk)
    except httpx.HTTPStatusError as exc:
        raise ReleaseError(f"Download failed: {url} returned HTTP {exc.response.status_code}.") from exc
    except httpx.RequestError as exc:
        raise ReleaseError(f"Download failed: {url}: {exc}") from exc


def fetch_release(cfg: StackConfig, version: str, client: httpx.Client) -> bool:
    """Download and unpack ``version`` unless already present. Returns True when fetched.

    The tree is unpacked into a staging directory and moved into place in one
    rename, so an interrupted run never leaves a partial release behind.
    """
    dest = cfg.release_dir(version)
    if dest.is_dir():
        return False
    root = Path(cfg.install_root)
    root.mkdir(parents=True, exist_ok=True)
    url = f"{cfg.release_archive_url_base}/archive/refs/tags/v{version}.tar.gz"
    staging = Path(tempfile.mkdtemp(prefix=f".{cfg.app_name}-staging-", dir=root))
    archive = staging / f"{cfg.app_name}-{version}.tar.gz"
    try:
        log.info("downloading %s", url)
        _download(url, archive, client)
        try:
            with tarfile.open(archive, "r:gz") as tar:
                tar.extractall(staging, filter="data")
        except (tarfile.TarError, OSError) as exc:
            raise ReleaseError(f"Failed to unpack {archive.name}: {exc}") from exc
        unpacked = staging / dest.name
        if not unpacked.is_dir():
            raise ReleaseError(f"Archive {archive.name} does not contain {dest.name}/.")
        os.replace(unpacked, dest)
    finally:
        shutil.rmtree(staging, ignore_errors=True)
    return True


def activate_release(cfg: StackConfig, version: str) -> bool:
    return ensure_symlink(cfg.app_dir, cfg.release_dir(version))
