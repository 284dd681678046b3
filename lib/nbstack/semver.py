from __future__ import annotations

import re

_SEMVER_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)$")
_TAG_IN_URL_RE = re.compile(r"/tag/(v?\d+\.\d+\.\d+)/?$")


def parse_semver(text: str) -> tuple[int, int, int] | None:
    m = _SEMVER_RE.match((text or "").strip())
    if not m:
        return None
    return int(m.group(1)), int(m.group(2)), int(m.group(3))


def normalize_version(text: str) -> str | None:
    """Return ``X.Y.Z`` for ``vX.Y.Z`` / ``X.Y.Z``, or None when it is not a version."""
    parsed = parse_semver(text)
    if parsed is None:
        return None
    return ".".join(str(part) for part in parsed)


def tag_from_release_url(url: str) -> str | None:
    m = _TAG_IN_URL_RE.search((url or "").strip())
    if not m:
        return None
    return m.group(1)


def parse_python_version(text: str) -> tuple[int, int] | None:
    parts = (text or "").strip().split(".")
    if len(parts) < 2 or not parts[0].isdigit() or not parts[1].isdigit():
        return None
    return int(parts[0]), int(parts[1])
