from __future__ import annotations

import pytest

from fakes import FakeHost, Stack


@pytest.fixture
def stack(tmp_path) -> Stack:
    return Stack(tmp_path)


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()
