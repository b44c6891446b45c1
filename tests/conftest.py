from __future__ import annotations

import pytest

from fakes import Engine, build_engine


@pytest.fixture
def engine() -> Engine:
    return build_engine()
