"""Shared test fixtures."""

from __future__ import annotations

import zoneinfo
from typing import TYPE_CHECKING

import pytest
from factories import FakeTransport

from rudder.store.sqlite import SqliteStore

if TYPE_CHECKING:
    from pathlib import Path

TZ_NAME = "America/Detroit"


@pytest.fixture
def tz() -> zoneinfo.ZoneInfo:
    return zoneinfo.ZoneInfo(TZ_NAME)


@pytest.fixture
async def store(tmp_path: Path) -> SqliteStore:
    """Create a SqliteStore backed by a temp database."""
    return SqliteStore(db_path=tmp_path / "test.db")


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture(autouse=True)
def _reset_store_singleton():
    """Keep the SqliteStore singleton from leaking between tests."""
    SqliteStore._reset()
    yield
    SqliteStore._reset()
