from __future__ import annotations

from pathlib import Path

import pytest

from tests.fakes import FakeClock, FakeGenerator, RecordingTrackingStore, make_settings
from vidforge.config import Settings


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
  return FakeClock()


@pytest.fixture
def generator() -> FakeGenerator:
  return FakeGenerator()


@pytest.fixture
def tracking() -> RecordingTrackingStore:
  return RecordingTrackingStore()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
  return make_settings(tmp_path)
