"""Clock helpers shared by the scheduler and download manager."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
  """Return the current timezone-aware UTC time."""
  return datetime.now(UTC)
