"""Minimal ``.env`` support so local runs can keep VIDFORGE_* settings in a file."""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator
from pathlib import Path

_QUOTES = ("'", '"')


def default_env_path() -> Path:
  return Path(__file__).resolve().parents[2] / ".env"


def parse_env_lines(lines: Iterable[str]) -> Iterator[tuple[str, str]]:
  """Yield ``(key, value)`` pairs; comments, blank lines and malformed lines are skipped.

  Accepts an optional ``export`` prefix and one level of matching quotes.
  """
  for raw in lines:
    line = raw.strip()
    if line.startswith("#"):
      continue
    line = line.removeprefix("export ").lstrip()
    key, sep, value = line.partition("=")
    key, value = key.strip(), value.strip()
    if not sep or not key:
      continue
    if len(value) >= 2 and value[0] in _QUOTES and value[-1] == value[0]:
      value = value[1:-1]
    yield key, value


def load_env_file(path: Path, *, override: bool = False) -> dict[str, str]:
  """Copy pairs from ``path`` into ``os.environ`` and return the ones applied.

  Existing variables win unless ``override`` is set. A missing file is not an error.
  """
  if not path.is_file():
    return {}
  applied = {key: value for key, value in parse_env_lines(path.read_text(encoding="utf-8").splitlines()) if override or key not in os.environ}
  os.environ.update(applied)
  return applied
