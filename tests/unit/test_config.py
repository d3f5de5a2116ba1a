from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

from tests.fakes import make_settings
from vidforge.config import get_settings
from vidforge.core.logging import TracebackTailFormatter, build_handlers, rotated_log_name
from vidforge.downloads.manager import DownloadConfig
from vidforge.jobs.scheduler import SchedulerConfig
from vidforge.utils.env import load_env_file


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
  get_settings.cache_clear()
  yield
  get_settings.cache_clear()


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
  for key in list(os.environ):
    if key.startswith("VIDFORGE_"):
      monkeypatch.delenv(key)
  settings = get_settings()
  assert settings.max_concurrent_generations == 4
  assert settings.max_generation_attempts == 3
  assert settings.poll_interval_seconds == 30.0
  assert settings.download_url_ttl_seconds == 3600
  assert settings.tracking_webhook_url is None
  assert settings.asset_base_url == "/generated-videos"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("VIDFORGE_MAX_CONCURRENT_GENERATIONS", "2")
  monkeypatch.setenv("VIDFORGE_DEBUG", "yes")
  monkeypatch.setenv("VIDFORGE_TRACKING_WEBHOOK_URL", "https://tracker.test/hook")
  monkeypatch.setenv("VIDFORGE_ASSET_BASE_URL", "https://cdn.test/videos/")
  monkeypatch.setenv("VIDFORGE_JOBS_STORE_DIR", "  ")
  settings = get_settings()
  assert settings.max_concurrent_generations == 2
  assert settings.debug is True
  assert settings.tracking_webhook_url == "https://tracker.test/hook"
  assert settings.asset_base_url == "https://cdn.test/videos"
  assert settings.jobs_store_dir is None


@pytest.mark.parametrize(
  ("key", "value"),
  [
    ("VIDFORGE_MAX_CONCURRENT_GENERATIONS", "0"),
    ("VIDFORGE_POLL_INTERVAL_SECONDS", "-1"),
    ("VIDFORGE_RETRY_BASE_DELAY_SECONDS", "-2"),
    ("VIDFORGE_RETRY_MAX_DELAY_SECONDS", "5"),
    ("VIDFORGE_TRACKING_WEBHOOK_URL", "ftp://tracker.test"),
    ("VIDFORGE_LOG_BACKUP_COUNT", "-1"),
  ],
)
def test_invalid_values_are_rejected(monkeypatch: pytest.MonkeyPatch, key: str, value: str) -> None:
  monkeypatch.setenv(key, value)
  with pytest.raises(ValueError):
    get_settings()


def test_component_configs_follow_settings(tmp_path: Path) -> None:
  settings = make_settings(tmp_path, max_concurrent_generations=6, retry_base_delay_seconds=1.0, retry_max_delay_seconds=30.0, download_max_attempts=5)
  scheduler_config = SchedulerConfig.from_settings(settings)
  assert scheduler_config.max_concurrent == 6
  assert scheduler_config.backoff.base_delay_seconds == 1.0
  assert scheduler_config.backoff.max_delay_seconds == 30.0
  assert DownloadConfig.from_settings(settings).max_attempts == 5


def test_env_file_loading(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
  env_file = tmp_path / ".env"
  env_file.write_text("# comment\nexport VIDFORGE_TEST_A='quoted'\nVIDFORGE_TEST_B = plain\nnot a pair\n=missing-key\n", encoding="utf-8")
  monkeypatch.setenv("VIDFORGE_TEST_A", "placeholder")
  monkeypatch.delenv("VIDFORGE_TEST_A")
  monkeypatch.setenv("VIDFORGE_TEST_B", "existing")

  applied = load_env_file(env_file)
  assert applied == {"VIDFORGE_TEST_A": "quoted"}
  assert os.environ["VIDFORGE_TEST_B"] == "existing"

  assert load_env_file(env_file, override=True) == {"VIDFORGE_TEST_A": "quoted", "VIDFORGE_TEST_B": "plain"}
  assert os.environ["VIDFORGE_TEST_B"] == "plain"
  assert load_env_file(tmp_path / "missing.env") == {}


def test_rotated_log_names() -> None:
  assert rotated_log_name("/logs/vidforge.log.1") == "/logs/vidforge.log-1"
  assert rotated_log_name("/logs/vidforge.log") == "/logs/vidforge.log"


def test_log_handlers_write_under_the_configured_directory(tmp_path: Path) -> None:
  stream, file_handler, log_path = build_handlers(make_settings(tmp_path))
  try:
    assert log_path.parent == (tmp_path / "logs").resolve()
    assert log_path.exists()
    assert isinstance(stream.formatter, TracebackTailFormatter)
  finally:
    file_handler.close()


def test_truncated_formatter_keeps_the_tail() -> None:
  def nested(depth: int) -> None:
    if depth == 0:
      raise RuntimeError("deep")
    nested(depth - 1)

  try:
    nested(10)
  except RuntimeError:
    exc_info = sys.exc_info()
  formatted = TracebackTailFormatter().formatException(exc_info)  # type: ignore[arg-type]
  assert "    ...\n" in formatted
  assert formatted.rstrip().endswith("RuntimeError: deep")
