"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from vidforge.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the vidforge service."""

  environment: str
  debug: bool
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  max_concurrent_generations: int
  max_generation_attempts: int
  submit_timeout_seconds: float
  poll_interval_seconds: float
  poll_timeout_seconds: float
  max_generation_seconds: float
  max_consecutive_poll_errors: int
  retry_base_delay_seconds: float
  rate_limit_base_delay_seconds: float
  retry_max_delay_seconds: float
  minutes_per_video: float
  download_url_ttl_seconds: int
  download_max_attempts: int
  download_max_concurrent: int
  download_timeout_seconds: float
  download_expiry_warning_seconds: int
  asset_storage_dir: str
  asset_base_url: str
  tracking_webhook_url: str | None
  tracking_timeout_seconds: float
  jobs_store_dir: str | None
  pricing_path: str | None
  pricing_stale_days: int


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _non_negative_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value < 0:
    raise ValueError(f"{name} must be zero or a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("VIDFORGE_ENV", "development").lower()
  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("VIDFORGE_DEBUG"))

  log_max_bytes = _positive_int("VIDFORGE_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("VIDFORGE_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("VIDFORGE_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # The concurrency cap mirrors the generation vendor's per-account rate limit.
  max_concurrent_generations = _positive_int("VIDFORGE_MAX_CONCURRENT_GENERATIONS", "4")
  max_generation_attempts = _positive_int("VIDFORGE_MAX_GENERATION_ATTEMPTS", "3")

  retry_base_delay_seconds = _non_negative_float("VIDFORGE_RETRY_BASE_DELAY_SECONDS", "2")
  rate_limit_base_delay_seconds = _non_negative_float("VIDFORGE_RATE_LIMIT_BASE_DELAY_SECONDS", "10")
  retry_max_delay_seconds = _non_negative_float("VIDFORGE_RETRY_MAX_DELAY_SECONDS", "60")
  if retry_max_delay_seconds < max(retry_base_delay_seconds, rate_limit_base_delay_seconds):
    raise ValueError("VIDFORGE_RETRY_MAX_DELAY_SECONDS must not be smaller than the base delays.")

  download_expiry_warning_seconds = int(os.getenv("VIDFORGE_DOWNLOAD_EXPIRY_WARNING_SECONDS", "600"))
  if download_expiry_warning_seconds < 0:
    raise ValueError("VIDFORGE_DOWNLOAD_EXPIRY_WARNING_SECONDS must be zero or a positive integer.")

  tracking_webhook_url = _optional_str(os.getenv("VIDFORGE_TRACKING_WEBHOOK_URL"))
  if tracking_webhook_url and not tracking_webhook_url.startswith(("http://", "https://")):
    raise ValueError("VIDFORGE_TRACKING_WEBHOOK_URL must be an http(s) URL.")

  return Settings(
    environment=environment,
    debug=debug,
    log_dir=(os.getenv("VIDFORGE_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("VIDFORGE_LOG_HTTP_4XX")),
    max_concurrent_generations=max_concurrent_generations,
    max_generation_attempts=max_generation_attempts,
    submit_timeout_seconds=_positive_float("VIDFORGE_SUBMIT_TIMEOUT_SECONDS", "60"),
    poll_interval_seconds=_positive_float("VIDFORGE_POLL_INTERVAL_SECONDS", "30"),
    poll_timeout_seconds=_positive_float("VIDFORGE_POLL_TIMEOUT_SECONDS", "30"),
    max_generation_seconds=_positive_float("VIDFORGE_MAX_GENERATION_SECONDS", "3600"),
    max_consecutive_poll_errors=_positive_int("VIDFORGE_MAX_CONSECUTIVE_POLL_ERRORS", "3"),
    retry_base_delay_seconds=retry_base_delay_seconds,
    rate_limit_base_delay_seconds=rate_limit_base_delay_seconds,
    retry_max_delay_seconds=retry_max_delay_seconds,
    minutes_per_video=_positive_float("VIDFORGE_MINUTES_PER_VIDEO", "4"),
    download_url_ttl_seconds=_positive_int("VIDFORGE_DOWNLOAD_URL_TTL_SECONDS", "3600"),
    download_max_attempts=_positive_int("VIDFORGE_DOWNLOAD_MAX_ATTEMPTS", "3"),
    download_max_concurrent=_positive_int("VIDFORGE_DOWNLOAD_MAX_CONCURRENT", "4"),
    download_timeout_seconds=_positive_float("VIDFORGE_DOWNLOAD_TIMEOUT_SECONDS", "120"),
    download_expiry_warning_seconds=download_expiry_warning_seconds,
    asset_storage_dir=(os.getenv("VIDFORGE_ASSET_STORAGE_DIR") or "./generated-videos").strip(),
    asset_base_url=(os.getenv("VIDFORGE_ASSET_BASE_URL") or "/generated-videos").strip().rstrip("/"),
    tracking_webhook_url=tracking_webhook_url,
    tracking_timeout_seconds=_positive_float("VIDFORGE_TRACKING_TIMEOUT_SECONDS", "10"),
    jobs_store_dir=_optional_str(os.getenv("VIDFORGE_JOBS_STORE_DIR")),
    pricing_path=_optional_str(os.getenv("VIDFORGE_PRICING_PATH")),
    pricing_stale_days=_positive_int("VIDFORGE_PRICING_STALE_DAYS", "30"),
  )
