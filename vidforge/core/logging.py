"""Process-wide logging for the engine: stdout plus a size-rotated log file."""

from __future__ import annotations

import logging
import logging.handlers
import sys
import traceback
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType

from vidforge.config import Settings

LOG_LINE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

# Framework loggers that would otherwise bypass our handlers.
_ROUTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")

ExcInfo = tuple[type[BaseException] | None, BaseException | None, TracebackType | None]


@dataclass
class _LoggingState:
  initialized: bool = False
  log_path: Path | None = None


_STATE = _LoggingState()


class TracebackTailFormatter(logging.Formatter):
  """Keeps the first line of a traceback and its last ``tail_lines`` frames."""

  def __init__(self, fmt: str | None = LOG_LINE_FORMAT, datefmt: str | None = LOG_DATE_FORMAT, *, tail_lines: int = 5) -> None:
    super().__init__(fmt, datefmt=datefmt)
    self.tail_lines = tail_lines

  def formatException(self, ei: ExcInfo) -> str:  # noqa: N802
    lines = traceback.format_exception(*ei)
    if len(lines) <= self.tail_lines + 1:
      return "".join(lines)
    return "".join([lines[0], "    ...\n", *lines[-self.tail_lines :]])


def rotated_log_name(default_name: str) -> str:
  """Name rotated backups ``engine.log-1`` instead of ``engine.log.1``."""
  base, _, counter = default_name.rpartition(".")
  return f"{base}-{counter}" if base and counter.isdigit() else default_name


def _open_log_file(log_dir: Path) -> Path:
  try:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"vidforge_{datetime.now(UTC):%Y%m%d_%H%M%S}.log"
    log_path.touch(exist_ok=True)
  except OSError as exc:
    raise RuntimeError(f"Cannot prepare log file under {log_dir}: {exc}") from exc
  return log_path


def build_handlers(settings: Settings) -> tuple[logging.Handler, logging.Handler, Path]:
  """Return ``(stdout_handler, rotating_file_handler, log_path)`` for ``settings``."""
  log_path = _open_log_file(Path(settings.log_dir).expanduser().resolve())

  console = logging.StreamHandler(sys.stdout)
  console.setFormatter(TracebackTailFormatter())

  rotating = logging.handlers.RotatingFileHandler(log_path, encoding="utf-8", maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count)
  rotating.namer = rotated_log_name
  rotating.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  return console, rotating, log_path


def setup_logging(settings: Settings) -> Path:
  """Install the handlers on the root logger and the framework loggers."""
  console, rotating, log_path = build_handlers(settings)
  for name in _ROUTED_LOGGERS:
    routed = logging.getLogger(name)
    routed.handlers = [console, rotating]
    routed.propagate = False

  logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO, handlers=[console, rotating], force=True)
  # httpx logs every request at INFO, one per tracking webhook call.
  logging.getLogger("httpx").setLevel(logging.WARNING)
  return log_path


def current_log_path() -> Path | None:
  return _STATE.log_path


def initialize_logging(settings: Settings) -> None:
  """Set up logging once per process and log the effective limits."""
  if _STATE.initialized:
    return
  _STATE.log_path = setup_logging(settings)
  _STATE.initialized = True
  logger = logging.getLogger(__name__)
  logger.info("Logging initialized. Writing to %s", _STATE.log_path)
  logger.info(
    "Scheduler limits max_concurrent=%d max_attempts=%d poll_interval=%.1fs download_ttl=%ds",
    settings.max_concurrent_generations,
    settings.max_generation_attempts,
    settings.poll_interval_seconds,
    settings.download_url_ttl_seconds,
  )
