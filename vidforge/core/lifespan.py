from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from vidforge.core.logging import initialize_logging
from vidforge.utils.time import utc_now


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Initialize logging, restore persisted jobs and stop background work on exit."""
  settings = app.state.settings
  scheduler = app.state.scheduler
  downloads = app.state.downloads
  pricing = app.state.pricing
  logger = logging.getLogger("vidforge.core.lifespan")

  try:
    initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except Exception:  # noqa: BLE001
    # Keep serving with the default handlers when the log directory is unusable.
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  if pricing.is_stale(utc_now(), settings.pricing_stale_days):
    logger.warning("Pricing data version=%s last_updated=%s is older than %d days; estimates may be inaccurate.", pricing.version, pricing.last_updated.isoformat(), settings.pricing_stale_days)

  report = await scheduler.recover()
  if report.restored:
    logger.info("Restored persisted jobs restored=%d resumed=%d requeued=%d", report.restored, report.resumed, report.requeued)

  try:
    yield
  finally:
    await scheduler.shutdown()
    await downloads.shutdown()
    logger.info("Shutdown complete - background generation and download tasks stopped.")
