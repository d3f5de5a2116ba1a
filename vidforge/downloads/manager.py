"""Retrieval of generated assets within their signed-URL lifetime.

Download jobs follow ``pending -> downloading -> completed | failed``. Expiry
is not scheduled: every read and summary compares ``now`` with ``expires_at``
and moves unfinished downloads to ``expired``, where they stay.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Protocol

from vidforge.config import Settings
from vidforge.core.errors import AssetExpiredError, DownloadNotFoundError, InvalidTransitionError
from vidforge.downloads.models import DownloadJob, DownloadStatus, DownloadSummary
from vidforge.jobs.capability import AssetPayload, AssetVariant
from vidforge.jobs.classifier import FailureStage, classify_failure, make_error
from vidforge.jobs.models import ErrorCategory, ErrorRecord
from vidforge.jobs.retry import BackoffPolicy, get_retry_delay, should_auto_retry
from vidforge.storage.assets import AssetStorage, StoredAsset
from vidforge.utils.time import Clock, utc_now

logger = logging.getLogger(__name__)

_EXPIRABLE_STATUSES = frozenset({DownloadStatus.PENDING, DownloadStatus.DOWNLOADING, DownloadStatus.FAILED})


class AssetFetcher(Protocol):
  async def fetch_asset(self, external_id: str, variant: AssetVariant) -> AssetPayload: ...


@dataclass(frozen=True)
class DownloadConfig:
  url_ttl_seconds: float = 3600.0
  max_attempts: int = 3
  max_concurrent: int = 4
  fetch_timeout_seconds: float = 120.0
  expiry_warning_seconds: float = 600.0
  variants: tuple[AssetVariant, ...] = ("video", "thumbnail", "spritesheet")
  # 1s, 2s, 4s between attempts.
  backoff: BackoffPolicy = field(default_factory=lambda: BackoffPolicy(base_delay_seconds=1.0, rate_limit_base_delay_seconds=1.0, max_delay_seconds=4.0))

  def __post_init__(self) -> None:
    if self.url_ttl_seconds <= 0 or self.fetch_timeout_seconds <= 0:
      raise ValueError("url_ttl_seconds and fetch_timeout_seconds must be positive")
    if self.max_attempts < 1 or self.max_concurrent < 1:
      raise ValueError("max_attempts and max_concurrent must be at least 1")
    if not self.variants:
      raise ValueError("at least one asset variant is required")

  @classmethod
  def from_settings(cls, settings: Settings) -> DownloadConfig:
    return cls(
      url_ttl_seconds=settings.download_url_ttl_seconds,
      max_attempts=settings.download_max_attempts,
      max_concurrent=settings.download_max_concurrent,
      fetch_timeout_seconds=settings.download_timeout_seconds,
      expiry_warning_seconds=settings.download_expiry_warning_seconds,
    )


class DownloadManager:
  """Tracks and performs asset downloads for completed generations."""

  def __init__(self, fetcher: AssetFetcher, storage: AssetStorage, *, config: DownloadConfig | None = None, clock: Clock = utc_now) -> None:
    self._fetcher = fetcher
    self._storage = storage
    self._config = config or DownloadConfig()
    self._clock = clock
    self._lock = asyncio.Lock()
    self._semaphore = asyncio.Semaphore(self._config.max_concurrent)
    self._jobs: dict[str, DownloadJob] = {}
    self._tasks: dict[str, asyncio.Task[None]] = {}
    # Bumped each time an asset_ref is registered; transfers from an older registration are ignored.
    self._epochs: dict[str, int] = {}

  @property
  def config(self) -> DownloadConfig:
    return self._config

  async def queue_download(self, *, asset_ref: str, external_id: str, job_id: str, batch_id: str, generated_at: datetime) -> DownloadJob:
    """Register a download for a completed generation and start it."""
    async with self._lock:
      now = self._clock()
      existing = self._refresh(asset_ref, now)
      if existing is not None and existing.status is not DownloadStatus.EXPIRED:
        return existing
      job = DownloadJob(
        asset_ref=asset_ref,
        external_id=external_id,
        job_id=job_id,
        batch_id=batch_id,
        status=DownloadStatus.PENDING,
        expires_at=generated_at + timedelta(seconds=self._config.url_ttl_seconds),
        generated_at=generated_at,
      )
      stale = self._tasks.pop(asset_ref, None)
      if stale is not None:
        stale.cancel()
      self._epochs[asset_ref] = self._epochs.get(asset_ref, 0) + 1
      self._jobs[asset_ref] = job
      job = self._refresh(asset_ref, now) or job
      if job.status is DownloadStatus.PENDING:
        self._start_locked(asset_ref, delay=0)
    logger.info("Download queued asset_ref=%s job=%s expires_at=%s status=%s", asset_ref, job_id, job.expires_at.isoformat(), job.status.value)
    return job

  async def retry_download(self, asset_ref: str) -> DownloadJob:
    """Restart a failed download while its URL is still valid."""
    async with self._lock:
      job = self._refresh(asset_ref, self._clock())
      if job is None:
        raise DownloadNotFoundError(asset_ref)
      if job.status is DownloadStatus.EXPIRED:
        raise AssetExpiredError(asset_ref)
      if job.status is not DownloadStatus.FAILED:
        raise InvalidTransitionError(f"download {asset_ref}", job.status.value, DownloadStatus.PENDING.value)
      job = self._set(asset_ref, status=DownloadStatus.PENDING, attempts=0, error=None)
      self._start_locked(asset_ref, delay=0)
    logger.info("Download retry requested asset_ref=%s", asset_ref)
    return job

  # Reads

  def get_download_status(self, asset_ref: str) -> DownloadJob | None:
    return self._refresh(asset_ref, self._clock())

  def get_pending_downloads(self) -> list[DownloadJob]:
    jobs = self._refresh_all(self._clock())
    return sorted((job for job in jobs if job.status is DownloadStatus.PENDING), key=lambda job: job.expires_at)

  def get_batch_downloads(self, batch_id: str) -> list[DownloadJob]:
    jobs = self._refresh_all(self._clock())
    return sorted((job for job in jobs if job.batch_id == batch_id), key=lambda job: job.generated_at)

  def get_expiring_downloads(self, window: timedelta | float | None = None) -> list[DownloadJob]:
    """Unfinished downloads whose URL expires within ``window``, soonest first."""
    if window is None:
      window = self._config.expiry_warning_seconds
    window_seconds = window.total_seconds() if isinstance(window, timedelta) else float(window)
    now = self._clock()
    expiring = [job for job in self._refresh_all(now) if job.status in _EXPIRABLE_STATUSES and job.seconds_remaining(now) <= window_seconds]
    return sorted(expiring, key=lambda job: job.seconds_remaining(now))

  def get_download_summary(self) -> DownloadSummary:
    now = self._clock()
    jobs = self._refresh_all(now)
    counts = {status: 0 for status in DownloadStatus}
    approaching = 0
    for job in jobs:
      counts[job.status] += 1
      if job.status in {DownloadStatus.PENDING, DownloadStatus.DOWNLOADING} and job.seconds_remaining(now) <= self._config.expiry_warning_seconds:
        approaching += 1
    return DownloadSummary(
      pending=counts[DownloadStatus.PENDING],
      downloading=counts[DownloadStatus.DOWNLOADING],
      completed=counts[DownloadStatus.COMPLETED],
      failed=counts[DownloadStatus.FAILED],
      expired=counts[DownloadStatus.EXPIRED],
      approaching_expiration=approaching,
      total=len(jobs),
    )

  def clear_completed(self) -> int:
    """Forget completed downloads; returns how many were removed."""
    completed = [asset_ref for asset_ref, job in self._jobs.items() if job.status is DownloadStatus.COMPLETED]
    for asset_ref in completed:
      del self._jobs[asset_ref]
    return len(completed)

  async def shutdown(self) -> None:
    tasks = list(self._tasks.values())
    for task in tasks:
      task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    self._tasks.clear()

  # Transfer

  def _is_current(self, asset_ref: str, epoch: int) -> bool:
    return self._epochs.get(asset_ref) == epoch

  async def _transfer(self, asset_ref: str, delay: float, epoch: int) -> None:
    if delay > 0:
      await asyncio.sleep(delay)
    async with self._semaphore:
      async with self._lock:
        job = self._refresh(asset_ref, self._clock())
        if job is None or job.status is not DownloadStatus.PENDING or not self._is_current(asset_ref, epoch):
          return
        job = self._set(asset_ref, status=DownloadStatus.DOWNLOADING, attempts=job.attempts + 1, error=None)

      try:
        assets = await self._fetch_all(job)
      except Exception as exc:  # noqa: BLE001
        await self._handle_failure(asset_ref, epoch, classify_failure(exc, stage=FailureStage.DOWNLOAD, now=self._clock()))
        return

      async with self._lock:
        now = self._clock()
        current = self._refresh(asset_ref, now)
        if not self._is_current(asset_ref, epoch):
          logger.warning("Discarding transfer from a superseded download asset_ref=%s", asset_ref)
          return
        if current is None or current.status is not DownloadStatus.DOWNLOADING:
          logger.warning("Download finished after it stopped being active asset_ref=%s status=%s", asset_ref, current.status.value if current else "removed")
          return
        self._set(asset_ref, status=DownloadStatus.COMPLETED, assets=assets, downloaded_at=now, error=None)
    logger.info("Download completed asset_ref=%s files=%d bytes=%d", asset_ref, len(assets), sum(asset.size for asset in assets))

  async def _fetch_all(self, job: DownloadJob) -> tuple[StoredAsset, ...]:
    version = await self._storage.next_version(job.batch_id, job.external_id)
    stored: list[StoredAsset] = []
    for variant in self._config.variants:
      async with asyncio.timeout(self._config.fetch_timeout_seconds):
        payload = await self._fetcher.fetch_asset(job.external_id, variant)
        stored.append(await self._storage.save(batch_id=job.batch_id, external_id=job.external_id, version=version, variant=variant, payload=payload))
    return tuple(stored)

  async def _handle_failure(self, asset_ref: str, epoch: int, error: ErrorRecord) -> None:
    async with self._lock:
      job = self._refresh(asset_ref, self._clock())
      if job is None or job.status is not DownloadStatus.DOWNLOADING or not self._is_current(asset_ref, epoch):
        logger.info("Ignoring download failure outside the active transfer asset_ref=%s: %s", asset_ref, error.message)
        return
      if should_auto_retry(error, job.attempts, self._config.max_attempts):
        delay = get_retry_delay(job.attempts, error.category, self._config.backoff)
        self._set(asset_ref, status=DownloadStatus.PENDING, error=error)
        self._start_locked(asset_ref, delay=delay)
        logger.warning("Download failed asset_ref=%s attempt=%d/%d; retrying in %.1fs: %s", asset_ref, job.attempts, self._config.max_attempts, delay, error.message)
        return
      self._set(asset_ref, status=DownloadStatus.FAILED, error=error)
    logger.error("Download failed asset_ref=%s attempts=%d: %s", asset_ref, job.attempts, error.message)

  # State helpers; callers hold the lock or run without awaiting.

  def _set(self, asset_ref: str, **changes: Any) -> DownloadJob:
    updated = replace(self._jobs[asset_ref], **changes)
    self._jobs[asset_ref] = updated
    return updated

  def _refresh(self, asset_ref: str, now: datetime) -> DownloadJob | None:
    job = self._jobs.get(asset_ref)
    if job is None or job.status is DownloadStatus.EXPIRED or not job.is_expired_at(now):
      return job
    logger.warning("Download expired asset_ref=%s job=%s previous_status=%s", asset_ref, job.job_id, job.status.value)
    return self._set(asset_ref, status=DownloadStatus.EXPIRED, error=make_error(ErrorCategory.EXPIRED, "Signed download URL expired before the assets were retrieved.", now=now))

  def _refresh_all(self, now: datetime) -> list[DownloadJob]:
    return [job for asset_ref in list(self._jobs) if (job := self._refresh(asset_ref, now)) is not None]

  def _start_locked(self, asset_ref: str, *, delay: float) -> None:
    self._spawn(asset_ref, self._transfer(asset_ref, delay, self._epochs[asset_ref]))

  def _spawn(self, asset_ref: str, coro: Coroutine[Any, Any, None]) -> None:
    task = asyncio.create_task(coro, name=f"download:{asset_ref}")
    self._tasks[asset_ref] = task
    task.add_done_callback(lambda done: self._forget(asset_ref, done))

  def _forget(self, asset_ref: str, task: asyncio.Task[None]) -> None:
    if self._tasks.get(asset_ref) is task:
      del self._tasks[asset_ref]
    if not task.cancelled() and task.exception() is not None:
      logger.error("Download task crashed asset_ref=%s", asset_ref, exc_info=task.exception())
