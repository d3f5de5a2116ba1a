"""Bounded-concurrency scheduler for external video generation jobs.

The scheduler is the only component that changes ``GenerationJob.status``.
Every mutation runs under one ``asyncio.Lock`` through ``_commit``, which also
admits queued jobs into free slots, persists the changed records and notifies
the tracking store. Read methods are synchronous and return frozen snapshots.

Lifecycle of one job::

    queued -> in_progress -> completed
                          -> failed            (retries exhausted / not retryable / cancelled)
                          -> queued            (automatic retry after backoff)
    failed -> queued                           (manual retry)
    queued -> failed                           (batch cancelled before admission)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Protocol

from vidforge.config import Settings
from vidforge.core.errors import DuplicateJobError, InvalidCombinationError, InvalidJobError, InvalidTransitionError, JobNotFoundError
from vidforge.jobs.batch import BatchSummary, summarize_batch
from vidforge.jobs.capability import GenerationCapability, PollResult, RemoteError
from vidforge.jobs.classifier import classify_failure, make_error, summarize_error
from vidforge.jobs.models import ErrorCategory, ErrorRecord, GenerationJob, JobStatus, RetryOutcome
from vidforge.jobs.retry import BackoffPolicy, close_pending_attempt, create_retry_attempt, get_retry_delay, should_auto_retry
from vidforge.notifications.tracking import NullTrackingStore, StatusUpdate, TrackingStore
from vidforge.pricing.table import PricingTable
from vidforge.storage.jobs_repo import JobsRepository
from vidforge.utils.time import Clock, utc_now

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
  JobStatus.QUEUED: frozenset({JobStatus.IN_PROGRESS, JobStatus.FAILED}),
  JobStatus.IN_PROGRESS: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.QUEUED}),
  JobStatus.FAILED: frozenset({JobStatus.QUEUED}),
  JobStatus.COMPLETED: frozenset(),
}


class DownloadHandoff(Protocol):
  """Receiver of completed generations whose assets must be fetched."""

  async def queue_download(self, *, asset_ref: str, external_id: str, job_id: str, batch_id: str, generated_at: datetime) -> Any: ...


@dataclass(frozen=True)
class SchedulerConfig:
  """Limits and timings for the generation scheduler."""

  max_concurrent: int = 4
  max_attempts: int = 3
  submit_timeout_seconds: float = 60.0
  poll_interval_seconds: float = 30.0
  poll_timeout_seconds: float = 30.0
  max_generation_seconds: float = 3600.0
  max_consecutive_poll_errors: int = 3
  minutes_per_video: float = 4.0
  backoff: BackoffPolicy = field(default_factory=BackoffPolicy)

  def __post_init__(self) -> None:
    if self.max_concurrent < 1:
      raise ValueError("max_concurrent must be at least 1")
    if self.max_attempts < 1:
      raise ValueError("max_attempts must be at least 1")
    if self.max_consecutive_poll_errors < 1:
      raise ValueError("max_consecutive_poll_errors must be at least 1")
    if min(self.submit_timeout_seconds, self.poll_timeout_seconds, self.max_generation_seconds) <= 0:
      raise ValueError("timeouts must be positive")
    if self.poll_interval_seconds < 0:
      raise ValueError("poll_interval_seconds must be zero or positive")

  @classmethod
  def from_settings(cls, settings: Settings) -> SchedulerConfig:
    return cls(
      max_concurrent=settings.max_concurrent_generations,
      max_attempts=settings.max_generation_attempts,
      submit_timeout_seconds=settings.submit_timeout_seconds,
      poll_interval_seconds=settings.poll_interval_seconds,
      poll_timeout_seconds=settings.poll_timeout_seconds,
      max_generation_seconds=settings.max_generation_seconds,
      max_consecutive_poll_errors=settings.max_consecutive_poll_errors,
      minutes_per_video=settings.minutes_per_video,
      backoff=BackoffPolicy(
        base_delay_seconds=settings.retry_base_delay_seconds,
        rate_limit_base_delay_seconds=settings.rate_limit_base_delay_seconds,
        max_delay_seconds=settings.retry_max_delay_seconds,
      ),
    )


@dataclass(frozen=True)
class QueueSummary:
  queued_count: int
  in_progress_count: int
  completed_count: int
  failed_count: int
  available_slots: int
  max_concurrent: int
  total: int


@dataclass(frozen=True)
class CancelResult:
  """Outcome of a batch cancellation request."""

  batch_id: str
  cancelled_job_ids: tuple[str, ...]
  pending_job_ids: tuple[str, ...]


@dataclass(frozen=True)
class RecoveryReport:
  restored: int
  requeued: int
  resumed: int


Mutation = Callable[[], list[GenerationJob]]


class GenerationScheduler:
  """Admits generation jobs FIFO under a concurrency cap and drives them to a terminal state."""

  def __init__(
    self,
    generator: GenerationCapability,
    *,
    config: SchedulerConfig | None = None,
    tracking: TrackingStore | None = None,
    jobs_repo: JobsRepository | None = None,
    downloads: DownloadHandoff | None = None,
    pricing: PricingTable | None = None,
    clock: Clock = utc_now,
  ) -> None:
    self._generator = generator
    self._config = config or SchedulerConfig()
    self._tracking: TrackingStore = tracking or NullTrackingStore()
    self._jobs_repo = jobs_repo
    self._downloads = downloads
    self._pricing = pricing
    self._clock = clock
    self._lock = asyncio.Lock()
    self._jobs: dict[str, GenerationJob] = {}
    # Job ids ready for admission, oldest queued_at first.
    self._queue: list[str] = []
    self._in_flight = 0
    self._cancel_requested: set[str] = set()
    self._run_tasks: dict[str, asyncio.Task[None]] = {}
    self._backoff_tasks: dict[str, asyncio.Task[None]] = {}
    self._closed = False

  @property
  def config(self) -> SchedulerConfig:
    return self._config

  @property
  def in_flight_count(self) -> int:
    return self._in_flight

  # Submission

  async def submit_batch(self, jobs: Iterable[GenerationJob]) -> list[GenerationJob]:
    """Register every job in ``jobs`` as queued, or none of them if any is invalid."""
    batch = list(jobs)
    if not batch:
      raise InvalidJobError("A batch must contain at least one job.")

    def mutate() -> list[GenerationJob]:
      self._validate_new_jobs_locked(batch)
      now = self._clock()
      registered: list[GenerationJob] = []
      for job in batch:
        queued = replace(job, queued_at=now, started_at=None, completed_at=None)
        self._jobs[queued.job_id] = queued
        self._queue.append(queued.job_id)
        registered.append(queued)
      return registered

    await self._commit(mutate)
    logger.info("Batch submitted batch_ids=%s jobs=%d in_flight=%d/%d", sorted({job.batch_id for job in batch}), len(batch), self._in_flight, self._config.max_concurrent)
    return [self._jobs[job.job_id] for job in batch]

  async def submit_video(self, job: GenerationJob) -> GenerationJob:
    """Enqueue a single job."""
    submitted = await self.submit_batch([job])
    return submitted[0]

  async def retry_job(self, job_id: str, modified_prompt: str | None = None) -> GenerationJob:
    """Manually re-queue a failed job at the back of the queue, optionally with a new prompt."""
    if modified_prompt is not None and not modified_prompt.strip():
      raise InvalidJobError("modified_prompt must be non-empty when given.")

    def mutate() -> list[GenerationJob]:
      job = self._jobs.get(job_id)
      if job is None:
        raise JobNotFoundError(job_id)
      if job.status is not JobStatus.FAILED:
        raise InvalidTransitionError(f"job {job_id}", job.status.value, JobStatus.QUEUED.value)
      now = self._clock()
      attempt = create_retry_attempt(len(job.retry_history) + 1, summarize_error(job.error_info), modified_prompt, timestamp=now)
      updated = self._apply_locked(
        job_id,
        status=JobStatus.QUEUED,
        prompt=modified_prompt or job.prompt,
        error_info=None,
        external_id=None,
        queued_at=now,
        started_at=None,
        completed_at=None,
        last_error=job.error_info,
        retry_history=(*job.retry_history, attempt),
      )
      self._cancel_requested.discard(job_id)
      self._queue.append(job_id)
      return [updated]

    await self._commit(mutate)
    logger.info("Manual retry queued job=%s retry_count=%d prompt_modified=%s", job_id, self._jobs[job_id].retry_count, modified_prompt is not None)
    return self._jobs[job_id]

  async def cancel_batch(self, batch_id: str) -> CancelResult:
    """Cancel a batch. Queued jobs fail at once; running jobs fail once their in-flight call returns."""
    cancelled: list[str] = []
    pending: list[str] = []

    def mutate() -> list[GenerationJob]:
      now = self._clock()
      changed: list[GenerationJob] = []
      for job in list(self._jobs.values()):
        if job.batch_id != batch_id:
          continue
        if job.status is JobStatus.QUEUED:
          if job.job_id in self._queue:
            self._queue.remove(job.job_id)
          backoff_task = self._backoff_tasks.pop(job.job_id, None)
          if backoff_task is not None:
            backoff_task.cancel()
          changed.append(
            self._apply_locked(
              job.job_id,
              status=JobStatus.FAILED,
              error_info=make_error(ErrorCategory.CANCELLED, "Batch cancelled before the job started.", now=now),
              completed_at=now,
              retry_history=close_pending_attempt(job.retry_history, RetryOutcome.FAILED, "cancelled"),
            )
          )
          cancelled.append(job.job_id)
        elif job.status is JobStatus.IN_PROGRESS:
          self._cancel_requested.add(job.job_id)
          pending.append(job.job_id)
      return changed

    await self._commit(mutate)
    logger.info("Batch cancel requested batch_id=%s cancelled=%d pending_in_flight=%d", batch_id, len(cancelled), len(pending))
    return CancelResult(batch_id=batch_id, cancelled_job_ids=tuple(cancelled), pending_job_ids=tuple(pending))

  async def recover(self) -> RecoveryReport:
    """Rebuild in-memory state from the jobs repository after a restart.

    Running jobs that already have an external id resume polling and keep
    their slot; running jobs that never got one go back to the queue.
    """
    if self._jobs_repo is None:
      return RecoveryReport(restored=0, requeued=0, resumed=0)

    stored = await self._jobs_repo.list_jobs()
    resumed: list[GenerationJob] = []
    requeued: list[GenerationJob] = []

    def mutate() -> list[GenerationJob]:
      if self._jobs:
        raise RuntimeError("recover() must run before any job is submitted.")
      for job in sorted(stored, key=lambda item: item.queued_at):
        if job.status is JobStatus.IN_PROGRESS and job.external_id:
          self._jobs[job.job_id] = job
          self._in_flight += 1
          resumed.append(job)
          continue
        if job.status is JobStatus.IN_PROGRESS:
          job = replace(job, status=JobStatus.QUEUED, progress=None, started_at=None)
          requeued.append(job)
        self._jobs[job.job_id] = job
        if job.status is JobStatus.QUEUED:
          self._queue.append(job.job_id)
      return requeued

    await self._commit(mutate)
    for job in resumed:
      self._spawn(job.job_id, self._poll_until_done(job.job_id, job.external_id or ""))
    if self._in_flight > self._config.max_concurrent:
      # Running vendor jobs are never resubmitted; admission waits until the count drops below the cap.
      logger.warning("Recovered more running jobs than max_concurrent in_flight=%d max_concurrent=%d", self._in_flight, self._config.max_concurrent)
    logger.info("Scheduler recovered jobs=%d resumed=%d requeued=%d queued=%d", len(stored), len(resumed), len(requeued), len(self._queue))
    return RecoveryReport(restored=len(stored), requeued=len(requeued), resumed=len(resumed))

  async def shutdown(self) -> None:
    """Stop background work. Persisted state is left for ``recover()``."""
    self._closed = True
    tasks = [*self._run_tasks.values(), *self._backoff_tasks.values()]
    for task in tasks:
      task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    self._run_tasks.clear()
    self._backoff_tasks.clear()

  # Reads

  def get_status(self, job_id: str) -> GenerationJob | None:
    return self._jobs.get(job_id)

  def get_queued_jobs(self) -> list[GenerationJob]:
    """Queued jobs in admission order; jobs still waiting out a retry backoff come last."""
    ready = [self._jobs[job_id] for job_id in self._queue]
    waiting = sorted((self._jobs[job_id] for job_id in self._backoff_tasks if self._jobs[job_id].status is JobStatus.QUEUED), key=lambda job: job.queued_at)
    return ready + waiting

  def get_in_progress_jobs(self) -> list[GenerationJob]:
    jobs = [job for job in self._jobs.values() if job.status is JobStatus.IN_PROGRESS]
    return sorted(jobs, key=lambda job: job.started_at or job.queued_at)

  def get_batch_jobs(self, batch_id: str) -> list[GenerationJob]:
    return sorted((job for job in self._jobs.values() if job.batch_id == batch_id), key=lambda job: job.queued_at)

  def get_queue_position(self, job_id: str) -> int:
    """1-based position among queued jobs, 0 when the job is not queued."""
    for index, job in enumerate(self.get_queued_jobs(), start=1):
      if job.job_id == job_id:
        return index
    return 0

  def get_queue_summary(self) -> QueueSummary:
    counts = {status: 0 for status in JobStatus}
    for job in self._jobs.values():
      counts[job.status] += 1
    return QueueSummary(
      queued_count=counts[JobStatus.QUEUED],
      in_progress_count=counts[JobStatus.IN_PROGRESS],
      completed_count=counts[JobStatus.COMPLETED],
      failed_count=counts[JobStatus.FAILED],
      available_slots=max(self._config.max_concurrent - self._in_flight, 0),
      max_concurrent=self._config.max_concurrent,
      total=len(self._jobs),
    )

  def get_batch_status(self, batch_id: str, *, now: datetime | None = None) -> BatchSummary:
    jobs = [job for job in self._jobs.values() if job.batch_id == batch_id]
    return summarize_batch(batch_id, jobs, max_concurrent=self._config.max_concurrent, minutes_per_video=self._config.minutes_per_video, now=now or self._clock())

  # Job execution

  async def _run_job(self, job_id: str) -> None:
    job = self._jobs[job_id]
    try:
      accepted = await asyncio.wait_for(
        self._generator.submit(prompt=job.prompt, model=job.model, duration=job.duration, aspect_ratio=job.aspect_ratio.value),
        timeout=self._config.submit_timeout_seconds,
      )
    except Exception as exc:  # noqa: BLE001
      await self._fail(job_id, classify_failure(exc, now=self._clock()))
      return

    external_id = accepted.external_id
    accepted_jobs = await self._commit(lambda: self._accept_locked(job_id, external_id))
    if not accepted_jobs or accepted_jobs[0].status is not JobStatus.IN_PROGRESS:
      return
    logger.info("Generation accepted job=%s external_id=%s", job_id, external_id)
    await self._poll_until_done(job_id, external_id)

  async def _poll_until_done(self, job_id: str, external_id: str) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + self._config.max_generation_seconds
    consecutive_errors = 0
    while True:
      await asyncio.sleep(self._config.poll_interval_seconds)
      if job_id in self._cancel_requested:
        await self._commit(lambda: self._cancel_in_flight_locked(job_id))
        return
      if loop.time() >= deadline:
        await self._fail(job_id, make_error(ErrorCategory.TIMEOUT, f"Generation exceeded {self._config.max_generation_seconds:.0f}s.", now=self._clock()))
        return

      try:
        result = await asyncio.wait_for(self._generator.poll(external_id), timeout=self._config.poll_timeout_seconds)
      except Exception as exc:  # noqa: BLE001
        error = classify_failure(exc, now=self._clock())
        consecutive_errors += 1
        if error.retryable and consecutive_errors < self._config.max_consecutive_poll_errors:
          logger.warning("Poll failed job=%s external_id=%s consecutive=%d/%d category=%s: %s", job_id, external_id, consecutive_errors, self._config.max_consecutive_poll_errors, error.category.value, error.message)
          continue
        await self._fail(job_id, error)
        return

      consecutive_errors = 0
      if result.status == "completed":
        await self._complete(job_id, result)
        return
      if job_id in self._cancel_requested:
        await self._commit(lambda: self._cancel_in_flight_locked(job_id))
        return
      if result.status == "failed":
        remote_error = result.error or RemoteError(message="Generation failed without an error payload.")
        await self._fail(job_id, classify_failure(remote_error, now=self._clock()))
        return
      if result.progress is not None:
        progress = result.progress
        await self._commit(lambda: self._progress_locked(job_id, progress))

  async def _complete(self, job_id: str, result: PollResult) -> None:
    completed = await self._commit(lambda: self._complete_locked(job_id, result))
    if not completed:
      return
    job = completed[0]
    logger.info("Generation completed job=%s batch_id=%s asset_ref=%s", job.job_id, job.batch_id, job.result_asset_ref)
    if self._downloads is None or job.result_asset_ref is None:
      return
    try:
      await self._downloads.queue_download(asset_ref=job.result_asset_ref, external_id=job.external_id or job.result_asset_ref, job_id=job.job_id, batch_id=job.batch_id, generated_at=job.completed_at or self._clock())
    except Exception:  # noqa: BLE001
      logger.error("Failed to hand off download job=%s asset_ref=%s", job.job_id, job.result_asset_ref, exc_info=True)

  async def _fail(self, job_id: str, error: ErrorRecord) -> None:
    await self._commit(lambda: self._fail_locked(job_id, error))

  async def _release_after(self, job_id: str, delay: float) -> None:
    await asyncio.sleep(delay)
    await self._commit(lambda: self._release_backoff_locked(job_id))

  # Locked state changes; each returns the records it changed.

  def _apply_locked(self, job_id: str, **changes: Any) -> GenerationJob:
    current = self._jobs[job_id]
    target = changes.get("status", current.status)
    if target is not current.status and target not in _ALLOWED_TRANSITIONS[current.status]:
      raise InvalidTransitionError(f"job {job_id}", current.status.value, target.value)
    if target is not JobStatus.IN_PROGRESS:
      changes.setdefault("progress", None)
    if target is not JobStatus.COMPLETED:
      changes.setdefault("result_asset_ref", None)
    if target is not JobStatus.FAILED:
      changes.setdefault("error_info", None)
    updated = replace(current, **changes)
    self._jobs[job_id] = updated
    return updated

  def _admit_locked(self) -> list[GenerationJob]:
    admitted: list[GenerationJob] = []
    if self._closed:
      return admitted
    while self._queue and self._in_flight < self._config.max_concurrent:
      job_id = self._queue.pop(0)
      admitted.append(self._apply_locked(job_id, status=JobStatus.IN_PROGRESS, progress=0, started_at=self._clock(), external_id=None))
      self._in_flight += 1
    return admitted

  def _accept_locked(self, job_id: str, external_id: str) -> list[GenerationJob]:
    job = self._jobs.get(job_id)
    if job is None or job.status is not JobStatus.IN_PROGRESS:
      return []
    if job_id in self._cancel_requested:
      return self._cancel_in_flight_locked(job_id)
    return [self._apply_locked(job_id, external_id=external_id)]

  def _progress_locked(self, job_id: str, progress: int) -> list[GenerationJob]:
    job = self._jobs.get(job_id)
    if job is None or job.status is not JobStatus.IN_PROGRESS:
      return []
    clamped = min(max(int(progress), 0), 100)
    if clamped == job.progress:
      return []
    return [self._apply_locked(job_id, progress=clamped)]

  def _complete_locked(self, job_id: str, result: PollResult) -> list[GenerationJob]:
    job = self._jobs.get(job_id)
    if job is None or job.status is not JobStatus.IN_PROGRESS:
      return []
    self._in_flight -= 1
    self._cancel_requested.discard(job_id)
    updated = self._apply_locked(
      job_id,
      status=JobStatus.COMPLETED,
      result_asset_ref=result.result_asset_ref or job.external_id or job_id,
      completed_at=self._clock(),
      retry_history=close_pending_attempt(job.retry_history, RetryOutcome.SUCCEEDED),
    )
    return [updated]

  def _fail_locked(self, job_id: str, error: ErrorRecord) -> list[GenerationJob]:
    job = self._jobs.get(job_id)
    if job is None or job.status is not JobStatus.IN_PROGRESS:
      return []
    if job_id in self._cancel_requested:
      return self._cancel_in_flight_locked(job_id)

    self._in_flight -= 1
    now = self._clock()
    attempts = job.retry_count + 1
    summary = summarize_error(error)
    history = close_pending_attempt(job.retry_history, RetryOutcome.FAILED, summary)

    if should_auto_retry(error, attempts, self._config.max_attempts):
      delay = get_retry_delay(attempts, error.category, self._config.backoff)
      history = (*history, create_retry_attempt(len(history) + 1, summary, timestamp=now))
      updated = self._apply_locked(job_id, status=JobStatus.QUEUED, external_id=None, started_at=None, retry_count=attempts, last_error=error, retry_history=history, queued_at=now)
      logger.warning("Generation failed job=%s attempt=%d/%d category=%s; retrying in %.1fs: %s", job_id, attempts, self._config.max_attempts, error.category.value, delay, error.message)
      self._schedule_release_locked(job_id, delay)
      return [updated]

    updated = self._apply_locked(job_id, status=JobStatus.FAILED, error_info=error, retry_count=attempts, last_error=error, retry_history=history, completed_at=now)
    logger.error("Generation failed job=%s attempts=%d category=%s retryable=%s: %s", job_id, attempts, error.category.value, error.retryable, error.message)
    return [updated]

  def _cancel_in_flight_locked(self, job_id: str) -> list[GenerationJob]:
    job = self._jobs.get(job_id)
    self._cancel_requested.discard(job_id)
    if job is None or job.status is not JobStatus.IN_PROGRESS:
      return []
    self._in_flight -= 1
    now = self._clock()
    updated = self._apply_locked(
      job_id,
      status=JobStatus.FAILED,
      error_info=make_error(ErrorCategory.CANCELLED, "Batch cancelled while the job was running.", now=now),
      completed_at=now,
      retry_history=close_pending_attempt(job.retry_history, RetryOutcome.FAILED, "cancelled"),
    )
    logger.info("Generation cancelled job=%s external_id=%s", job_id, job.external_id)
    return [updated]

  def _schedule_release_locked(self, job_id: str, delay: float) -> None:
    if delay <= 0:
      self._queue.append(job_id)
      return
    task = asyncio.create_task(self._release_after(job_id, delay), name=f"backoff:{job_id}")
    self._backoff_tasks[job_id] = task
    task.add_done_callback(lambda done: self._forget(self._backoff_tasks, job_id, done))

  def _release_backoff_locked(self, job_id: str) -> list[GenerationJob]:
    self._backoff_tasks.pop(job_id, None)
    job = self._jobs.get(job_id)
    if job is None or job.status is not JobStatus.QUEUED or job_id in self._queue:
      return []
    # A fresh queued_at puts the retry behind everything submitted meanwhile.
    updated = self._apply_locked(job_id, queued_at=self._clock())
    self._queue.append(job_id)
    return [updated]

  def _validate_new_jobs_locked(self, batch: list[GenerationJob]) -> None:
    seen: set[str] = set()
    for job in batch:
      if not isinstance(job, GenerationJob):
        raise InvalidJobError(f"Expected GenerationJob, got {type(job).__name__}.")
      if job.job_id in seen or job.job_id in self._jobs:
        raise DuplicateJobError(job.job_id)
      seen.add(job.job_id)
      if job.status is not JobStatus.QUEUED or job.external_id is not None:
        raise InvalidJobError(f"Job {job.job_id!r} must be submitted as a fresh queued job.")
      if not isinstance(job.model, str) or not job.model.strip():
        raise InvalidJobError(f"Job {job.job_id!r} has no model.")
      if type(job.duration) is not int or job.duration <= 0:
        raise InvalidJobError(f"Job {job.job_id!r} has an invalid duration {job.duration!r}.")
      if self._pricing is not None and not self._pricing.supports(job.model, job.duration):
        raise InvalidCombinationError(job.model, job.duration)

  # Plumbing

  async def _commit(self, mutate: Mutation) -> list[GenerationJob]:
    """Run ``mutate`` under the lock, admit into free slots, then persist and notify."""
    async with self._lock:
      changed = mutate()
      admitted = self._admit_locked()
      records = [*changed, *admitted]
      await self._persist(records)
    for job in admitted:
      self._spawn(job.job_id, self._run_job(job.job_id))
    await self._notify(records)
    return changed

  def _spawn(self, job_id: str, coro: Coroutine[Any, Any, None]) -> None:
    task = asyncio.create_task(coro, name=f"generate:{job_id}")
    self._run_tasks[job_id] = task
    task.add_done_callback(lambda done: self._forget(self._run_tasks, job_id, done))

  @staticmethod
  def _forget(registry: dict[str, asyncio.Task[None]], job_id: str, task: asyncio.Task[None]) -> None:
    if registry.get(job_id) is task:
      del registry[job_id]
    if task.cancelled():
      return
    exc = task.exception()
    if exc is not None:
      logger.error("Scheduler task crashed job=%s", job_id, exc_info=exc)

  async def _persist(self, jobs: list[GenerationJob]) -> None:
    if self._jobs_repo is None:
      return
    for job in jobs:
      try:
        await self._jobs_repo.save_job(job)
      except Exception:  # noqa: BLE001
        logger.warning("Failed to persist job=%s status=%s", job.job_id, job.status.value, exc_info=True)

  async def _notify(self, jobs: list[GenerationJob]) -> None:
    for job in jobs:
      try:
        await self._tracking.publish(StatusUpdate.from_job(job))
      except Exception:  # noqa: BLE001
        logger.warning("Tracking update failed job=%s status=%s", job.job_id, job.status.value, exc_info=True)
