"""Storage interfaces and implementations for generation jobs."""

from __future__ import annotations

import base64
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Protocol

import msgspec
from starlette.concurrency import run_in_threadpool

from vidforge.jobs.models import AspectRatio, ErrorCategory, ErrorRecord, GenerationJob, JobStatus, RetryAttempt, RetryOutcome, map_persisted_status

logger = logging.getLogger(__name__)


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def save_job(self, job: GenerationJob) -> None:
    """Insert or replace the stored record of a job."""

  async def get_job(self, job_id: str) -> GenerationJob | None:
    """Fetch a job by identifier."""

  async def list_jobs(self, batch_id: str | None = None) -> list[GenerationJob]:
    """Return all stored jobs, optionally limited to one batch."""


class ErrorPayload(msgspec.Struct):
  category: str
  message: str
  occurred_at: datetime
  code: str | None = None


class RetryAttemptPayload(msgspec.Struct):
  attempt_number: int
  timestamp: datetime
  previous_error_summary: str
  modified_input: str | None = None
  outcome: str = "pending"
  new_error: str | None = None


class PersistedJob(msgspec.Struct):
  """Stored shape of a job. ``status`` accepts legacy values."""

  job_id: str
  batch_id: str
  prompt: str
  model: str
  duration: int
  status: str
  queued_at: datetime
  aspect_ratio: str = "16:9"
  progress: int | None = None
  external_id: str | None = None
  result_asset_ref: str | None = None
  error_info: ErrorPayload | None = None
  retry_count: int = 0
  started_at: datetime | None = None
  completed_at: datetime | None = None
  combination_id: str | None = None
  last_error: ErrorPayload | None = None
  retry_history: list[RetryAttemptPayload] = []


def _error_to_payload(error: ErrorRecord | None) -> ErrorPayload | None:
  if error is None:
    return None
  return ErrorPayload(category=error.category.value, message=error.message, occurred_at=error.occurred_at, code=error.code)


def _error_from_payload(payload: ErrorPayload | None) -> ErrorRecord | None:
  if payload is None:
    return None
  try:
    category = ErrorCategory(payload.category)
  except ValueError:
    category = ErrorCategory.UNKNOWN
  return ErrorRecord(category=category, message=payload.message, occurred_at=payload.occurred_at, code=payload.code)


def job_to_payload(job: GenerationJob) -> PersistedJob:
  return PersistedJob(
    job_id=job.job_id,
    batch_id=job.batch_id,
    prompt=job.prompt,
    model=job.model,
    duration=job.duration,
    status=job.status.value,
    queued_at=job.queued_at,
    aspect_ratio=job.aspect_ratio.value,
    progress=job.progress,
    external_id=job.external_id,
    result_asset_ref=job.result_asset_ref,
    error_info=_error_to_payload(job.error_info),
    retry_count=job.retry_count,
    started_at=job.started_at,
    completed_at=job.completed_at,
    combination_id=job.combination_id,
    last_error=_error_to_payload(job.last_error),
    retry_history=[
      RetryAttemptPayload(
        attempt_number=attempt.attempt_number,
        timestamp=attempt.timestamp,
        previous_error_summary=attempt.previous_error_summary,
        modified_input=attempt.modified_input,
        outcome=attempt.outcome.value,
        new_error=attempt.new_error,
      )
      for attempt in job.retry_history
    ],
  )


def job_from_payload(payload: PersistedJob) -> GenerationJob:
  """Rebuild a job from its stored shape, repairing fields the status does not allow."""
  status = map_persisted_status(payload.status)
  error_info = _error_from_payload(payload.error_info)
  progress = payload.progress
  result_asset_ref = payload.result_asset_ref

  if status is JobStatus.IN_PROGRESS:
    progress = min(max(progress or 0, 0), 100)
  else:
    progress = None
  if status is JobStatus.COMPLETED:
    result_asset_ref = result_asset_ref or payload.external_id or payload.job_id
  else:
    result_asset_ref = None
  if status is JobStatus.FAILED:
    error_info = error_info or ErrorRecord(category=ErrorCategory.UNKNOWN, message=f"restored from persisted status {payload.status!r}", occurred_at=payload.completed_at or payload.queued_at)
  else:
    error_info = None

  return GenerationJob(
    job_id=payload.job_id,
    batch_id=payload.batch_id,
    prompt=payload.prompt,
    model=payload.model,
    duration=payload.duration,
    aspect_ratio=AspectRatio(payload.aspect_ratio),
    status=status,
    progress=progress,
    external_id=payload.external_id,
    result_asset_ref=result_asset_ref,
    error_info=error_info,
    retry_count=payload.retry_count,
    queued_at=payload.queued_at,
    started_at=payload.started_at,
    completed_at=payload.completed_at,
    combination_id=payload.combination_id,
    last_error=_error_from_payload(payload.last_error),
    retry_history=tuple(
      RetryAttempt(
        attempt_number=item.attempt_number,
        timestamp=item.timestamp,
        previous_error_summary=item.previous_error_summary,
        modified_input=item.modified_input,
        outcome=RetryOutcome(item.outcome),
        new_error=item.new_error,
      )
      for item in payload.retry_history
    ),
  )


class InMemoryJobsRepository:
  """Dictionary-backed repository for tests and single-process runs."""

  def __init__(self) -> None:
    self._jobs: dict[str, GenerationJob] = {}

  async def save_job(self, job: GenerationJob) -> None:
    self._jobs[job.job_id] = job

  async def get_job(self, job_id: str) -> GenerationJob | None:
    return self._jobs.get(job_id)

  async def list_jobs(self, batch_id: str | None = None) -> list[GenerationJob]:
    jobs = [job for job in self._jobs.values() if batch_id is None or job.batch_id == batch_id]
    return sorted(jobs, key=lambda job: job.queued_at)


class FileJobsRepository:
  """Stores one JSON document per job so the scheduler can recover after a restart."""

  def __init__(self, directory: Path | str) -> None:
    self._directory = Path(directory)
    self._directory.mkdir(parents=True, exist_ok=True)

  def _path_for(self, job_id: str) -> Path:
    # Reversible so distinct ids never share a file; urlsafe b64 has no path separators.
    encoded = base64.urlsafe_b64encode(job_id.encode("utf-8")).decode("ascii").rstrip("=")
    return self._directory / f"{encoded}.json"

  def _write(self, path: Path, content: bytes) -> None:
    tmp_path = path.with_suffix(".json.tmp")
    tmp_path.write_bytes(content)
    # Rename is atomic so a crash never leaves a half-written record.
    os.replace(tmp_path, path)

  def _read_all(self) -> list[GenerationJob]:
    jobs: list[GenerationJob] = []
    for path in sorted(self._directory.glob("*.json")):
      job = self._read(path)
      if job is not None:
        jobs.append(job)
    return jobs

  def _read(self, path: Path) -> GenerationJob | None:
    try:
      payload = msgspec.json.decode(path.read_bytes(), type=PersistedJob)
      return job_from_payload(payload)
    except FileNotFoundError:
      return None
    except (msgspec.DecodeError, ValueError) as exc:
      logger.warning("Skipping unreadable job record path=%s error=%s", path, exc)
      return None

  async def save_job(self, job: GenerationJob) -> None:
    content = msgspec.json.encode(job_to_payload(job))
    await run_in_threadpool(self._write, self._path_for(job.job_id), content)

  async def get_job(self, job_id: str) -> GenerationJob | None:
    return await run_in_threadpool(self._read, self._path_for(job_id))

  async def list_jobs(self, batch_id: str | None = None) -> list[GenerationJob]:
    jobs = await run_in_threadpool(self._read_all)
    return sorted((job for job in jobs if batch_id is None or job.batch_id == batch_id), key=lambda job: job.queued_at)
