"""Domain models for video generation jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from vidforge.utils.time import utc_now


class JobStatus(str, Enum):
  QUEUED = "queued"
  IN_PROGRESS = "in_progress"
  COMPLETED = "completed"
  FAILED = "failed"


class AspectRatio(str, Enum):
  LANDSCAPE = "16:9"
  PORTRAIT = "9:16"
  SQUARE = "1:1"


class ErrorCategory(str, Enum):
  """Failure taxonomy shared by generation and download jobs."""

  CONTENT_POLICY = "content_policy"
  TRANSIENT_API_ERROR = "transient_api_error"
  RATE_LIMITED = "rate_limited"
  TIMEOUT = "timeout"
  DOWNLOAD_FAILED = "download_failed"
  EXPIRED = "expired"
  CANCELLED = "cancelled"
  UNKNOWN = "unknown"


NON_RETRYABLE_CATEGORIES = frozenset({ErrorCategory.CONTENT_POLICY, ErrorCategory.EXPIRED, ErrorCategory.CANCELLED})


class RetryOutcome(str, Enum):
  PENDING = "pending"
  SUCCEEDED = "succeeded"
  FAILED = "failed"


@dataclass(frozen=True)
class ErrorRecord:
  """A classified failure. Retryability follows from the category alone."""

  category: ErrorCategory
  message: str
  occurred_at: datetime
  code: str | None = None
  retryable: bool = field(init=False)

  def __post_init__(self) -> None:
    object.__setattr__(self, "retryable", self.category not in NON_RETRYABLE_CATEGORIES)


@dataclass(frozen=True)
class RetryAttempt:
  """Audit record of one automatic or manual retry."""

  attempt_number: int
  timestamp: datetime
  previous_error_summary: str
  modified_input: str | None = None
  outcome: RetryOutcome = RetryOutcome.PENDING
  new_error: str | None = None

  def __post_init__(self) -> None:
    if self.attempt_number < 1:
      raise ValueError("attempt_number must be >= 1")


@dataclass(frozen=True)
class GenerationJob:
  """One request to produce a single video.

  Only the scheduler changes ``status``; every change produces a new record, so
  any instance a caller holds is a snapshot.
  """

  job_id: str
  batch_id: str
  prompt: str
  model: str
  duration: int
  aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE
  status: JobStatus = JobStatus.QUEUED
  progress: int | None = None
  external_id: str | None = None
  result_asset_ref: str | None = None
  error_info: ErrorRecord | None = None
  retry_count: int = 0
  queued_at: datetime = field(default_factory=utc_now)
  started_at: datetime | None = None
  completed_at: datetime | None = None
  combination_id: str | None = None
  last_error: ErrorRecord | None = None
  retry_history: tuple[RetryAttempt, ...] = ()

  def __post_init__(self) -> None:
    if not self.job_id or not self.batch_id:
      raise ValueError("job_id and batch_id must be non-empty")
    if not self.prompt or not self.prompt.strip():
      raise ValueError(f"job {self.job_id}: prompt must be non-empty")
    if self.retry_count < 0:
      raise ValueError(f"job {self.job_id}: retry_count must be >= 0")
    # Normalise plain strings so callers may pass "9:16" or "queued".
    if not isinstance(self.aspect_ratio, AspectRatio):
      object.__setattr__(self, "aspect_ratio", AspectRatio(self.aspect_ratio))
    if not isinstance(self.status, JobStatus):
      object.__setattr__(self, "status", JobStatus(self.status))

    in_progress = self.status is JobStatus.IN_PROGRESS
    if in_progress != (self.progress is not None):
      raise ValueError(f"job {self.job_id}: progress is defined only while in progress")
    if self.progress is not None and not 0 <= self.progress <= 100:
      raise ValueError(f"job {self.job_id}: progress must be within 0..100")
    if (self.status is JobStatus.COMPLETED) != (self.result_asset_ref is not None):
      raise ValueError(f"job {self.job_id}: result_asset_ref is defined only when completed")
    if (self.status is JobStatus.FAILED) != (self.error_info is not None):
      raise ValueError(f"job {self.job_id}: error_info is defined only when failed")

  @property
  def is_terminal(self) -> bool:
    return self.status in {JobStatus.COMPLETED, JobStatus.FAILED}

  def retries_exhausted(self, max_attempts: int) -> bool:
    """True for a failed job that will not be retried automatically."""
    return self.status is JobStatus.FAILED and (self.retry_count >= max_attempts or not (self.error_info and self.error_info.retryable))


# Values written by older versions of the dashboard, where a video's status was
# inferred from the combination's "winner" flag.
_PERSISTED_STATUS_MAP: dict[str, JobStatus] = {
  "queued": JobStatus.QUEUED,
  "pending": JobStatus.QUEUED,
  "in_progress": JobStatus.IN_PROGRESS,
  "inprogress": JobStatus.IN_PROGRESS,
  "generating": JobStatus.IN_PROGRESS,
  "completed": JobStatus.COMPLETED,
  "winner": JobStatus.COMPLETED,
  "loser": JobStatus.COMPLETED,
  "failed": JobStatus.FAILED,
  "error": JobStatus.FAILED,
}


def map_persisted_status(value: str | None) -> JobStatus:
  """Map any persisted status value to a job status; unrecognised values default to queued."""
  if value is None:
    return JobStatus.QUEUED
  normalized = value.strip().lower().replace(" ", "_").replace("-", "_")
  return _PERSISTED_STATUS_MAP.get(normalized, JobStatus.QUEUED)
