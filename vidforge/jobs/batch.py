"""Batch-level status derivation."""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from vidforge.jobs.models import GenerationJob, JobStatus


class BatchStatus(str, Enum):
  INITIALIZING = "initializing"
  GENERATING = "generating"
  COMPLETED = "completed"
  FAILED = "failed"
  PARTIAL = "partial"


TERMINAL_BATCH_STATUSES = frozenset({BatchStatus.COMPLETED, BatchStatus.FAILED, BatchStatus.PARTIAL})


@dataclass(frozen=True)
class BatchSummary:
  """Aggregate view of one batch, computed from a single snapshot of its jobs."""

  batch_id: str
  status: BatchStatus
  total: int
  queued_count: int
  in_progress_count: int
  completed_count: int
  failed_count: int
  progress_percentage: int
  estimated_completion_time: datetime | None

  @property
  def remaining(self) -> int:
    return self.queued_count + self.in_progress_count

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_BATCH_STATUSES


def derive_batch_status(*, total: int, queued: int, in_progress: int, completed: int, failed: int) -> BatchStatus:
  """Apply the batch status precedence to per-status counts."""
  # An empty batch has nothing to report yet, whatever the upstream record says.
  if total == 0:
    return BatchStatus.INITIALIZING
  if completed == total:
    return BatchStatus.COMPLETED
  if failed == total:
    return BatchStatus.FAILED
  if queued == 0 and in_progress == 0 and completed > 0 and failed > 0:
    return BatchStatus.PARTIAL
  if queued > 0 or in_progress > 0:
    return BatchStatus.GENERATING
  return BatchStatus.INITIALIZING


def progress_percentage(completed: int, total: int) -> int:
  """completed/total as a whole percentage, halves rounded up."""
  if total == 0:
    return 0
  return math.floor(completed * 100 / total + 0.5)


def estimate_completion(remaining: int, *, max_concurrent: int, minutes_per_video: float, now: datetime) -> datetime | None:
  """Remaining jobs run in waves of ``max_concurrent``, each wave taking ``minutes_per_video``."""
  if remaining <= 0:
    return None
  waves = math.ceil(remaining / max_concurrent)
  return now + timedelta(minutes=waves * minutes_per_video)


def summarize_batch(batch_id: str, jobs: Iterable[GenerationJob], *, max_concurrent: int, minutes_per_video: float, now: datetime) -> BatchSummary:
  counts = Counter(job.status for job in jobs)
  total = sum(counts.values())
  queued = counts[JobStatus.QUEUED]
  in_progress = counts[JobStatus.IN_PROGRESS]
  completed = counts[JobStatus.COMPLETED]
  failed = counts[JobStatus.FAILED]
  return BatchSummary(
    batch_id=batch_id,
    status=derive_batch_status(total=total, queued=queued, in_progress=in_progress, completed=completed, failed=failed),
    total=total,
    queued_count=queued,
    in_progress_count=in_progress,
    completed_count=completed,
    failed_count=failed,
    progress_percentage=progress_percentage(completed, total),
    estimated_completion_time=estimate_completion(queued + in_progress, max_concurrent=max_concurrent, minutes_per_video=minutes_per_video, now=now),
  )
