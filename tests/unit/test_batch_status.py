from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from tests.fakes import EPOCH, make_job
from vidforge.jobs.batch import BatchStatus, derive_batch_status, estimate_completion, progress_percentage, summarize_batch
from vidforge.jobs.classifier import make_error
from vidforge.jobs.models import ErrorCategory, GenerationJob, JobStatus


def _with_status(job: GenerationJob, status: JobStatus) -> GenerationJob:
  if status is JobStatus.IN_PROGRESS:
    return replace(job, status=status, progress=0)
  if status is JobStatus.COMPLETED:
    return replace(job, status=status, result_asset_ref=f"asset_{job.job_id}")
  if status is JobStatus.FAILED:
    return replace(job, status=status, error_info=make_error(ErrorCategory.UNKNOWN, "x", now=EPOCH))
  return job


@pytest.mark.parametrize(
  ("counts", "expected"),
  [
    ((0, 0, 0, 0), BatchStatus.INITIALIZING),
    ((3, 0, 0, 0), BatchStatus.GENERATING),
    ((1, 1, 1, 0), BatchStatus.GENERATING),
    ((0, 0, 3, 0), BatchStatus.COMPLETED),
    ((0, 0, 0, 3), BatchStatus.FAILED),
    ((0, 0, 2, 1), BatchStatus.PARTIAL),
    ((0, 1, 0, 2), BatchStatus.GENERATING),
  ],
)
def test_status_precedence(counts: tuple[int, int, int, int], expected: BatchStatus) -> None:
  queued, in_progress, completed, failed = counts
  total = sum(counts)
  assert derive_batch_status(total=total, queued=queued, in_progress=in_progress, completed=completed, failed=failed) is expected


@pytest.mark.parametrize(("completed", "total", "expected"), [(0, 0, 0), (0, 12, 0), (1, 8, 13), (1, 3, 33), (2, 3, 67), (1, 200, 1), (12, 12, 100)])
def test_progress_percentage_rounds_halves_up(completed: int, total: int, expected: int) -> None:
  assert progress_percentage(completed, total) == expected


def test_completion_estimate_counts_waves() -> None:
  assert estimate_completion(0, max_concurrent=4, minutes_per_video=4, now=EPOCH) is None
  assert estimate_completion(4, max_concurrent=4, minutes_per_video=4, now=EPOCH) == EPOCH + timedelta(minutes=4)
  assert estimate_completion(9, max_concurrent=4, minutes_per_video=4, now=EPOCH) == EPOCH + timedelta(minutes=12)


def test_summarize_batch() -> None:
  statuses = [JobStatus.COMPLETED, JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.IN_PROGRESS, JobStatus.QUEUED]
  jobs = [_with_status(make_job(index), status) for index, status in enumerate(statuses)]
  summary = summarize_batch("batch_a", jobs, max_concurrent=4, minutes_per_video=4, now=EPOCH)
  assert summary.status is BatchStatus.GENERATING
  assert (summary.total, summary.queued_count, summary.in_progress_count, summary.completed_count, summary.failed_count) == (5, 1, 1, 2, 1)
  assert summary.progress_percentage == 40
  assert summary.remaining == 2
  assert summary.estimated_completion_time == EPOCH + timedelta(minutes=4)
  assert summary.is_terminal is False


def test_finished_batches_are_terminal() -> None:
  jobs = [_with_status(make_job(1), JobStatus.COMPLETED), _with_status(make_job(2), JobStatus.FAILED)]
  summary = summarize_batch("batch_a", jobs, max_concurrent=4, minutes_per_video=4, now=EPOCH)
  assert summary.status is BatchStatus.PARTIAL
  assert summary.is_terminal is True
  assert summary.estimated_completion_time is None
