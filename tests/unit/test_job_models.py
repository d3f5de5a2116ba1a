from __future__ import annotations

from dataclasses import replace

import msgspec
import pytest

from tests.fakes import EPOCH, make_job
from vidforge.jobs.classifier import make_error
from vidforge.jobs.models import AspectRatio, ErrorCategory, JobStatus, map_persisted_status


def test_new_jobs_are_queued_without_progress() -> None:
  job = make_job(1)
  assert job.status is JobStatus.QUEUED
  assert job.progress is None
  assert job.aspect_ratio is AspectRatio.LANDSCAPE
  assert job.is_terminal is False


def test_plain_strings_are_normalised() -> None:
  job = make_job(1, aspect_ratio="9:16", status="in_progress", progress=10)
  assert job.aspect_ratio is AspectRatio.PORTRAIT
  assert job.status is JobStatus.IN_PROGRESS


@pytest.mark.parametrize(
  "overrides",
  [
    {"status": JobStatus.IN_PROGRESS},
    {"progress": 10},
    {"status": JobStatus.IN_PROGRESS, "progress": 101},
    {"status": JobStatus.COMPLETED},
    {"result_asset_ref": "asset"},
    {"status": JobStatus.FAILED},
    {"error_info": make_error(ErrorCategory.UNKNOWN, "x", now=EPOCH)},
    {"retry_count": -1},
    {"prompt": "   "},
  ],
)
def test_state_invariants_are_enforced(overrides: dict) -> None:
  with pytest.raises(ValueError):
    make_job(1, **overrides)


def test_retries_exhausted() -> None:
  failed = replace(make_job(1), status=JobStatus.FAILED, error_info=make_error(ErrorCategory.TIMEOUT, "slow", now=EPOCH), retry_count=3)
  assert failed.retries_exhausted(3) is True
  assert replace(failed, retry_count=1).retries_exhausted(3) is False
  policy = replace(failed, retry_count=1, error_info=make_error(ErrorCategory.CONTENT_POLICY, "no", now=EPOCH))
  assert policy.retries_exhausted(3) is True
  assert make_job(2).retries_exhausted(3) is False


@pytest.mark.parametrize(
  ("raw", "expected"),
  [
    ("queued", JobStatus.QUEUED),
    ("Pending", JobStatus.QUEUED),
    ("in_progress", JobStatus.IN_PROGRESS),
    ("in-progress", JobStatus.IN_PROGRESS),
    ("InProgress", JobStatus.IN_PROGRESS),
    ("winner", JobStatus.COMPLETED),
    ("completed", JobStatus.COMPLETED),
    ("error", JobStatus.FAILED),
    ("failed", JobStatus.FAILED),
    ("archived", JobStatus.QUEUED),
    (None, JobStatus.QUEUED),
  ],
)
def test_map_persisted_status(raw: str | None, expected: JobStatus) -> None:
  assert map_persisted_status(raw) is expected


@pytest.mark.parametrize(
  ("category", "retryable"),
  [
    (ErrorCategory.RATE_LIMITED, True),
    (ErrorCategory.TIMEOUT, True),
    (ErrorCategory.CONTENT_POLICY, False),
    (ErrorCategory.CANCELLED, False),
  ],
)
def test_retryable_is_part_of_the_encoded_error(category: ErrorCategory, retryable: bool) -> None:
  failed = replace(make_job(1), status=JobStatus.FAILED, error_info=make_error(category, "boom", now=EPOCH))
  encoded = msgspec.to_builtins(failed)
  assert encoded["error_info"]["retryable"] is retryable
  assert replace(failed.error_info, category=ErrorCategory.CONTENT_POLICY).retryable is False
