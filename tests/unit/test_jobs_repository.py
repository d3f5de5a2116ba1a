from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import msgspec
import pytest

from tests.fakes import EPOCH, make_job
from vidforge.jobs.classifier import make_error
from vidforge.jobs.models import ErrorCategory, JobStatus, RetryOutcome
from vidforge.jobs.retry import create_retry_attempt
from vidforge.storage.jobs_repo import FileJobsRepository, InMemoryJobsRepository, PersistedJob, job_from_payload


def _legacy(status: str, **fields: object) -> PersistedJob:
  return PersistedJob(job_id="legacy", batch_id="batch_old", prompt="old prompt", model="sora-2", duration=10, status=status, queued_at=EPOCH, **fields)  # type: ignore[arg-type]


@pytest.mark.anyio
async def test_file_repository_keeps_full_job_state(tmp_path: Path) -> None:
  repo = FileJobsRepository(tmp_path / "jobs")
  error = make_error(ErrorCategory.RATE_LIMITED, "HTTP 429", now=EPOCH, code="429")
  attempt = create_retry_attempt(1, "rate_limited: HTTP 429", "new prompt", timestamp=EPOCH)
  job = replace(make_job(1, combination_id="combo"), status=JobStatus.FAILED, error_info=error, last_error=error, retry_count=2, retry_history=(attempt,), aspect_ratio="1:1")

  await repo.save_job(job)
  await repo.save_job(make_job(2, batch_id="batch_b"))

  assert await repo.get_job("job_1") == job
  assert await repo.get_job("missing") is None
  assert [item.job_id for item in await repo.list_jobs()] == ["job_1", "job_2"]
  assert [item.job_id for item in await repo.list_jobs("batch_b")] == ["job_2"]


@pytest.mark.anyio
async def test_unreadable_records_are_skipped(tmp_path: Path) -> None:
  repo = FileJobsRepository(tmp_path)
  await repo.save_job(make_job(1))
  (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
  assert [item.job_id for item in await repo.list_jobs()] == ["job_1"]


@pytest.mark.anyio
async def test_job_ids_are_made_file_safe(tmp_path: Path) -> None:
  repo = FileJobsRepository(tmp_path / "jobs")
  await repo.save_job(make_job(1, job_id="../escape"))
  assert [path.parent for path in (tmp_path / "jobs").iterdir()] == [tmp_path / "jobs"]
  assert not (tmp_path / "escape.json").exists()
  assert (await repo.get_job("../escape")).job_id == "../escape"


@pytest.mark.anyio
async def test_similar_job_ids_keep_separate_records(tmp_path: Path) -> None:
  repo = FileJobsRepository(tmp_path)
  for job_id in ("a/b", "a_b", "a.b", "A_B"):
    await repo.save_job(make_job(1, job_id=job_id, prompt=f"prompt for {job_id}"))

  assert sorted(job.job_id for job in await repo.list_jobs()) == ["A_B", "a.b", "a/b", "a_b"]
  assert (await repo.get_job("a/b")).prompt == "prompt for a/b"
  assert (await repo.get_job("a_b")).prompt == "prompt for a_b"


@pytest.mark.anyio
async def test_in_memory_repository() -> None:
  repo = InMemoryJobsRepository()
  await repo.save_job(make_job(1))
  await repo.save_job(make_job(1, prompt="updated"))
  assert (await repo.get_job("job_1")).prompt == "updated"
  assert len(await repo.list_jobs()) == 1


def test_legacy_statuses_are_repaired() -> None:
  winner = job_from_payload(_legacy("winner", external_id="ext_9"))
  assert winner.status is JobStatus.COMPLETED
  assert winner.result_asset_ref == "ext_9"

  errored = job_from_payload(_legacy("error"))
  assert errored.status is JobStatus.FAILED
  assert errored.error_info is not None and errored.error_info.category is ErrorCategory.UNKNOWN

  running = job_from_payload(_legacy("InProgress", progress=140))
  assert running.progress == 100

  unknown = job_from_payload(_legacy("archived", progress=10, result_asset_ref="stale"))
  assert unknown.status is JobStatus.QUEUED
  assert (unknown.progress, unknown.result_asset_ref) == (None, None)


def test_unknown_error_categories_and_outcomes_decode() -> None:
  raw = msgspec.json.encode(
    {
      "job_id": "j",
      "batch_id": "b",
      "prompt": "p",
      "model": "sora-2",
      "duration": 5,
      "status": "failed",
      "queued_at": EPOCH.isoformat(),
      "error_info": {"category": "quota", "message": "over", "occurred_at": EPOCH.isoformat()},
      "retry_history": [{"attempt_number": 1, "timestamp": EPOCH.isoformat(), "previous_error_summary": "x", "outcome": "failed"}],
    }
  )
  job = job_from_payload(msgspec.json.decode(raw, type=PersistedJob))
  assert job.error_info.category is ErrorCategory.UNKNOWN
  assert job.retry_history[0].outcome is RetryOutcome.FAILED
