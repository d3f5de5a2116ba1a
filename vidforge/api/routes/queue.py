from __future__ import annotations

import logging

import msgspec
from fastapi import APIRouter, Depends, status

from vidforge.api.deps import get_scheduler
from vidforge.api.models import RetryJobRequest, SubmitBatchRequest
from vidforge.api.msgspec_utils import encode_msgspec_response
from vidforge.core.errors import InvalidJobError, JobNotFoundError
from vidforge.jobs.batch import BatchSummary
from vidforge.jobs.models import GenerationJob
from vidforge.jobs.scheduler import GenerationScheduler, QueueSummary
from vidforge.utils.ids import generate_batch_id, generate_job_id

router = APIRouter()
logger = logging.getLogger("vidforge.api.routes.queue")


class BatchSubmittedResponse(msgspec.Struct):
  batch_id: str
  job_ids: list[str]
  batch: BatchSummary


class JobStatusResponse(msgspec.Struct):
  job: GenerationJob
  queue_position: int


class JobListResponse(msgspec.Struct):
  jobs: list[GenerationJob]
  count: int


class QueueStatusResponse(msgspec.Struct):
  summary: QueueSummary
  in_flight: int


def _build_jobs(payload: SubmitBatchRequest, batch_id: str) -> list[GenerationJob]:
  jobs: list[GenerationJob] = []
  for item in payload.jobs:
    try:
      jobs.append(
        GenerationJob(
          job_id=item.job_id or generate_job_id(),
          batch_id=batch_id,
          prompt=item.prompt,
          model=item.model,
          duration=item.duration,
          aspect_ratio=item.aspect_ratio,
          combination_id=item.combination_id,
        )
      )
    except ValueError as exc:
      raise InvalidJobError(str(exc)) from exc
  return jobs


@router.post("/batches")
async def submit_batch(payload: SubmitBatchRequest, scheduler: GenerationScheduler = Depends(get_scheduler)):  # noqa: B008
  """Queue every job of a batch, or none of them when any job is invalid."""
  batch_id = payload.batch_id or generate_batch_id()
  submitted = await scheduler.submit_batch(_build_jobs(payload, batch_id))
  logger.info("Batch accepted over HTTP batch_id=%s jobs=%d", batch_id, len(submitted))
  response = BatchSubmittedResponse(batch_id=batch_id, job_ids=[job.job_id for job in submitted], batch=scheduler.get_batch_status(batch_id))
  return encode_msgspec_response(response, status_code=status.HTTP_202_ACCEPTED)


@router.get("/status")
async def get_queue_status(scheduler: GenerationScheduler = Depends(get_scheduler)):  # noqa: B008
  """Return queue counts and free generation slots."""
  return encode_msgspec_response(QueueStatusResponse(summary=scheduler.get_queue_summary(), in_flight=scheduler.in_flight_count))


@router.get("/jobs/queued")
async def list_queued_jobs(scheduler: GenerationScheduler = Depends(get_scheduler)):  # noqa: B008
  """Return queued jobs in admission order."""
  jobs = scheduler.get_queued_jobs()
  return encode_msgspec_response(JobListResponse(jobs=jobs, count=len(jobs)))


@router.get("/jobs/in-progress")
async def list_in_progress_jobs(scheduler: GenerationScheduler = Depends(get_scheduler)):  # noqa: B008
  jobs = scheduler.get_in_progress_jobs()
  return encode_msgspec_response(JobListResponse(jobs=jobs, count=len(jobs)))


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, scheduler: GenerationScheduler = Depends(get_scheduler)):  # noqa: B008
  """Fetch one job snapshot and its position in the queue."""
  job = scheduler.get_status(job_id)
  if job is None:
    raise JobNotFoundError(job_id)
  return encode_msgspec_response(JobStatusResponse(job=job, queue_position=scheduler.get_queue_position(job_id)))


@router.post("/jobs/{job_id}/retry")
async def retry_job(job_id: str, payload: RetryJobRequest | None = None, scheduler: GenerationScheduler = Depends(get_scheduler)):  # noqa: B008
  """Re-queue a failed job, optionally with a modified prompt."""
  modified_prompt = payload.modified_prompt if payload is not None else None
  job = await scheduler.retry_job(job_id, modified_prompt)
  return encode_msgspec_response(JobStatusResponse(job=job, queue_position=scheduler.get_queue_position(job_id)), status_code=status.HTTP_202_ACCEPTED)
