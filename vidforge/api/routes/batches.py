from __future__ import annotations

import logging

import msgspec
from fastapi import APIRouter, Depends

from vidforge.api.deps import get_downloads, get_scheduler
from vidforge.api.msgspec_utils import encode_msgspec_response
from vidforge.downloads.manager import DownloadManager
from vidforge.downloads.models import DownloadJob
from vidforge.jobs.batch import BatchSummary
from vidforge.jobs.models import GenerationJob
from vidforge.jobs.scheduler import CancelResult, GenerationScheduler

router = APIRouter()
logger = logging.getLogger("vidforge.api.routes.batches")


class BatchStatusResponse(msgspec.Struct):
  batch: BatchSummary
  remaining: int
  is_terminal: bool


class BatchJobsResponse(msgspec.Struct):
  batch_id: str
  jobs: list[GenerationJob]


class BatchDownloadsResponse(msgspec.Struct):
  batch_id: str
  downloads: list[DownloadJob]


@router.get("/{batch_id}")
async def get_batch(batch_id: str, scheduler: GenerationScheduler = Depends(get_scheduler)):  # noqa: B008
  """Return the derived status of a batch; unknown batches report as initializing."""
  summary = scheduler.get_batch_status(batch_id)
  return encode_msgspec_response(BatchStatusResponse(batch=summary, remaining=summary.remaining, is_terminal=summary.is_terminal))


@router.get("/{batch_id}/jobs")
async def get_batch_jobs(batch_id: str, scheduler: GenerationScheduler = Depends(get_scheduler)):  # noqa: B008
  return encode_msgspec_response(BatchJobsResponse(batch_id=batch_id, jobs=scheduler.get_batch_jobs(batch_id)))


@router.post("/{batch_id}/cancel")
async def cancel_batch(batch_id: str, scheduler: GenerationScheduler = Depends(get_scheduler)):  # noqa: B008
  """Cancel queued jobs now and running jobs once their in-flight call returns."""
  result: CancelResult = await scheduler.cancel_batch(batch_id)
  logger.info("Batch cancel over HTTP batch_id=%s cancelled=%d pending=%d", batch_id, len(result.cancelled_job_ids), len(result.pending_job_ids))
  return encode_msgspec_response(result)


@router.get("/{batch_id}/downloads")
async def get_batch_downloads(batch_id: str, downloads: DownloadManager = Depends(get_downloads)):  # noqa: B008
  return encode_msgspec_response(BatchDownloadsResponse(batch_id=batch_id, downloads=downloads.get_batch_downloads(batch_id)))
