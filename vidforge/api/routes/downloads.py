from __future__ import annotations

import logging
from typing import Annotated

import msgspec
from fastapi import APIRouter, Depends, Query, Request

from vidforge.api.deps import get_downloads
from vidforge.api.msgspec_utils import decode_msgspec_request, encode_msgspec_response
from vidforge.core.errors import DownloadNotFoundError
from vidforge.downloads.manager import DownloadManager
from vidforge.downloads.models import DownloadJob, DownloadSummary

router = APIRouter()
logger = logging.getLogger("vidforge.api.routes.downloads")


class RetryDownloadRequest(msgspec.Struct, forbid_unknown_fields=True):
  asset_ref: Annotated[str, msgspec.Meta(min_length=1)]


class DownloadListResponse(msgspec.Struct):
  downloads: list[DownloadJob]
  count: int


class ClearCompletedResponse(msgspec.Struct):
  removed: int
  summary: DownloadSummary


@router.get("/status")
async def get_download_status(asset_ref: str = Query(..., min_length=1), downloads: DownloadManager = Depends(get_downloads)):  # noqa: B008
  """Return one download, refreshed against its expiry."""
  job = downloads.get_download_status(asset_ref)
  if job is None:
    raise DownloadNotFoundError(asset_ref)
  return encode_msgspec_response(job)


@router.get("/summary")
async def get_download_summary(downloads: DownloadManager = Depends(get_downloads)):  # noqa: B008
  return encode_msgspec_response(downloads.get_download_summary())


@router.get("/pending")
async def list_pending_downloads(downloads: DownloadManager = Depends(get_downloads)):  # noqa: B008
  """Return pending downloads, soonest expiry first."""
  jobs = downloads.get_pending_downloads()
  return encode_msgspec_response(DownloadListResponse(downloads=jobs, count=len(jobs)))


@router.get("/expiring")
async def list_expiring_downloads(window_seconds: float | None = Query(default=None, ge=0), downloads: DownloadManager = Depends(get_downloads)):  # noqa: B008
  """Return unfinished downloads expiring within the window, soonest first."""
  jobs = downloads.get_expiring_downloads(window_seconds)
  return encode_msgspec_response(DownloadListResponse(downloads=jobs, count=len(jobs)))


@router.post("/retry")
async def retry_download(request: Request, downloads: DownloadManager = Depends(get_downloads)):  # noqa: B008
  """Restart a failed download; expired downloads answer 410."""
  payload = await decode_msgspec_request(request, RetryDownloadRequest)
  job = await downloads.retry_download(payload.asset_ref)
  return encode_msgspec_response(job)


@router.post("/clear-completed")
async def clear_completed_downloads(downloads: DownloadManager = Depends(get_downloads)):  # noqa: B008
  removed = downloads.clear_completed()
  logger.info("Cleared completed downloads removed=%d", removed)
  return encode_msgspec_response(ClearCompletedResponse(removed=removed, summary=downloads.get_download_summary()))
