"""Best-effort status notifications to the human-visible tracking board.

The tracking store is not authoritative. Implementations log delivery problems
and return normally so a slow or broken board never stalls generation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import httpx
import msgspec

from vidforge.jobs.models import GenerationJob

logger = logging.getLogger(__name__)


class TrackedError(msgspec.Struct, frozen=True):
  category: str
  message: str
  retryable: bool
  occurred_at: datetime


class StatusUpdate(msgspec.Struct, frozen=True):
  """Status-change notification for one job."""

  job_id: str
  batch_id: str
  status: str
  retry_count: int
  progress: int | None = None
  external_id: str | None = None
  result_asset_ref: str | None = None
  error_info: TrackedError | None = None
  combination_id: str | None = None

  @classmethod
  def from_job(cls, job: GenerationJob) -> StatusUpdate:
    error = job.error_info
    return cls(
      job_id=job.job_id,
      batch_id=job.batch_id,
      status=job.status.value,
      retry_count=job.retry_count,
      progress=job.progress,
      external_id=job.external_id,
      result_asset_ref=job.result_asset_ref,
      error_info=TrackedError(category=error.category.value, message=error.message, retryable=error.retryable, occurred_at=error.occurred_at) if error else None,
      combination_id=job.combination_id,
    )


class TrackingStore(Protocol):
  """Receiver of job status changes."""

  async def publish(self, update: StatusUpdate) -> None:
    """Record a status change; must not raise."""
    ...


class NullTrackingStore:
  """Tracking store that drops every update."""

  async def publish(self, update: StatusUpdate) -> None:
    return None


@dataclass(frozen=True)
class WebhookConfig:
  url: str
  timeout_seconds: float = 10.0
  auth_token: str | None = None


class WebhookTrackingStore:
  """POSTs each status update as JSON to a webhook."""

  def __init__(self, config: WebhookConfig, *, client: httpx.AsyncClient | None = None) -> None:
    self._config = config
    self._client = client

  def _headers(self) -> dict[str, str]:
    headers = {"content-type": "application/json"}
    if self._config.auth_token:
      headers["authorization"] = f"Bearer {self._config.auth_token}"
    return headers

  async def publish(self, update: StatusUpdate) -> None:
    content = msgspec.json.encode(update)
    try:
      if self._client is not None:
        response = await self._client.post(self._config.url, content=content, headers=self._headers(), timeout=self._config.timeout_seconds)
      else:
        async with httpx.AsyncClient(trust_env=False) as client:
          response = await client.post(self._config.url, content=content, headers=self._headers(), timeout=self._config.timeout_seconds)
      response.raise_for_status()
    except httpx.HTTPStatusError as exc:
      logger.warning("Tracking webhook returned %s for job=%s status=%s", exc.response.status_code, update.job_id, update.status)
    except httpx.RequestError as exc:
      logger.warning("Tracking webhook unreachable for job=%s status=%s: %s", update.job_id, update.status, exc)
