"""Domain models for post-generation asset downloads."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from vidforge.jobs.models import ErrorRecord
from vidforge.storage.assets import StoredAsset


class DownloadStatus(str, Enum):
  PENDING = "pending"
  DOWNLOADING = "downloading"
  COMPLETED = "completed"
  FAILED = "failed"
  EXPIRED = "expired"


@dataclass(frozen=True)
class DownloadJob:
  """Retrieval of one generated video's assets before its signed URL expires."""

  asset_ref: str
  external_id: str
  job_id: str
  batch_id: str
  status: DownloadStatus
  expires_at: datetime
  generated_at: datetime
  attempts: int = 0
  assets: tuple[StoredAsset, ...] = ()
  error: ErrorRecord | None = None
  downloaded_at: datetime | None = None

  def __post_init__(self) -> None:
    if self.attempts < 0:
      raise ValueError("attempts must be >= 0")

  def is_expired_at(self, now: datetime) -> bool:
    """A download that has not completed is expired once ``now`` reaches ``expires_at``."""
    return self.status is not DownloadStatus.COMPLETED and now >= self.expires_at

  def seconds_remaining(self, now: datetime) -> float:
    return (self.expires_at - now).total_seconds()


@dataclass(frozen=True)
class DownloadSummary:
  pending: int
  downloading: int
  completed: int
  failed: int
  expired: int
  approaching_expiration: int
  total: int
