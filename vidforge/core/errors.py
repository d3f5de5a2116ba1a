"""Domain exceptions raised for programmer errors and invalid operator requests.

Expected runtime failures (rejected prompts, rate limits, timeouts) are never
raised; they are recorded on jobs as ``ErrorRecord`` values.
"""

from __future__ import annotations


class VidforgeError(Exception):
  """Base class for vidforge domain errors."""


class InvalidCombinationError(VidforgeError, ValueError):
  """Raised when a (model, duration) pair is not in the pricing table."""

  def __init__(self, model: object, duration: object) -> None:
    self.model = model
    self.duration = duration
    super().__init__(f"Unsupported model/duration combination: model={model!r} duration={duration!r}")


class InvalidJobError(VidforgeError, ValueError):
  """Raised when a submitted job descriptor is malformed."""


class DuplicateJobError(VidforgeError):
  """Raised when a job id is submitted twice."""

  def __init__(self, job_id: str) -> None:
    self.job_id = job_id
    super().__init__(f"Job {job_id!r} is already registered.")


class JobNotFoundError(VidforgeError, LookupError):
  """Raised when an operation targets an unknown generation job."""

  def __init__(self, job_id: str) -> None:
    self.job_id = job_id
    super().__init__(f"Job {job_id!r} not found.")


class InvalidTransitionError(VidforgeError):
  """Raised when a job or download is asked to move between incompatible states."""

  def __init__(self, subject: str, current: str, target: str) -> None:
    self.subject = subject
    self.current = current
    self.target = target
    super().__init__(f"{subject}: cannot transition from {current} to {target}.")


class DownloadNotFoundError(VidforgeError, LookupError):
  """Raised when an operation targets an unknown download job."""

  def __init__(self, asset_ref: str) -> None:
    self.asset_ref = asset_ref
    super().__init__(f"Download {asset_ref!r} not found.")


class AssetExpiredError(VidforgeError):
  """Raised when a download is retried after its signed URL lifetime elapsed."""

  def __init__(self, asset_ref: str) -> None:
    self.asset_ref = asset_ref
    super().__init__(f"Download {asset_ref!r} has expired; regenerate the source video.")
