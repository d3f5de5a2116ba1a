"""Contract for the external video generation capability.

Adapters for a concrete vendor implement ``GenerationCapability`` and translate
vendor responses into the boundary structs below. Raw JSON from a vendor should
go through ``decode_submit_result`` / ``decode_poll_result`` so the scheduler
only ever sees validated records.
"""

from __future__ import annotations

from collections.abc import AsyncIterable
from typing import Literal, Protocol

import msgspec

RemoteStatus = Literal["queued", "in_progress", "completed", "failed"]
RemoteErrorType = Literal["content_policy", "api_error", "generation_failed", "timeout", "rate_limited"]
AssetVariant = Literal["video", "thumbnail", "spritesheet"]
AssetPayload = bytes | AsyncIterable[bytes]


class RemoteError(msgspec.Struct, frozen=True):
  """Error reported by the generation vendor for a failed job."""

  message: str
  type: str = "generation_failed"
  code: str | None = None


class SubmitResult(msgspec.Struct, frozen=True):
  external_id: str
  status: RemoteStatus = "queued"


class PollResult(msgspec.Struct, frozen=True):
  status: RemoteStatus
  progress: int | None = None
  result_asset_ref: str | None = None
  error: RemoteError | None = None


class GenerationAPIError(Exception):
  """Error raised by capability adapters for non-success vendor responses."""

  def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None) -> None:
    super().__init__(message)
    self.message = message
    self.status_code = status_code
    self.code = code

  def __str__(self) -> str:
    if self.status_code is None:
      return self.message
    return f"{self.status_code}: {self.message}"


class GenerationCapability(Protocol):
  """Abstract video generation vendor."""

  async def submit(self, *, prompt: str, model: str, duration: int, aspect_ratio: str) -> SubmitResult:
    """Start a generation and return the vendor's identifier."""
    ...

  async def poll(self, external_id: str) -> PollResult:
    """Return the current vendor-side status of a generation."""
    ...

  async def fetch_asset(self, external_id: str, variant: AssetVariant) -> AssetPayload:
    """Return the bytes (or a byte stream) of one output variant."""
    ...


def decode_submit_result(raw: bytes | str) -> SubmitResult:
  """Validate a raw submit response; malformed payloads raise GenerationAPIError."""
  try:
    return msgspec.json.decode(raw, type=SubmitResult)
  except msgspec.DecodeError as exc:
    raise GenerationAPIError(f"Malformed submit response: {exc}", code="invalid_response") from exc


def decode_poll_result(raw: bytes | str) -> PollResult:
  """Validate a raw poll response; malformed payloads raise GenerationAPIError."""
  try:
    return msgspec.json.decode(raw, type=PollResult)
  except msgspec.DecodeError as exc:
    raise GenerationAPIError(f"Malformed poll response: {exc}", code="invalid_response") from exc
