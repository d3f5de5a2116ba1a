"""Failure classification for generation and download jobs.

This module is the only place that assigns an ``ErrorCategory``; the retry
policy and the scheduler rely on ``ErrorRecord.retryable``, which follows from
the category.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum

import httpx

from vidforge.jobs.capability import GenerationAPIError, RemoteError
from vidforge.jobs.models import ErrorCategory, ErrorRecord
from vidforge.utils.time import utc_now

MAX_MESSAGE_CHARS = 500

_CONTENT_POLICY_PATTERNS = (
  re.compile(r"content[ _-]?policy", re.IGNORECASE),
  re.compile(r"policy violation", re.IGNORECASE),
  re.compile(r"inappropriate content", re.IGNORECASE),
  re.compile(r"violates (?:our |the )?guidelines", re.IGNORECASE),
  re.compile(r"moderation", re.IGNORECASE),
  re.compile(r"not allowed", re.IGNORECASE),
)
_RATE_LIMIT_PATTERNS = (
  re.compile(r"\b429\b"),
  re.compile(r"rate[ _-]?limit", re.IGNORECASE),
  re.compile(r"too many requests", re.IGNORECASE),
  re.compile(r"quota exceeded", re.IGNORECASE),
  re.compile(r"resource exhausted", re.IGNORECASE),
)
_TIMEOUT_PATTERNS = (
  re.compile(r"timed? ?out", re.IGNORECASE),
  re.compile(r"timeout", re.IGNORECASE),
)
_TRANSIENT_PATTERNS = (
  re.compile(r"\b5\d\d\b"),
  re.compile(r"gateway", re.IGNORECASE),
  re.compile(r"service unavailable", re.IGNORECASE),
  re.compile(r"network", re.IGNORECASE),
  re.compile(r"connection", re.IGNORECASE),
  re.compile(r"econnreset|econnrefused", re.IGNORECASE),
)

_REMOTE_TYPE_CATEGORIES: dict[str, ErrorCategory] = {
  "content_policy": ErrorCategory.CONTENT_POLICY,
  "moderation_blocked": ErrorCategory.CONTENT_POLICY,
  "timeout": ErrorCategory.TIMEOUT,
  "rate_limited": ErrorCategory.RATE_LIMITED,
  "api_error": ErrorCategory.TRANSIENT_API_ERROR,
}

_USER_MESSAGES: dict[ErrorCategory, str] = {
  ErrorCategory.CONTENT_POLICY: "The prompt was rejected by the content policy. Revise the prompt and retry.",
  ErrorCategory.TRANSIENT_API_ERROR: "The generation service had a temporary problem. The job will be retried automatically.",
  ErrorCategory.RATE_LIMITED: "The generation service is rate limiting requests. The job will be retried after a pause.",
  ErrorCategory.TIMEOUT: "The generation service did not respond in time. The job will be retried automatically.",
  ErrorCategory.DOWNLOAD_FAILED: "The video was generated but could not be downloaded. Retry the download before the link expires.",
  ErrorCategory.EXPIRED: "The download link expired. Regenerate the video to obtain a new one.",
  ErrorCategory.CANCELLED: "The job was cancelled.",
  ErrorCategory.UNKNOWN: "The job failed for an unknown reason and has been logged for review.",
}


class FailureStage(str, Enum):
  """Where a failure happened; downloads classify differently from generation."""

  GENERATION = "generation"
  DOWNLOAD = "download"


def make_error(category: ErrorCategory, message: str, *, now: datetime | None = None, code: str | None = None) -> ErrorRecord:
  """Build an ErrorRecord with a bounded message."""
  text = (message or category.value).strip()
  if len(text) > MAX_MESSAGE_CHARS:
    text = text[: MAX_MESSAGE_CHARS - 3] + "..."
  return ErrorRecord(category=category, message=text, occurred_at=now or utc_now(), code=code)


def category_for_status(status_code: int) -> ErrorCategory | None:
  """Map an HTTP status code to a category, or None for non-error codes."""
  if status_code == 429:
    return ErrorCategory.RATE_LIMITED
  if 400 <= status_code < 500:
    return ErrorCategory.CONTENT_POLICY
  if status_code >= 500:
    return ErrorCategory.TRANSIENT_API_ERROR
  return None


def _category_from_message(message: str) -> ErrorCategory:
  if any(pattern.search(message) for pattern in _CONTENT_POLICY_PATTERNS):
    return ErrorCategory.CONTENT_POLICY
  if any(pattern.search(message) for pattern in _RATE_LIMIT_PATTERNS):
    return ErrorCategory.RATE_LIMITED
  if any(pattern.search(message) for pattern in _TIMEOUT_PATTERNS):
    return ErrorCategory.TIMEOUT
  if any(pattern.search(message) for pattern in _TRANSIENT_PATTERNS):
    return ErrorCategory.TRANSIENT_API_ERROR
  return ErrorCategory.UNKNOWN


def _describe(exc: BaseException) -> str:
  message = str(exc)
  if message:
    return f"{type(exc).__name__}: {message}"
  return type(exc).__name__


def classify_failure(failure: BaseException | RemoteError | int, *, stage: FailureStage = FailureStage.GENERATION, now: datetime | None = None) -> ErrorRecord:
  """Classify a raw failure into an ErrorRecord.

  ``failure`` may be an exception raised while talking to the vendor, an HTTP
  status code, or the error payload of a failed poll.

  Precedence:
    - download stage: always ``download_failed``
    - vendor error payload: by its ``type``, then by message wording
    - timeouts: ``timeout``
    - HTTP status: 429 ``rate_limited``, other 4xx ``content_policy``, 5xx ``transient_api_error``
    - transport / connection errors: ``transient_api_error``
    - message wording, else ``unknown``
  """
  # Asset-fetch failures never reflect on the generation itself.
  if stage is FailureStage.DOWNLOAD:
    description = _describe(failure) if isinstance(failure, BaseException) else str(failure)
    return make_error(ErrorCategory.DOWNLOAD_FAILED, description, now=now)

  if isinstance(failure, RemoteError):
    category = _REMOTE_TYPE_CATEGORIES.get(failure.type) or _category_from_message(failure.message)
    return make_error(category, failure.message, now=now, code=failure.code or failure.type)

  if isinstance(failure, int) and not isinstance(failure, bool):
    category = category_for_status(failure) or ErrorCategory.UNKNOWN
    return make_error(category, f"HTTP {failure}", now=now, code=str(failure))

  if isinstance(failure, (TimeoutError, httpx.TimeoutException)):
    return make_error(ErrorCategory.TIMEOUT, _describe(failure), now=now)

  if isinstance(failure, GenerationAPIError):
    if failure.code in _REMOTE_TYPE_CATEGORIES:
      return make_error(_REMOTE_TYPE_CATEGORIES[failure.code], str(failure), now=now, code=failure.code)
    if failure.status_code is not None:
      category = category_for_status(failure.status_code)
      if category is not None:
        return make_error(category, str(failure), now=now, code=str(failure.status_code))
    return make_error(_category_from_message(failure.message), str(failure), now=now, code=failure.code)

  if isinstance(failure, httpx.HTTPStatusError):
    status_code = failure.response.status_code
    category = category_for_status(status_code) or ErrorCategory.UNKNOWN
    return make_error(category, f"HTTP {status_code} from {failure.request.url}", now=now, code=str(status_code))

  # Connection resets, DNS failures and other transport problems are transient.
  if isinstance(failure, (httpx.TransportError, ConnectionError, OSError)):
    return make_error(ErrorCategory.TRANSIENT_API_ERROR, _describe(failure), now=now)

  return make_error(_category_from_message(str(failure)), _describe(failure), now=now)


def summarize_error(error: ErrorRecord | None) -> str:
  """One-line summary used in retry audit records."""
  if error is None:
    return "no error recorded"
  return f"{error.category.value}: {error.message}"


def user_message(category: ErrorCategory) -> str:
  """Operator-facing explanation of a category."""
  return _USER_MESSAGES[category]
