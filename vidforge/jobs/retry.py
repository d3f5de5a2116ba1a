"""Retry decisions, backoff delays and retry audit records."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from vidforge.jobs.models import ErrorCategory, ErrorRecord, RetryAttempt, RetryOutcome
from vidforge.utils.time import utc_now


@dataclass(frozen=True)
class BackoffPolicy:
  """Exponential backoff with a longer base for rate-limited failures."""

  base_delay_seconds: float = 2.0
  rate_limit_base_delay_seconds: float = 10.0
  max_delay_seconds: float = 60.0

  def __post_init__(self) -> None:
    if self.base_delay_seconds < 0 or self.rate_limit_base_delay_seconds < 0 or self.max_delay_seconds < 0:
      raise ValueError("backoff delays must be zero or positive")

  def base_for(self, category: ErrorCategory) -> float:
    if category is ErrorCategory.RATE_LIMITED:
      return self.rate_limit_base_delay_seconds
    return self.base_delay_seconds


DEFAULT_BACKOFF = BackoffPolicy()


def should_auto_retry(error: ErrorRecord, attempt_count: int, max_attempts: int) -> bool:
  """Return True when a failed job may be re-queued without operator action."""
  if attempt_count >= max_attempts:
    return False
  return error.retryable


def get_retry_delay(attempt_count: int, category: ErrorCategory, policy: BackoffPolicy = DEFAULT_BACKOFF) -> float:
  """Seconds to wait before the retry that follows failed attempt ``attempt_count``."""
  if attempt_count < 1:
    raise ValueError("attempt_count must be >= 1")
  return min(policy.base_for(category) * 2 ** (attempt_count - 1), policy.max_delay_seconds)


def create_retry_attempt(attempt_number: int, previous_error_summary: str, modified_input: str | None = None, *, timestamp: datetime | None = None) -> RetryAttempt:
  """Build the audit record of a retry; resubmission is up to the scheduler."""
  return RetryAttempt(
    attempt_number=attempt_number,
    timestamp=timestamp or utc_now(),
    previous_error_summary=previous_error_summary,
    modified_input=modified_input,
    outcome=RetryOutcome.PENDING,
  )


def update_retry_outcome(attempt: RetryAttempt, outcome: RetryOutcome, new_error: str | None = None) -> RetryAttempt:
  return replace(attempt, outcome=outcome, new_error=new_error)


def close_pending_attempt(history: tuple[RetryAttempt, ...], outcome: RetryOutcome, new_error: str | None = None) -> tuple[RetryAttempt, ...]:
  """Resolve the latest pending retry in ``history`` with the attempt's outcome."""
  if not history or history[-1].outcome is not RetryOutcome.PENDING:
    return history
  return (*history[:-1], update_retry_outcome(history[-1], outcome, new_error))
