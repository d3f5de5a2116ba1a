"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

import pytest

from vidforge.core.errors import AssetExpiredError, DownloadNotFoundError, DuplicateJobError, InvalidCombinationError, InvalidJobError, InvalidTransitionError, JobNotFoundError
from vidforge.core.exceptions import _error_payload, _sanitize_validation_errors, status_code_for


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Validation errors stay JSON-serializable and never echo the submitted prompt."""
  errors = [{"type": "value_error", "loc": ("body", "jobs", 0, "prompt"), "msg": "Value error, prompt must contain non-whitespace characters", "input": "   ", "ctx": {"error": ValueError("blank")}, "url": "https://errors.pydantic.dev"}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert "ctx" not in sanitized[0]
  assert "url" not in sanitized[0]
  assert sanitized[0]["loc"] == "('body', 'jobs', 0, 'prompt')"


@pytest.mark.parametrize(
  ("error", "status_code"),
  [
    (InvalidCombinationError("sora-2", 7), 400),
    (InvalidJobError("bad"), 422),
    (JobNotFoundError("job_1"), 404),
    (DownloadNotFoundError("asset"), 404),
    (DuplicateJobError("job_1"), 409),
    (InvalidTransitionError("job job_1", "queued", "queued"), 409),
    (AssetExpiredError("asset"), 410),
  ],
)
def test_domain_errors_map_to_http_status(error: Exception, status_code: int) -> None:
  assert status_code_for(error) == status_code  # type: ignore[arg-type]


def test_error_payload_includes_request_id_only_when_known() -> None:
  assert _error_payload("nope") == {"detail": "nope"}
  assert _error_payload("nope", request_id="req-1", code="JobNotFoundError") == {"detail": "nope", "code": "JobNotFoundError", "requestId": "req-1"}
