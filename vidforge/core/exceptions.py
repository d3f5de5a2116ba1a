from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from vidforge.config import Settings, get_settings
from vidforge.core.errors import AssetExpiredError, DownloadNotFoundError, DuplicateJobError, InvalidCombinationError, InvalidJobError, InvalidTransitionError, JobNotFoundError, VidforgeError

logger = logging.getLogger("uvicorn.error")

_DOMAIN_STATUS_CODES: tuple[tuple[type[VidforgeError], int], ...] = (
  (InvalidCombinationError, status.HTTP_400_BAD_REQUEST),
  (InvalidJobError, status.HTTP_422_UNPROCESSABLE_ENTITY),
  (JobNotFoundError, status.HTTP_404_NOT_FOUND),
  (DownloadNotFoundError, status.HTTP_404_NOT_FOUND),
  (DuplicateJobError, status.HTTP_409_CONFLICT),
  (InvalidTransitionError, status.HTTP_409_CONFLICT),
  (AssetExpiredError, status.HTTP_410_GONE),
)

_VALIDATION_KEYS_DROPPED = frozenset({"input", "ctx", "url"})
_JSON_SCALARS = str | int | float | bool | None


def _settings_for(request: Request) -> Settings:
  """Settings bound to the app, falling back to the process settings."""
  return getattr(request.app.state, "settings", None) or get_settings()


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _error_payload(detail: Any, *, request_id: str | None = None, code: str | None = None) -> dict[str, Any]:
  payload: dict[str, Any] = {"detail": detail}
  if code:
    payload["code"] = code
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Drop echoed input and stringify anything that is not a JSON scalar or list."""
  return [{key: value if isinstance(value, _JSON_SCALARS | list) else str(value) for key, value in error.items() if key not in _VALIDATION_KEYS_DROPPED} for error in errors]


def status_code_for(exc: VidforgeError) -> int:
  for error_type, status_code in _DOMAIN_STATUS_CODES:
    if isinstance(exc, error_type):
      return status_code
  return status.HTTP_400_BAD_REQUEST


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Log unhandled errors with the request id and return an opaque 500."""
  request_id = _request_id(request)
  logger.error("Unhandled error request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def domain_exception_handler(request: Request, exc: VidforgeError) -> JSONResponse:
  """Map engine errors (unknown job, bad transition, expired asset, ...) to 4xx responses."""
  request_id = _request_id(request)
  status_code = status_code_for(exc)
  if _settings_for(request).log_http_4xx:
    logger.warning("Domain error request_id=%s path=%s status_code=%s error_type=%s detail=%s", request_id, request.url.path, status_code, type(exc).__name__, exc)
  return JSONResponse(status_code=status_code, content=_error_payload(str(exc), request_id=request_id, code=type(exc).__name__))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  request_id = _request_id(request)
  errors = _sanitize_validation_errors(list(exc.errors()))
  logger.warning("Request validation failed request_id=%s method=%s path=%s errors=%s", request_id, request.method, request.url.path, errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Pass 4xx details through; hide 5xx details behind a generic message."""
  request_id = _request_id(request)
  if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
    logger.error("HTTP %s request_id=%s path=%s detail=%s", exc.status_code, request_id, request.url.path, exc.detail, exc_info=True)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))
  if _settings_for(request).log_http_4xx:
    logger.warning("HTTP %s request_id=%s path=%s detail=%s", exc.status_code, request_id, request.url.path, exc.detail)
  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id))
