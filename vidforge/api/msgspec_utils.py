"""msgspec codecs for routes that bypass pydantic."""

from __future__ import annotations

from typing import Any, TypeVar

import msgspec
from fastapi import HTTPException, Request, status
from starlette.responses import Response

_encoder = msgspec.json.Encoder()

T = TypeVar("T", bound=msgspec.Struct)


async def decode_msgspec_request(request: Request, struct_type: type[T]) -> T:
  """Decode the JSON body into ``struct_type``.

  Malformed JSON is a 400; well-formed JSON that violates the struct is a 422,
  matching what pydantic-validated routes answer.
  """
  body = await request.body()
  try:
    return msgspec.json.decode(body, type=struct_type)
  except msgspec.ValidationError as exc:
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Invalid {struct_type.__name__}: {exc}") from exc
  except msgspec.DecodeError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Malformed JSON body: {exc}") from exc


def encode_msgspec_response(payload: Any, *, status_code: int = status.HTTP_200_OK) -> Response:
  """Encode a Struct, dataclass snapshot or plain container as JSON."""
  return Response(content=_encoder.encode(payload), status_code=status_code, media_type="application/json")
