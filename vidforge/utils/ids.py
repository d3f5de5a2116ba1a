"""Identifier utilities."""

from __future__ import annotations

import secrets
import string
import uuid


def generate_job_id() -> str:
  """Return a new generation job identifier."""
  return str(uuid.uuid4())


def generate_batch_id(size: int = 12) -> str:
  """Return a short non-sequential batch id suitable for public references."""
  alphabet = string.ascii_lowercase + string.digits
  return "batch_" + "".join(secrets.choice(alphabet) for _ in range(size))
