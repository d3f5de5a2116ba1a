from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator

MAX_JOBS_PER_BATCH = 500
MAX_PROMPT_CHARS = 4000


class CostEstimateRequest(BaseModel):
  """Request body for a batch cost estimate."""

  model: StrictStr = Field(min_length=1)
  duration: StrictInt
  video_count: StrictInt = Field(ge=0)

  model_config = ConfigDict(extra="forbid", protected_namespaces=())


class JobSpec(BaseModel):
  """One video to generate inside a submitted batch."""

  job_id: StrictStr | None = Field(default=None, min_length=1, max_length=128)
  prompt: StrictStr = Field(min_length=1, max_length=MAX_PROMPT_CHARS)
  model: StrictStr = Field(min_length=1)
  duration: StrictInt = Field(gt=0)
  aspect_ratio: Literal["16:9", "9:16", "1:1"] = "16:9"
  combination_id: StrictStr | None = None

  model_config = ConfigDict(extra="forbid", protected_namespaces=())

  @field_validator("prompt")
  @classmethod
  def _prompt_not_blank(cls, value: str) -> str:
    if not value.strip():
      raise ValueError("prompt must contain non-whitespace characters")
    return value


class SubmitBatchRequest(BaseModel):
  """Request body for submitting a batch of generation jobs."""

  batch_id: StrictStr | None = Field(default=None, min_length=1, max_length=128)
  jobs: list[JobSpec] = Field(min_length=1, max_length=MAX_JOBS_PER_BATCH)

  model_config = ConfigDict(extra="forbid")


class RetryJobRequest(BaseModel):
  """Optional prompt override for a manual retry."""

  modified_prompt: StrictStr | None = Field(default=None, max_length=MAX_PROMPT_CHARS)

  model_config = ConfigDict(extra="forbid")

  @field_validator("modified_prompt")
  @classmethod
  def _modified_prompt_not_blank(cls, value: str | None) -> str | None:
    if value is not None and not value.strip():
      raise ValueError("modified_prompt must contain non-whitespace characters")
    return value
