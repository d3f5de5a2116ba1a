from __future__ import annotations

import logging

import msgspec
from fastapi import APIRouter, Depends

from vidforge.api.deps import get_pricing
from vidforge.api.models import CostEstimateRequest
from vidforge.api.msgspec_utils import encode_msgspec_response
from vidforge.pricing.calculator import CostResult, calculate_batch_cost, format_cost_summary, format_per_video_average
from vidforge.pricing.table import PricingTable

router = APIRouter()
logger = logging.getLogger("vidforge.api.routes.cost")


class CostEstimateResponse(msgspec.Struct):
  model: str
  duration: int
  video_count: int
  per_video_cost: float
  base_cost: float
  llm_costs: dict[str, float]
  storage_cost: float
  base_subtotal: float
  llm_subtotal: float
  storage_subtotal: float
  batch_charges: dict[str, float]
  provider_costs: dict[str, float]
  total_batch_cost: float
  summary: str
  per_video_average: str
  pricing_version: str
  pricing_stale: bool

  @classmethod
  def from_result(cls, result: CostResult) -> CostEstimateResponse:
    return cls(
      model=result.model,
      duration=result.duration,
      video_count=result.video_count,
      per_video_cost=result.per_video_cost,
      base_cost=result.per_video.base_cost,
      llm_costs=dict(result.per_video.llm_costs),
      storage_cost=result.per_video.storage_cost,
      base_subtotal=result.base_subtotal,
      llm_subtotal=result.llm_subtotal,
      storage_subtotal=result.storage_subtotal,
      batch_charges=dict(result.batch_charges),
      provider_costs={account.value: amount for account, amount in result.provider_costs.items()},
      total_batch_cost=result.total_batch_cost,
      summary=format_cost_summary(result),
      per_video_average=format_per_video_average(result),
      pricing_version=result.pricing_version,
      pricing_stale=result.pricing_stale,
    )


class Combination(msgspec.Struct):
  model: str
  duration: int
  unit_cost: float


class CombinationsResponse(msgspec.Struct):
  pricing_version: str
  currency: str
  combinations: list[Combination]


@router.post("/estimate")
async def estimate_cost(payload: CostEstimateRequest, pricing: PricingTable = Depends(get_pricing)):  # noqa: B008
  """Estimate the cost of a batch of identical videos."""
  result = calculate_batch_cost(payload.model, payload.duration, payload.video_count, table=pricing)
  if result.pricing_stale:
    logger.warning("Cost estimate served from stale pricing version=%s", result.pricing_version)
  return encode_msgspec_response(CostEstimateResponse.from_result(result))


@router.get("/combinations")
async def list_combinations(pricing: PricingTable = Depends(get_pricing)):  # noqa: B008
  """List every supported (model, duration) pair with its unit cost."""
  combinations = [Combination(model=model, duration=duration, unit_cost=pricing.get_unit_cost(model, duration)) for model, duration in pricing.supported_combinations()]
  return encode_msgspec_response(CombinationsResponse(pricing_version=pricing.version, currency=pricing.currency, combinations=combinations))
