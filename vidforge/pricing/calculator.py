"""Itemised, provider-attributed cost estimates for video batches.

Internal totals keep full float precision; rounding happens only in the
``format_*`` helpers. The batch total is defined as the sum of the provider
buckets so the provider partition always matches it exactly.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

from vidforge.pricing.table import BillingAccount, ChargeScope, PricingTable, load_pricing_table
from vidforge.utils.time import utc_now


@dataclass(frozen=True)
class VideoCostBreakdown:
  """Cost of a single video before batch-level charges."""

  model: str
  duration: int
  base_cost: float
  llm_costs: dict[str, float]
  llm_cost: float
  storage_cost: float
  total_per_video: float


@dataclass(frozen=True)
class CostResult:
  """Full estimate for a batch of identical videos."""

  model: str
  duration: int
  video_count: int
  per_video: VideoCostBreakdown
  per_video_cost: float
  base_subtotal: float
  llm_subtotal: float
  storage_subtotal: float
  batch_charges: dict[str, float]
  total_batch_cost: float
  provider_costs: dict[BillingAccount, float]
  pricing_version: str
  pricing_stale: bool


def calculate_video_cost(model: str, duration: int, *, table: PricingTable | None = None) -> VideoCostBreakdown:
  """Sum the generation, per-video LLM and storage costs of one video."""
  pricing = table or load_pricing_table()
  base_cost = pricing.get_unit_cost(model, duration)
  llm_costs = {charge.name: charge.amount for charge in pricing.charges_for(ChargeScope.PER_VIDEO)}
  llm_cost = math.fsum(llm_costs.values())
  storage_cost = pricing.estimate_storage_cost(duration)
  return VideoCostBreakdown(
    model=model,
    duration=duration,
    base_cost=base_cost,
    llm_costs=llm_costs,
    llm_cost=llm_cost,
    storage_cost=storage_cost,
    total_per_video=math.fsum((base_cost, llm_cost, storage_cost)),
  )


calculate_per_video_cost = calculate_video_cost


def calculate_batch_cost(model: str, duration: int, count: int, *, table: PricingTable | None = None, now: datetime | None = None) -> CostResult:
  """Estimate a batch of ``count`` videos and attribute every dollar to one billing account."""
  if type(count) is not int:
    raise ValueError(f"count must be an integer, got {count!r}")
  if count < 0:
    raise ValueError(f"count must be zero or positive, got {count}")

  pricing = table or load_pricing_table()
  # Validate the combination even for empty batches so bad input never yields a zero estimate.
  per_video = calculate_video_cost(model, duration, table=pricing)

  components: list[tuple[BillingAccount, float]] = [(pricing.generation_account, per_video.base_cost * count)]
  for charge in pricing.charges_for(ChargeScope.PER_VIDEO):
    components.append((charge.account, charge.amount * count))
  components.append((pricing.storage.account, per_video.storage_cost * count))

  # One-time charges (cached research) apply once per non-empty batch.
  batch_charges = {charge.name: charge.amount if count > 0 else 0.0 for charge in pricing.charges_for(ChargeScope.PER_BATCH)}
  for charge in pricing.charges_for(ChargeScope.PER_BATCH):
    components.append((charge.account, batch_charges[charge.name]))

  provider_costs = _attribute(components)
  total_batch_cost = math.fsum(provider_costs.values())

  return CostResult(
    model=model,
    duration=duration,
    video_count=count,
    per_video=per_video,
    per_video_cost=per_video.total_per_video,
    base_subtotal=per_video.base_cost * count,
    llm_subtotal=math.fsum([per_video.llm_cost * count, *batch_charges.values()]),
    storage_subtotal=per_video.storage_cost * count,
    batch_charges=batch_charges,
    total_batch_cost=total_batch_cost,
    provider_costs=provider_costs,
    pricing_version=pricing.version,
    pricing_stale=pricing.is_stale(now or utc_now()),
  )


def _attribute(components: list[tuple[BillingAccount, float]]) -> dict[BillingAccount, float]:
  """Group components by account; every account appears, unused ones at zero."""
  buckets: dict[BillingAccount, list[float]] = {account: [] for account in BillingAccount}
  for account, amount in components:
    buckets[account].append(amount)
  return {account: math.fsum(amounts) for account, amounts in buckets.items()}


def format_currency(amount: float) -> str:
  """Format a dollar amount with two decimals, e.g. ``$74.70``."""
  return f"${amount:,.2f}"


def format_cost_summary(result: CostResult) -> str:
  noun = "video" if result.video_count == 1 else "videos"
  return f"{format_currency(result.total_batch_cost)} for {result.video_count} {noun}"


def format_per_video_average(result: CostResult) -> str:
  """Average cost including the batch charges, spread over the videos."""
  if result.video_count == 0:
    return f"{format_currency(0.0)} per video"
  return f"{format_currency(result.total_batch_cost / result.video_count)} per video"
