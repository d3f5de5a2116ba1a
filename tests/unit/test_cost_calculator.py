from __future__ import annotations

import math
from datetime import UTC, datetime

import pytest

from vidforge.core.errors import InvalidCombinationError
from vidforge.pricing.calculator import calculate_batch_cost, calculate_video_cost, format_cost_summary, format_currency, format_per_video_average
from vidforge.pricing.table import BillingAccount

FRESH = datetime(2025, 11, 1, tzinfo=UTC)


def test_per_video_cost_includes_llm_charges() -> None:
  breakdown = calculate_video_cost("sora-2", 10)
  assert breakdown.base_cost == 5.0
  assert breakdown.llm_costs == {"prompt_generation": 0.8, "prompt_validation": 0.4}
  assert breakdown.llm_cost == pytest.approx(1.2)
  assert breakdown.storage_cost == 0.0
  assert breakdown.total_per_video == pytest.approx(6.2)


def test_twelve_video_batch_matches_dashboard_estimate() -> None:
  result = calculate_batch_cost("sora-2", 10, 12, now=FRESH)
  assert result.per_video_cost == pytest.approx(6.2)
  assert result.total_batch_cost == pytest.approx(74.70)
  assert result.batch_charges == {"research": 0.3}
  assert result.provider_costs[BillingAccount.OPENAI] == pytest.approx(69.6)
  assert result.provider_costs[BillingAccount.ANTHROPIC] == pytest.approx(4.8)
  assert result.provider_costs[BillingAccount.PERPLEXITY] == pytest.approx(0.3)
  assert result.provider_costs[BillingAccount.GOOGLE] == 0.0
  assert result.pricing_stale is False
  assert format_cost_summary(result) == "$74.70 for 12 videos"


def test_empty_batch_costs_nothing() -> None:
  result = calculate_batch_cost("sora-2-pro", 20, 0, now=FRESH)
  assert result.total_batch_cost == 0.0
  assert result.batch_charges == {"research": 0.0}
  assert all(amount == 0.0 for amount in result.provider_costs.values())
  assert format_per_video_average(result) == "$0.00 per video"


def test_empty_batch_still_validates_combination() -> None:
  with pytest.raises(InvalidCombinationError):
    calculate_batch_cost("sora-2", 7, 0)


@pytest.mark.parametrize("count", [-1, 2.0, "3", True])
def test_count_must_be_a_non_negative_integer(count: object) -> None:
  with pytest.raises(ValueError):
    calculate_batch_cost("sora-2", 10, count)  # type: ignore[arg-type]


@pytest.mark.parametrize(("model", "duration", "count"), [("sora-2", 5, 1), ("sora-2", 20, 37), ("sora-2-pro", 10, 127), ("sora-2-pro", 20, 500)])
def test_provider_buckets_partition_the_total(model: str, duration: int, count: int) -> None:
  result = calculate_batch_cost(model, duration, count, now=FRESH)
  assert set(result.provider_costs) == set(BillingAccount)
  assert math.fsum(result.provider_costs.values()) == result.total_batch_cost
  expected = math.fsum([result.base_subtotal, result.llm_subtotal, result.storage_subtotal])
  assert result.total_batch_cost == pytest.approx(expected, abs=1e-9)


def test_large_batch_has_no_accumulated_drift() -> None:
  result = calculate_batch_cost("sora-2-pro", 10, 127, now=FRESH)
  # 127 * (12 + 0.8 + 0.4) + 0.3
  assert result.total_batch_cost == pytest.approx(1676.7, abs=1e-9)
  assert format_currency(result.total_batch_cost) == "$1,676.70"


def test_stale_pricing_is_flagged() -> None:
  result = calculate_batch_cost("sora-2", 5, 1, now=datetime(2026, 3, 1, tzinfo=UTC))
  assert result.pricing_stale is True


def test_single_video_summary_uses_singular() -> None:
  assert format_cost_summary(calculate_batch_cost("sora-2", 5, 1, now=FRESH)) == "$4.00 for 1 video"
