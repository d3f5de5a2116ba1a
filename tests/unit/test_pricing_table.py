from __future__ import annotations

import json
from datetime import UTC, date, datetime
from pathlib import Path

import msgspec
import pytest

from vidforge.core.errors import InvalidCombinationError
from vidforge.pricing.table import BillingAccount, ChargeScope, StorageType, get_unit_cost, is_stale, load_pricing_table, parse_pricing_document


def _document(**overrides: object) -> dict:
  document = {
    "version": "2.0.0",
    "last_updated": "2025-10-26",
    "currency": "USD",
    "generation_account": "openai",
    "generation": {"sora-2": {"5": 2.5, "10": 5.0}},
    "charges": [{"name": "prompt_generation", "account": "openai", "amount": 0.8, "scope": "per_video"}],
    "storage": {"type": "cloud", "account": "storage", "price_per_gb_month": 0.02, "size_mb_per_10_seconds": 50},
  }
  document.update(overrides)
  return document


@pytest.mark.parametrize(
  ("model", "duration", "expected"),
  [("sora-2", 5, 2.5), ("sora-2", 10, 5.0), ("sora-2", 20, 10.0), ("sora-2-pro", 5, 6.0), ("sora-2-pro", 10, 12.0), ("sora-2-pro", 20, 24.0)],
)
def test_bundled_rates_cover_every_combination(model: str, duration: int, expected: float) -> None:
  assert get_unit_cost(model, duration) == expected


@pytest.mark.parametrize(("model", "duration"), [("sora-3", 10), ("sora-2", 15), ("sora-2", 10.0), ("sora-2", True), ("", 10), (None, 10)])
def test_unsupported_combinations_raise(model: object, duration: object) -> None:
  table = load_pricing_table()
  with pytest.raises(InvalidCombinationError):
    table.get_unit_cost(model, duration)  # type: ignore[arg-type]
  assert table.supports(model, duration) is False


def test_supported_combinations_lists_durations_in_order() -> None:
  table = load_pricing_table()
  assert table.supported_combinations() == [("sora-2", 5), ("sora-2", 10), ("sora-2", 20), ("sora-2-pro", 5), ("sora-2-pro", 10), ("sora-2-pro", 20)]
  assert table.models == ("sora-2", "sora-2-pro")


def test_charges_are_grouped_by_scope() -> None:
  table = load_pricing_table()
  per_video = {charge.name: (charge.account, charge.amount) for charge in table.charges_for(ChargeScope.PER_VIDEO)}
  per_batch = {charge.name: (charge.account, charge.amount) for charge in table.charges_for(ChargeScope.PER_BATCH)}
  assert per_video == {"prompt_generation": (BillingAccount.OPENAI, 0.8), "prompt_validation": (BillingAccount.ANTHROPIC, 0.4)}
  assert per_batch == {"research": (BillingAccount.PERPLEXITY, 0.3)}


def test_local_storage_is_free() -> None:
  table = load_pricing_table()
  assert table.storage.storage_type is StorageType.LOCAL
  assert table.estimate_storage_cost(20) == 0.0


def test_cloud_storage_cost_scales_with_duration(tmp_path: Path) -> None:
  path = tmp_path / "rates.json"
  path.write_text(json.dumps(_document()))
  table = load_pricing_table(path)
  # 20 s -> 100 MB -> 100/1024 GB at $0.02 per GB-month.
  assert table.estimate_storage_cost(20) == pytest.approx(100 / 1024 * 0.02)
  assert table.version == "2.0.0"


def test_parse_rejects_unknown_fields_and_non_positive_rates() -> None:
  with pytest.raises(msgspec.ValidationError):
    parse_pricing_document(json.dumps(_document(extra=True)))
  with pytest.raises(msgspec.ValidationError):
    parse_pricing_document(json.dumps(_document(generation={"sora-2": {"10": 0}})))


def test_parse_rejects_models_without_durations() -> None:
  with pytest.raises(ValueError, match="no durations"):
    parse_pricing_document(json.dumps(_document(generation={"sora-2": {}})))


@pytest.mark.parametrize(
  ("now", "expected"),
  [(date(2025, 11, 25), False), (date(2025, 11, 26), True), (datetime(2025, 12, 1, tzinfo=UTC), True), (date(2025, 10, 26), False)],
)
def test_staleness_uses_thirty_day_threshold(now: date, expected: bool) -> None:
  assert is_stale(now, date(2025, 10, 26)) is expected


def test_staleness_threshold_must_not_be_negative() -> None:
  with pytest.raises(ValueError):
    is_stale(date(2025, 1, 1), date(2025, 1, 1), threshold_days=-1)
