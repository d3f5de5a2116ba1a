"""Versioned unit-cost lookup for video generation, LLM charges and storage.

Rates live in ``rates.json`` next to this module. Adding a model or a duration
is a data change: append it to the ``generation`` map and bump the version.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Annotated

import msgspec

from vidforge.core.errors import InvalidCombinationError

DEFAULT_RATES_PATH = Path(__file__).with_name("rates.json")
DEFAULT_STALE_DAYS = 30

PositiveMoney = Annotated[float, msgspec.Meta(gt=0)]


class BillingAccount(str, Enum):
  """Upstream accounts every cost component is billed to."""

  OPENAI = "openai"
  ANTHROPIC = "anthropic"
  GOOGLE = "google"
  PERPLEXITY = "perplexity"
  STORAGE = "storage"


class ChargeScope(str, Enum):
  """How often an LLM charge is incurred."""

  PER_VIDEO = "per_video"
  PER_BATCH = "per_batch"
  # Only billed when a fallback path runs; never part of an estimate.
  CONDITIONAL = "conditional"


class StorageType(str, Enum):
  LOCAL = "local"
  CLOUD = "cloud"


class ChargeDocument(msgspec.Struct, frozen=True, forbid_unknown_fields=True):
  name: str
  account: BillingAccount
  amount: PositiveMoney
  scope: ChargeScope


class StorageDocument(msgspec.Struct, frozen=True, forbid_unknown_fields=True):
  type: StorageType
  account: BillingAccount
  price_per_gb_month: Annotated[float, msgspec.Meta(ge=0)]
  size_mb_per_10_seconds: Annotated[float, msgspec.Meta(ge=0)]


class PricingDocument(msgspec.Struct, frozen=True, forbid_unknown_fields=True):
  """Schema of the pricing data file."""

  version: str
  last_updated: date
  currency: str
  generation_account: BillingAccount
  generation: dict[str, dict[int, PositiveMoney]]
  charges: list[ChargeDocument]
  storage: StorageDocument
  sources: list[str] = []


@dataclass(frozen=True)
class LlmCharge:
  """A fixed LLM call charge attributed to one billing account."""

  name: str
  account: BillingAccount
  amount: float
  scope: ChargeScope


@dataclass(frozen=True)
class StoragePricing:
  storage_type: StorageType
  account: BillingAccount
  price_per_gb_month: float
  size_mb_per_10_seconds: float


@dataclass(frozen=True)
class PricingTable:
  """Immutable view over one version of the pricing data."""

  version: str
  last_updated: date
  currency: str
  generation_account: BillingAccount
  generation: Mapping[str, Mapping[int, float]]
  charges: tuple[LlmCharge, ...]
  storage: StoragePricing

  def get_unit_cost(self, model: str, duration: int) -> float:
    """Return the generation cost of one video; unsupported pairs raise InvalidCombinationError."""
    # bool is an int subclass and floats like 10.0 must not be coerced onto a supported duration.
    if not isinstance(model, str) or type(duration) is not int:
      raise InvalidCombinationError(model, duration)
    model_rates = self.generation.get(model)
    if model_rates is None or duration not in model_rates:
      raise InvalidCombinationError(model, duration)
    return model_rates[duration]

  def supports(self, model: object, duration: object) -> bool:
    try:
      self.get_unit_cost(model, duration)  # type: ignore[arg-type]
    except InvalidCombinationError:
      return False
    return True

  def supported_combinations(self) -> list[tuple[str, int]]:
    """Return every (model, duration) pair in table order."""
    return [(model, duration) for model, rates in self.generation.items() for duration in sorted(rates)]

  @property
  def models(self) -> tuple[str, ...]:
    return tuple(self.generation)

  def charges_for(self, scope: ChargeScope) -> tuple[LlmCharge, ...]:
    return tuple(charge for charge in self.charges if charge.scope is scope)

  def estimate_storage_cost(self, duration: int) -> float:
    """Return the monthly storage cost of one video of ``duration`` seconds."""
    if self.storage.storage_type is StorageType.LOCAL:
      return 0.0
    size_mb = (duration / 10) * self.storage.size_mb_per_10_seconds
    return (size_mb / 1024) * self.storage.price_per_gb_month

  def is_stale(self, now: datetime | date, threshold_days: int = DEFAULT_STALE_DAYS) -> bool:
    return is_stale(now, self.last_updated, threshold_days)


def is_stale(now: datetime | date, last_updated: datetime | date, threshold_days: int = DEFAULT_STALE_DAYS) -> bool:
  """Return True when more than ``threshold_days`` elapsed since ``last_updated``."""
  if threshold_days < 0:
    raise ValueError("threshold_days must be zero or positive.")
  if isinstance(now, datetime) and isinstance(last_updated, datetime):
    return now - last_updated > timedelta(days=threshold_days)
  # Compare on calendar days when either side is a plain date.
  now_day = now.date() if isinstance(now, datetime) else now
  updated_day = last_updated.date() if isinstance(last_updated, datetime) else last_updated
  return (now_day - updated_day).days > threshold_days


def parse_pricing_document(raw: bytes | str) -> PricingTable:
  """Validate a pricing document and build the lookup table."""
  document = msgspec.json.decode(raw, type=PricingDocument)
  if not document.generation:
    raise ValueError("Pricing document must list at least one generation model.")
  for model, rates in document.generation.items():
    if not model.strip():
      raise ValueError("Pricing document contains an empty model name.")
    if not rates:
      raise ValueError(f"Pricing document lists no durations for model {model!r}.")
    if any(duration <= 0 for duration in rates):
      raise ValueError(f"Pricing document lists a non-positive duration for model {model!r}.")

  return PricingTable(
    version=document.version,
    last_updated=document.last_updated,
    currency=document.currency,
    generation_account=document.generation_account,
    generation={model: dict(rates) for model, rates in document.generation.items()},
    charges=tuple(LlmCharge(name=charge.name, account=charge.account, amount=charge.amount, scope=charge.scope) for charge in document.charges),
    storage=StoragePricing(
      storage_type=document.storage.type,
      account=document.storage.account,
      price_per_gb_month=document.storage.price_per_gb_month,
      size_mb_per_10_seconds=document.storage.size_mb_per_10_seconds,
    ),
  )


def load_pricing_table(path: Path | str | None = None) -> PricingTable:
  """Load a pricing table; the bundled rates are cached for the process."""
  if path is None:
    return _default_pricing_table()
  return parse_pricing_document(Path(path).read_bytes())


@lru_cache(maxsize=1)
def _default_pricing_table() -> PricingTable:
  return parse_pricing_document(DEFAULT_RATES_PATH.read_bytes())


def get_unit_cost(model: str, duration: int, *, table: PricingTable | None = None) -> float:
  """Look up the generation cost of one video in the bundled (or given) table."""
  return (table or load_pricing_table()).get_unit_cost(model, duration)
