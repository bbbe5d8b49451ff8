"""Incentive program definitions and their rule sets.

Rules are a tagged union: a ``flat`` rate applied to all qualifying volume, or a
``tiered`` ladder where the highest tier whose minimum the volume reaches sets the
rate. Both carry the same product filters and per-dealer payout cap.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator, model_validator

from rebateflow.core.clock import ensure_utc, utcnow
from rebateflow.core.exceptions import RulesValidationError


class ProgramType(StrEnum):
    REBATE = "rebate"
    COOP = "coop"
    CONTEST = "contest"
    SPIFF = "spiff"


class ProgramStatus(StrEnum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


class Tier(BaseModel):
    """One rung of a volume ladder. ``min_volume`` is inclusive."""

    name: str = Field(min_length=1)
    min_volume: Decimal = Field(ge=0)
    max_volume: Optional[Decimal] = None  # informational only
    rate: Decimal = Field(ge=0, le=1)


class _RulesBase(BaseModel):
    max_payout_per_dealer: Optional[Decimal] = Field(default=None, ge=0)
    qualifying_products: list[str] = Field(default_factory=list)  # category allow-list
    excluded_products: list[str] = Field(default_factory=list)  # category deny-list


class FlatRateRules(_RulesBase):
    kind: Literal["flat"] = "flat"
    rate: Decimal = Field(ge=0, le=1)


class TieredRules(_RulesBase):
    kind: Literal["tiered"] = "tiered"
    tiers: list[Tier] = Field(min_length=1)
    fallback_rate: Optional[Decimal] = Field(default=None, ge=0, le=1)  # below the lowest tier

    @field_validator("tiers")
    @classmethod
    def _sorted_unique(cls, tiers: list[Tier]) -> list[Tier]:
        names = [t.name for t in tiers]
        if len(set(names)) != len(names):
            raise ValueError("tier names must be unique")
        ordered = sorted(tiers, key=lambda t: t.min_volume)
        mins = [t.min_volume for t in ordered]
        if len(set(mins)) != len(mins):
            raise ValueError("tier min_volume values must be unique")
        return ordered


Rules = Annotated[Union[FlatRateRules, TieredRules], Field(discriminator="kind")]

_rules_adapter: TypeAdapter[FlatRateRules | TieredRules] = TypeAdapter(Rules)


def parse_rules(data: dict[str, Any]) -> FlatRateRules | TieredRules:
    """Validate a tagged rules mapping (``kind`` = flat|tiered)."""
    try:
        return _rules_adapter.validate_python(data)
    except ValidationError as exc:
        raise RulesValidationError(str(exc)) from exc


def rules_from_legacy(blob: str | dict[str, Any]) -> FlatRateRules | TieredRules:
    """Convert the portal's serialized camelCase rule blob into tagged rules.

    ``{"tiers": [...], "flatRate": 0.02, "maxPayoutPerDealer": 500, ...}``. A blob with
    tiers becomes ``TieredRules`` with ``flatRate`` as the fallback rate; otherwise
    ``FlatRateRules`` (a missing flat rate means zero).
    """
    if isinstance(blob, str):
        try:
            blob = json.loads(blob)
        except json.JSONDecodeError as exc:
            raise RulesValidationError(f"Rules blob is not valid JSON: {exc}") from exc
    if not isinstance(blob, dict):
        raise RulesValidationError("Rules blob must be a JSON object")

    common: dict[str, Any] = {
        "max_payout_per_dealer": blob.get("maxPayoutPerDealer") or None,
        "qualifying_products": blob.get("qualifyingProducts") or [],
        "excluded_products": blob.get("excludedProducts") or [],
    }
    tiers = blob.get("tiers") or []
    if tiers:
        return parse_rules({
            "kind": "tiered",
            "tiers": [
                {
                    "name": t.get("name"),
                    "min_volume": str(t.get("minVolume", 0)),
                    "max_volume": None if t.get("maxVolume") is None else str(t["maxVolume"]),
                    "rate": str(t.get("rate", 0)),
                }
                for t in tiers
            ],
            "fallback_rate": None if blob.get("flatRate") is None else str(blob["flatRate"]),
            **common,
        })
    return parse_rules({"kind": "flat", "rate": str(blob.get("flatRate") or 0), **common})


class Program(BaseModel):
    """A rebate / co-op / contest / spiff program."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    code: str
    name: str
    description: str = ""
    type: ProgramType = ProgramType.REBATE
    status: ProgramStatus = ProgramStatus.DRAFT
    start_date: datetime
    end_date: Optional[datetime] = None
    enrollment_deadline: Optional[datetime] = None
    eligible_tiers: list[str] = Field(default_factory=list)  # dealer tiers, empty = all
    eligible_regions: list[str] = Field(default_factory=list)  # empty = all
    rules: Rules
    budget_amount: Optional[Decimal] = Field(default=None, ge=0)
    auto_enroll: bool = False
    requires_approval: bool = True
    created_by: str = ""
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("start_date", "end_date", "enrollment_deadline", "created_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return None if value is None else ensure_utc(value)

    @model_validator(mode="after")
    def _date_range(self) -> "Program":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not precede start_date")
        return self

    def is_eligible(self, dealer_tier: str | None = None, dealer_region: str | None = None) -> bool:
        """Eligibility predicate over dealer tier and region; empty lists admit everyone."""
        if self.eligible_tiers and dealer_tier is not None and dealer_tier not in self.eligible_tiers:
            return False
        if self.eligible_regions and dealer_region is not None and dealer_region not in self.eligible_regions:
            return False
        return True
