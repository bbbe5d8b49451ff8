"""Tests for the tagged rules union, legacy blob parsing and Program validation."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from rebateflow.core.exceptions import RulesValidationError
from rebateflow.models.accrual import Accrual, PeriodType, period_type_for
from rebateflow.models.program import (
    FlatRateRules,
    Program,
    TieredRules,
    parse_rules,
    rules_from_legacy,
)


class TestParseRules:
    def test_flat(self):
        rules = parse_rules({"kind": "flat", "rate": "0.02"})
        assert isinstance(rules, FlatRateRules)
        assert rules.rate == Decimal("0.02")

    def test_tiers_sorted_ascending(self):
        rules = parse_rules({
            "kind": "tiered",
            "tiers": [
                {"name": "Gold", "min_volume": "50000", "rate": "0.04"},
                {"name": "Silver", "min_volume": "10000", "rate": "0.02"},
            ],
        })
        assert isinstance(rules, TieredRules)
        assert [t.name for t in rules.tiers] == ["Silver", "Gold"]

    @pytest.mark.parametrize("data", [
        {"kind": "flat", "rate": "1.5"},
        {"kind": "tiered", "tiers": []},
        {"kind": "tiered", "tiers": [
            {"name": "A", "min_volume": "0", "rate": "0.01"},
            {"name": "A", "min_volume": "10", "rate": "0.02"},
        ]},
        {"kind": "tiered", "tiers": [
            {"name": "A", "min_volume": "10", "rate": "0.01"},
            {"name": "B", "min_volume": "10", "rate": "0.02"},
        ]},
        {"kind": "percent", "rate": "0.1"},
        {"kind": "flat", "rate": "0.1", "max_payout_per_dealer": "-1"},
    ])
    def test_rejects_invalid(self, data):
        with pytest.raises(RulesValidationError):
            parse_rules(data)


class TestLegacyRules:
    def test_tiered_blob_string(self):
        blob = json.dumps({
            "tiers": [
                {"name": "Base", "minVolume": 0, "rate": 0.01},
                {"name": "Growth", "minVolume": 20000, "maxVolume": 49999, "rate": 0.03},
            ],
            "maxPayoutPerDealer": 500,
            "excludedProducts": ["parts"],
        })
        rules = rules_from_legacy(blob)
        assert isinstance(rules, TieredRules)
        assert rules.tiers[1].min_volume == Decimal("20000")
        assert rules.tiers[1].rate == Decimal("0.03")
        assert rules.max_payout_per_dealer == Decimal("500")
        assert rules.excluded_products == ["parts"]
        assert rules.fallback_rate is None

    def test_flat_blob(self):
        rules = rules_from_legacy({"flatRate": 0.025, "qualifyingProducts": ["equipment"]})
        assert isinstance(rules, FlatRateRules)
        assert rules.rate == Decimal("0.025")
        assert rules.qualifying_products == ["equipment"]

    def test_zero_cap_means_uncapped(self):
        assert rules_from_legacy({"flatRate": 0.01, "maxPayoutPerDealer": 0}).max_payout_per_dealer is None

    def test_flat_rate_beside_tiers_becomes_fallback(self):
        rules = rules_from_legacy({"flatRate": 0.005, "tiers": [{"name": "T", "minVolume": 1000, "rate": 0.02}]})
        assert rules.fallback_rate == Decimal("0.005")

    def test_bad_json(self):
        with pytest.raises(RulesValidationError):
            rules_from_legacy("{not json")

    def test_non_object(self):
        with pytest.raises(RulesValidationError):
            rules_from_legacy("[1, 2]")


class TestProgram:
    def _program(self, **overrides):
        fields = {
            "code": "P1", "name": "Program", "start_date": datetime(2026, 1, 1),
            "rules": {"kind": "flat", "rate": "0.01"},
        }
        fields.update(overrides)
        return Program.model_validate(fields)

    def test_naive_dates_become_utc(self):
        assert self._program().start_date.tzinfo == timezone.utc

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            self._program(end_date=datetime(2025, 12, 1))

    def test_json_round_trip_keeps_rules_kind(self):
        program = self._program(rules={"kind": "tiered", "tiers": [{"name": "A", "min_volume": 0, "rate": "0.02"}]})
        restored = Program.model_validate_json(program.model_dump_json())
        assert isinstance(restored.rules, TieredRules)

    def test_eligibility(self):
        program = self._program(eligible_tiers=["gold"], eligible_regions=["west"])
        assert program.is_eligible("gold", "west")
        assert not program.is_eligible("silver", "west")
        assert not program.is_eligible("gold", "east")
        assert self._program().is_eligible("anything", "anywhere")


class TestPeriodType:
    @pytest.mark.parametrize(("start", "end", "expected"), [
        (datetime(2026, 1, 1), datetime(2026, 1, 31, 23, 59, 59), PeriodType.MONTHLY),
        (datetime(2026, 1, 1), datetime(2026, 3, 31, 23, 59, 59), PeriodType.QUARTERLY),
        (datetime(2026, 1, 1), datetime(2026, 12, 31, 23, 59, 59), PeriodType.ANNUAL),
    ])
    def test_derived_from_span(self, start, end, expected):
        assert period_type_for(start, end) == expected

    def test_accrual_exposes_period_type(self):
        accrual = Accrual(program_id="p", dealer_id="d",
                          period_start=datetime(2026, 1, 1), period_end=datetime(2026, 3, 31))
        assert accrual.period_type == PeriodType.QUARTERLY
        assert accrual.model_dump()["period_type"] == "quarterly"
        assert not accrual.is_locked
