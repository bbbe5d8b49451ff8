"""Program lifecycle: draft -> active -> paused / archived."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from rebateflow.core.exceptions import ProgramStateError
from rebateflow.models.accrual import AccrualStatus
from rebateflow.models.program import (
    FlatRateRules,
    Program,
    ProgramStatus,
    ProgramType,
    TieredRules,
    parse_rules,
    rules_from_legacy,
)
from rebateflow.services.base import BaseService

logger = logging.getLogger(__name__)

# Fields that may change after dealers have accrued; they do not alter past accruals.
NON_RETROACTIVE_FIELDS = frozenset({
    "name", "description", "end_date", "enrollment_deadline",
    "eligible_tiers", "eligible_regions", "budget_amount",
    "auto_enroll", "requires_approval",
})

_TRANSITIONS: dict[ProgramStatus, frozenset[ProgramStatus]] = {
    ProgramStatus.DRAFT: frozenset({ProgramStatus.ACTIVE, ProgramStatus.ARCHIVED}),
    ProgramStatus.ACTIVE: frozenset({ProgramStatus.PAUSED, ProgramStatus.ARCHIVED}),
    ProgramStatus.PAUSED: frozenset({ProgramStatus.ACTIVE, ProgramStatus.ARCHIVED}),
    ProgramStatus.ARCHIVED: frozenset(),
}


def coerce_rules(rules: Any) -> FlatRateRules | TieredRules:
    """Accept tagged rules, a tagged mapping, or the legacy camelCase blob."""
    if isinstance(rules, (FlatRateRules, TieredRules)):
        return rules
    if isinstance(rules, dict) and "kind" in rules:
        return parse_rules(rules)
    return rules_from_legacy(rules)


class ProgramService(BaseService):
    def create_program(
        self,
        *,
        code: str,
        name: str,
        start_date: datetime,
        rules: Any,
        type: ProgramType | str = ProgramType.REBATE,
        **fields: Any,
    ) -> Program:
        if self._programs.get_program(code) is not None:
            raise ProgramStateError(f"Program code already exists: {code}")
        program = Program(
            code=code, name=name, type=type, start_date=start_date,
            rules=coerce_rules(rules), status=ProgramStatus.DRAFT, **fields,
        )
        self._programs.save_program(program)
        logger.info("Created %s program %s (%s)", program.type, program.code, program.id)
        return program

    def get_program(self, id_or_code: str) -> Program:
        return self._load_program(id_or_code)

    def list_programs(
        self, type: str | None = None, status: str | None = None, dealer_tier: str | None = None,
    ) -> list[Program]:
        programs = self._programs.list_programs(type=type, status=status)
        if dealer_tier is not None:
            programs = [p for p in programs if p.is_eligible(dealer_tier=dealer_tier)]
        return programs

    def _transition(self, program_id: str, target: ProgramStatus) -> Program:
        program = self._load_program(program_id)
        if target not in _TRANSITIONS[program.status]:
            raise ProgramStateError(f"Cannot move program from {program.status} to {target}")
        program.status = target
        self._programs.save_program(program)
        logger.info("Program %s is now %s", program.id, target)
        return program

    def activate(self, program_id: str) -> Program:
        return self._transition(program_id, ProgramStatus.ACTIVE)

    def pause(self, program_id: str) -> Program:
        return self._transition(program_id, ProgramStatus.PAUSED)

    def archive(self, program_id: str) -> Program:
        return self._transition(program_id, ProgramStatus.ARCHIVED)

    def update_program(self, program_id: str, **changes: Any) -> Program:
        """Apply field changes; rules are frozen once any accrual is finalized or paid."""
        program = self._load_program(program_id)
        unknown = set(changes) - NON_RETROACTIVE_FIELDS - {"rules"}
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        if "rules" in changes:
            changes["rules"] = coerce_rules(changes["rules"]).model_dump()
            locked = any(
                a.status in (AccrualStatus.FINALIZED, AccrualStatus.PAID)
                for a in self._accruals.list_accruals(program_id=program.id)
            )
            if locked:
                raise ProgramStateError("Rules cannot change after accruals have been finalized")

        updated = Program.model_validate({**program.model_dump(), **changes})
        self._programs.save_program(updated)
        return updated
