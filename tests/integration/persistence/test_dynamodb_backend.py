"""Integration tests for the engine over LocalStack DynamoDB (and Redis when present)."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from rebateflow.core.config import AppSettings, DynamoDBConfig, RedisConfig
from rebateflow.persistence import create_persistence
from rebateflow.persistence.dynamodb_backend import DynamoDBProgramStore
from rebateflow.services import RebateEngine
from rebateflow.services.periods import period_bounds
from tests.integration.conftest import (
    LOCALSTACK_URL,
    REDIS_HOST,
    TABLE_SUFFIX,
    skip_no_localstack,
    skip_no_redis,
)


def _settings(redis_enabled: bool) -> AppSettings:
    return AppSettings(
        dynamodb=DynamoDBConfig(table_suffix=TABLE_SUFFIX, endpoint_url=LOCALSTACK_URL),
        redis=RedisConfig(enabled=redis_enabled, host=REDIS_HOST, key_prefix="rebateflow-inttest"),
    )


@skip_no_localstack
class TestDynamoDBIntegration:
    @pytest.fixture
    def engine(self, seeded_tables):
        return RebateEngine(create_persistence(_settings(False)), _settings(False))

    def test_seeded_program_by_code(self, seeded_tables):
        store = DynamoDBProgramStore(table_suffix=TABLE_SUFFIX, endpoint_url=LOCALSTACK_URL)
        assert store.get_program("VOL-REBATE").id == seeded_tables.id

    def test_batch_run_over_seeded_dealers(self, engine, seeded_tables):
        start, end = period_bounds("monthly", datetime.now(timezone.utc))
        result = engine.batch.run(seeded_tables.id, period_start=start, period_end=end, recalculate=True)
        assert result.processed_count == 3
        accrual = engine.stores.accruals.get_accrual(seeded_tables.id, "DLR-002", start)
        assert accrual.tier_achieved == "Growth"
        assert accrual.final_amount == Decimal("500.00")


@skip_no_localstack
@skip_no_redis
def test_program_reads_through_redis(seeded_tables):
    engine = RebateEngine(create_persistence(_settings(True)), _settings(True))
    first = engine.programs.get_program("VOL-REBATE")
    second = engine.programs.get_program("VOL-REBATE")
    assert first == second
