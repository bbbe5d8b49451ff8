"""Application configuration using pydantic-settings with grouped env prefixes."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class DynamoDBConfig(BaseSettings):
    """DynamoDB configuration."""

    model_config = {"env_prefix": "REBATEFLOW_DYNAMO_"}

    table_suffix: str = ""  # "-dev", "-uat", or "" for prod
    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override


class RedisConfig(BaseSettings):
    """Redis cache for program definitions."""

    model_config = {"env_prefix": "REBATEFLOW_REDIS_"}

    enabled: bool = True
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    key_prefix: str = "rebateflow"
    program_ttl: int = 300


class AccrualConfig(BaseSettings):
    """Accrual engine knobs."""

    model_config = {"env_prefix": "REBATEFLOW_ACCRUAL_"}

    qualifying_statuses: list[str] = ["delivered", "shipped"]
    projection_statuses: list[str] = ["delivered", "shipped", "confirmed", "processing"]
    money_places: int = 2
    default_period_type: Literal["monthly", "quarterly", "annual"] = "monthly"


class AppSettings(BaseSettings):
    """Root application settings aggregating all sub-configs."""

    model_config = {"env_prefix": "REBATEFLOW_"}

    environment: Literal["dev", "uat", "prod"] = "dev"
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"

    dynamodb: DynamoDBConfig = DynamoDBConfig()
    redis: RedisConfig = RedisConfig()
    accrual: AccrualConfig = AccrualConfig()
