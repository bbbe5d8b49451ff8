"""Pluggable persistence backends behind Protocol interfaces."""

from __future__ import annotations

from typing import NamedTuple

import boto3

from rebateflow.core.config import AppSettings
from rebateflow.core.protocols import IAccrualStore, IEnrollmentStore, IOrderSource, IProgramStore
from rebateflow.persistence.dynamodb_backend import (
    DynamoDBAccrualStore,
    DynamoDBEnrollmentStore,
    DynamoDBOrderSource,
    DynamoDBProgramStore,
)
from rebateflow.persistence.memory_backend import (
    MemoryAccrualStore,
    MemoryEnrollmentStore,
    MemoryOrderSource,
    MemoryProgramStore,
)
from rebateflow.persistence.redis_backend import ProgramCache, RedisCacheBackend


class Stores(NamedTuple):
    programs: IProgramStore
    enrollments: IEnrollmentStore
    orders: IOrderSource
    accruals: IAccrualStore


def create_persistence(settings: AppSettings | None = None) -> Stores:
    """Create wired-up DynamoDB stores (with Redis program cache) from settings."""
    if settings is None:
        settings = AppSettings()

    cache = None
    if settings.redis.enabled:
        cache = ProgramCache(
            RedisCacheBackend(
                host=settings.redis.host,
                port=settings.redis.port,
                db=settings.redis.db,
            ),
            ttl=settings.redis.program_ttl,
            key_prefix=settings.redis.key_prefix,
        )

    kwargs: dict = {"region_name": settings.dynamodb.region}
    if settings.dynamodb.endpoint_url:
        kwargs["endpoint_url"] = settings.dynamodb.endpoint_url
    resource = boto3.resource("dynamodb", **kwargs)
    common = {"table_suffix": settings.dynamodb.table_suffix, "resource": resource}

    return Stores(
        programs=DynamoDBProgramStore(**common, cache=cache),
        enrollments=DynamoDBEnrollmentStore(**common),
        orders=DynamoDBOrderSource(**common),
        accruals=DynamoDBAccrualStore(**common),
    )


def create_memory_persistence() -> Stores:
    """Dict-backed stores for tests and local experiments."""
    return Stores(
        programs=MemoryProgramStore(),
        enrollments=MemoryEnrollmentStore(),
        orders=MemoryOrderSource(),
        accruals=MemoryAccrualStore(),
    )
