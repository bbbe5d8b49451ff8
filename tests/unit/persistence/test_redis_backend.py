"""Unit tests for RedisCacheBackend and ProgramCache using fakeredis."""

from __future__ import annotations

from unittest.mock import patch

import fakeredis
import pytest

from rebateflow.core.exceptions import CacheError
from rebateflow.models.program import Program, parse_rules
from rebateflow.persistence.redis_backend import ProgramCache, RedisCacheBackend
from tests.fakes import JAN_START, TIERED_RULES


@pytest.fixture
def fake_server():
    return fakeredis.FakeServer()


@pytest.fixture
def backend(fake_server):
    with patch("redis.Redis", return_value=fakeredis.FakeRedis(server=fake_server, decode_responses=True)):
        return RedisCacheBackend(host="localhost", port=6379, db=0)


@pytest.fixture
def program():
    return Program(code="VOL", name="Volume", start_date=JAN_START, rules=parse_rules(TIERED_RULES))


class TestGet:
    def test_returns_none_on_miss(self, backend):
        assert backend.get("nonexistent") is None

    def test_returns_stored_string(self, backend):
        backend.setex("key1", 300, '{"code": "VOL"}')
        assert backend.get("key1") == '{"code": "VOL"}'


class TestSetex:
    def test_sets_ttl(self, backend, fake_server):
        backend.setex("mykey", 60, "v")
        client = fakeredis.FakeRedis(server=fake_server)
        assert 0 < client.ttl("mykey") <= 60

    def test_overwrites_existing_value(self, backend):
        backend.setex("k", 60, "old")
        backend.setex("k", 60, "new")
        assert backend.get("k") == "new"


class TestDelete:
    def test_removes_existing_key(self, backend):
        backend.setex("del_me", 60, "val")
        backend.delete("del_me")
        assert backend.get("del_me") is None

    def test_noop_on_missing_key(self, backend):
        backend.delete("never_existed")  # should not raise


class TestErrorWrapping:
    def test_get_wraps_redis_error(self):
        b = RedisCacheBackend.__new__(RedisCacheBackend)
        b._client = None  # will cause AttributeError -> CacheError
        with pytest.raises(CacheError):
            b.get("k")

    def test_setex_wraps_redis_error(self):
        b = RedisCacheBackend.__new__(RedisCacheBackend)
        b._client = None
        with pytest.raises(CacheError):
            b.setex("k", 1, "v")


class TestProgramCache:
    def test_round_trip_keeps_tagged_rules(self, backend, program):
        cache = ProgramCache(backend, ttl=30, key_prefix="rf")
        cache.put(program.id, program.model_dump_json())
        cached = cache.get(program.id)
        assert cached == program
        assert cached.rules.kind == "tiered"

    def test_invalidate_drops_id_and_code(self, backend, program):
        cache = ProgramCache(backend, key_prefix="rf")
        cache.put(program.id, program.model_dump_json())
        cache.put(program.code, program.model_dump_json())
        cache.invalidate(program)
        assert cache.get(program.id) is None
        assert backend.get("rf:program:VOL") is None
