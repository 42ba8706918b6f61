"""
Contrato del Ledger Store sobre los backends memoria, Redis (fakeredis) y SQL (aiosqlite).
"""
import asyncio

import pytest
from redis.asyncio.client import Pipeline
from redis.exceptions import WatchError

from shared.ledger.store import LedgerDataError, LedgerUnavailableError, flatten, parent_chain, unflatten

BASE = "venues/v1/events/20-07-2025/Launch"


class TestTreeHelpers:

    def test_flatten_drops_none(self):
        leaves = dict(flatten("a", {"b": 1, "c": {"d": "x", "e": None}}))
        assert leaves == {"a/b": 1, "a/c/d": "x"}

    def test_unflatten_round_trip(self):
        value = {"b": 1, "c": {"d": "x"}}
        assert unflatten("a", dict(flatten("a", value))) == value

    def test_unflatten_empty_is_none(self):
        assert unflatten("a", {}) is None

    def test_parent_chain(self):
        assert parent_chain("a/b/c") == [("", "a"), ("a", "b"), ("a/b", "c")]


class TestLedgerContract:

    async def test_missing_path_is_none(self, store):
        assert await store.get(f"{BASE}/nothing") is None

    async def test_set_and_get_subtree(self, store):
        await store.set(f"{BASE}/info", {"genre": "techno", "openTime": "23:00"})
        await store.set(f"{BASE}/ticketTypes/General", {"price": "15", "capacity": 100})

        assert await store.get(f"{BASE}/info/genre") == "techno"
        event = await store.get(BASE)
        assert event == {
            "info": {"genre": "techno", "openTime": "23:00"},
            "ticketTypes": {"General": {"price": "15", "capacity": 100}},
        }

    async def test_set_replaces_subtree(self, store):
        await store.set(f"{BASE}/info", {"genre": "techno", "description": "old"})
        await store.set(f"{BASE}/info", {"genre": "house"})
        assert await store.get(f"{BASE}/info") == {"genre": "house"}

    async def test_create_does_not_overwrite(self, store):
        assert await store.create(f"{BASE}/tickets/TICKET-1", {"code": "A", "validated": False}) is True
        assert await store.create(f"{BASE}/tickets/TICKET-1", {"code": "B", "validated": False}) is False
        assert await store.get(f"{BASE}/tickets/TICKET-1/code") == "A"

    async def test_create_without_leaves_is_rejected(self, store):
        with pytest.raises(LedgerDataError):
            await store.create(f"{BASE}/info", {"genre": None, "ticketTypes": {}})
        assert await store.get(f"{BASE}/info") is None

    async def test_compare_and_set(self, store):
        path = f"{BASE}/tickets/TICKET-1/validated"
        await store.set(f"{BASE}/tickets/TICKET-1", {"code": "A", "validated": False})

        assert await store.compare_and_set(path, False, True) is True
        assert await store.get(path) is True
        assert await store.compare_and_set(path, False, True) is False
        assert await store.get(f"{BASE}/tickets/TICKET-1/code") == "A"

    async def test_compare_and_set_absent_leaf(self, store):
        path = f"{BASE}/tickets/TICKET-2/validated"
        assert await store.compare_and_set(path, None, True) is True
        assert await store.compare_and_set(path, None, True) is False

    async def test_increment_counter(self, store):
        path = f"{BASE}/lastTicketNumber"
        assert await store.increment(path) == 1
        assert await store.increment(path) == 2
        assert await store.get(path) == 2

    async def test_increment_rejects_non_integer(self, store):
        path = f"{BASE}/lastTicketNumber"
        await store.set(path, "abc")
        with pytest.raises(LedgerDataError):
            await store.increment(path)

    async def test_children_sorted(self, store):
        await store.set("venues/v1/events/21-07-2025/B/info/genre", "x")
        await store.set("venues/v1/events/20-07-2025/A/info/genre", "y")
        await store.set("venues/v1/events/20-07-2025/C/info/genre", "z")

        assert await store.children("venues/v1/events") == ["20-07-2025", "21-07-2025"]
        assert await store.children("venues/v1/events/20-07-2025") == ["A", "C"]
        assert await store.children("venues/v1/events/22-07-2025") == []

    async def test_counter_is_sibling_of_tickets(self, store):
        await store.increment(f"{BASE}/lastTicketNumber")
        await store.create(f"{BASE}/tickets/TICKET-1", {"code": "A"})
        assert await store.children(BASE) == ["lastTicketNumber", "tickets"]

    async def test_ping(self, store):
        assert await store.ping() is True


class TestConcurrentWrites:

    async def test_increment_is_atomic(self, concurrent_store):
        path = f"{BASE}/lastTicketNumber"
        results = await asyncio.gather(*[concurrent_store.increment(path) for _ in range(25)])
        assert sorted(results) == list(range(1, 26))

    async def test_only_one_compare_and_set_wins(self, concurrent_store):
        await concurrent_store.set(f"{BASE}/tickets/TICKET-1", {"code": "A", "validated": False})
        path = f"{BASE}/tickets/TICKET-1/validated"
        results = await asyncio.gather(*[concurrent_store.compare_and_set(path, False, True) for _ in range(10)])
        assert results.count(True) == 1

    async def test_only_one_create_wins(self, concurrent_store):
        path = f"{BASE}/tickets/TICKET-1"
        results = await asyncio.gather(*[concurrent_store.create(path, {"code": str(i)}) for i in range(10)])
        assert results.count(True) == 1


class TestMemoryStore:

    async def test_get_returns_copy(self, memory_store):
        await memory_store.set("a/b", {"c": 1})
        value = await memory_store.get("a/b")
        value["c"] = 99
        assert await memory_store.get("a/b/c") == 1

    async def test_compare_and_set_on_interior_node_fails(self, memory_store):
        await memory_store.set("a/b", {"c": 1})
        with pytest.raises(LedgerDataError):
            await memory_store.compare_and_set("a/b", None, 1)

    async def test_increment_rejects_bool(self, memory_store):
        await memory_store.set("a/counter", True)
        with pytest.raises(LedgerDataError):
            await memory_store.increment("a/counter")


class TestRedisStore:

    async def test_create_under_constant_contention_is_unavailable(self, redis_store, monkeypatch):
        async def always_conflict(self, *args, **kwargs):
            raise WatchError("clave modificada")

        monkeypatch.setattr(Pipeline, "execute", always_conflict)
        with pytest.raises(LedgerUnavailableError):
            await redis_store.create(f"{BASE}/tickets/TICKET-1", {"code": "A"})
