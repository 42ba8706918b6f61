"""
Tests de emisión de entradas numeradas.
"""
import asyncio
from decimal import Decimal

import pytest

from conftest import LAUNCH_DATE, VENUE, seed_event
from shared.errors import AllocationConflictError, AllocationError, EventNotFoundError, TicketTypeNotFoundError
from shared.ledger import paths
from shared.ledger.memory_store import InMemoryLedgerStore
from shared.ledger.models import Holder
from shared.ledger.store import LedgerUnavailableError
from shared.utils.scan_codec import generate_ticket_code, is_valid_code
from services.ticket_issuance.services.allocator_service import TicketAllocator


class FailingCreateStore(InMemoryLedgerStore):
    async def create(self, path, value):
        if "/tickets/" in path:
            raise LedgerUnavailableError("network down")
        return await super().create(path, value)


class FailingIncrementStore(InMemoryLedgerStore):
    async def increment(self, path, delta=1):
        raise LedgerUnavailableError("network down")


async def _allocate(store, ticket_type="General", name="Ana", **kwargs):
    return await TicketAllocator(store).allocate(
        venue_id=VENUE,
        event_date=LAUNCH_DATE,
        event_name="Launch",
        ticket_type=ticket_type,
        holder=Holder(name=name, email="ana@example.com"),
        **kwargs,
    )


class TestAllocate:

    async def test_sequence_numbers_start_at_one(self, store):
        await seed_event(store)
        first = await _allocate(store)
        second = await _allocate(store, ticket_type="VIP")
        assert (first.sequence_number, second.sequence_number) == (1, 2)
        assert await store.get(paths.counter_path(VENUE, LAUNCH_DATE, "Launch")) == 2

    async def test_numbering_is_per_event_not_per_type(self, memory_store):
        await seed_event(memory_store)
        numbers = [(await _allocate(memory_store, ticket_type=t)).sequence_number for t in ("General", "VIP", "General")]
        assert numbers == [1, 2, 3]

    async def test_record_is_persisted(self, store):
        await seed_event(store)
        ticket = await _allocate(store)

        record = await store.get(paths.ticket_path(VENUE, LAUNCH_DATE, "Launch", 1))
        assert record["code"] == ticket.code
        assert record["sequenceNumber"] == 1
        assert record["holderName"] == "Ana"
        assert record["ticketType"] == "General"
        assert record["price"] == "15"
        assert record["eventDate"] == "20-07-2025"
        assert record["eventName"] == "Launch"
        assert record["validated"] is False

    async def test_code_matches_generator(self, memory_store):
        await seed_event(memory_store)
        ticket = await _allocate(memory_store)
        assert is_valid_code(ticket.code)
        assert ticket.code == generate_ticket_code(VENUE, LAUNCH_DATE, "Launch", 1)

    async def test_explicit_price_overrides_type(self, memory_store):
        await seed_event(memory_store)
        ticket = await _allocate(memory_store, price=Decimal("12.50"))
        assert ticket.price == "12.50"

    async def test_payment_metadata_is_stored(self, memory_store):
        await seed_event(memory_store)
        await _allocate(memory_store, payment={"provider": "card", "reference": "op-123"})
        record = await memory_store.get(paths.ticket_path(VENUE, LAUNCH_DATE, "Launch", 1))
        assert record["payment"] == {"provider": "card", "reference": "op-123"}

    async def test_unknown_ticket_type(self, memory_store):
        await seed_event(memory_store)
        with pytest.raises(TicketTypeNotFoundError):
            await _allocate(memory_store, ticket_type="Backstage")
        assert await memory_store.get(paths.counter_path(VENUE, LAUNCH_DATE, "Launch")) is None

    async def test_missing_event_with_explicit_price(self, memory_store):
        with pytest.raises(EventNotFoundError):
            await _allocate(memory_store, price="20")
        assert await memory_store.get(paths.counter_path(VENUE, LAUNCH_DATE, "Launch")) is None
        assert await memory_store.get(paths.event_path(VENUE, LAUNCH_DATE, "Launch")) is None

    async def test_holder_name_required(self, memory_store):
        await seed_event(memory_store)
        with pytest.raises(ValueError):
            await _allocate(memory_store, name="  ")

    async def test_concurrent_allocations_are_unique(self, concurrent_store):
        await seed_event(concurrent_store)
        tickets = await asyncio.gather(*[_allocate(concurrent_store, name=f"Guest {i}") for i in range(15)])
        assert sorted(t.sequence_number for t in tickets) == list(range(1, 16))
        assert len({t.code for t in tickets}) == 15


class TestAllocationFailures:

    async def test_existing_record_is_a_conflict(self, memory_store):
        await seed_event(memory_store)
        await memory_store.set(paths.ticket_path(VENUE, LAUNCH_DATE, "Launch", 1), {"code": "LEGACY", "holderName": "X"})

        with pytest.raises(AllocationConflictError) as exc_info:
            await _allocate(memory_store)
        assert exc_info.value.sequence_number == 1
        assert await memory_store.get(paths.join(paths.ticket_path(VENUE, LAUNCH_DATE, "Launch", 1), "code")) == "LEGACY"

    async def test_write_failure_burns_number(self):
        store = FailingCreateStore()
        await seed_event(store)
        with pytest.raises(AllocationError):
            await _allocate(store)
        assert await store.get(paths.counter_path(VENUE, LAUNCH_DATE, "Launch")) == 1
        assert await store.get(paths.tickets_path(VENUE, LAUNCH_DATE, "Launch")) is None

    async def test_counter_failure(self):
        store = FailingIncrementStore()
        await seed_event(store)
        with pytest.raises(AllocationError):
            await _allocate(store)
