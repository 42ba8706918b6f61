"""
Fixtures compartidas de la suite de tests.
"""
import os

# Antes de importar settings: sin rate limiting ni .env local en los tests
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LEDGER_BACKEND", "memory")

from datetime import date

import pytest
from fakeredis import aioredis
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from shared.ledger.memory_store import InMemoryLedgerStore
from shared.ledger.redis_store import RedisLedgerStore
from shared.ledger.sql_store import SqlLedgerStore
from services.event_management.services.event_service import EventService

VENUE = "venue-1"
LAUNCH_DATE = date(2025, 7, 20)


class FakeClock:
    """Reloj monotónico controlado a mano"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return InMemoryLedgerStore()


@pytest.fixture
async def redis_store():
    client = aioredis.FakeRedis(decode_responses=True)
    yield RedisLedgerStore(client, prefix="test")
    await client.flushall()
    await client.aclose()


@pytest.fixture
async def sql_store():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    store = SqlLedgerStore(engine)
    await store.create_schema()
    yield store
    await store.dispose()


@pytest.fixture(params=["memory", "redis", "sql"])
def store(request):
    """El mismo contrato sobre los tres backends"""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture(params=["memory", "redis"])
def concurrent_store(request):
    """Backends sobre los que se prueban escrituras simultáneas"""
    return request.getfixturevalue(f"{request.param}_store")


async def seed_event(store, name="Launch", event_date=LAUNCH_DATE, venue_id=VENUE, ticket_types=None):
    """Crear un evento con tipos de entrada por defecto"""
    if ticket_types is None:
        ticket_types = {"General": {"price": "15", "capacity": 100}, "VIP": {"price": "40", "capacity": 20}}
    return await EventService(store).create_event(
        venue_id=venue_id,
        event_date=event_date,
        name=name,
        genre="techno",
        open_time="23:00",
        close_time="06:00",
        ticket_types=ticket_types,
    )
