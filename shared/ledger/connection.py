"""Ciclo de vida del Ledger Store según LEDGER_BACKEND"""
import logging
from typing import Optional

import redis.asyncio as redis

from shared.core.config import settings
from shared.ledger.memory_store import InMemoryLedgerStore
from shared.ledger.redis_store import RedisLedgerStore, create_redis_pool
from shared.ledger.sql_store import SqlLedgerStore, create_ledger_engine
from shared.ledger.store import LedgerStore

logger = logging.getLogger(__name__)

ledger_store: Optional[LedgerStore] = None
_redis_client: Optional[redis.Redis] = None
_redis_pool = None


async def init_ledger() -> LedgerStore:
    """Inicializar el backend del ledger"""
    global ledger_store, _redis_client, _redis_pool

    if ledger_store is not None:
        logger.warning("Ledger already initialized, skipping...")
        return ledger_store

    backend = settings.LEDGER_BACKEND.lower()

    if backend == "redis":
        _redis_pool = create_redis_pool(
            settings.REDIS_URL,
            password=settings.REDIS_PASSWORD,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
        )
        _redis_client = redis.Redis(connection_pool=_redis_pool)
        ledger_store = RedisLedgerStore(_redis_client, prefix=settings.LEDGER_KEY_PREFIX)
        logger.info(f"Ledger en Redis (pool max_connections={settings.REDIS_MAX_CONNECTIONS})")
    elif backend == "sql":
        if not settings.DATABASE_URL:
            raise RuntimeError("LEDGER_BACKEND=sql requiere DATABASE_URL")
        engine = create_ledger_engine(
            settings.DATABASE_URL,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            echo=settings.APP_DEBUG,
        )
        store = SqlLedgerStore(engine)
        await store.create_schema()
        ledger_store = store
        logger.info("Ledger en base de datos SQL")
    elif backend == "memory":
        ledger_store = InMemoryLedgerStore()
        logger.warning("Ledger en memoria: los datos se pierden al reiniciar")
    else:
        raise RuntimeError(f"LEDGER_BACKEND desconocido: {settings.LEDGER_BACKEND}")

    return ledger_store


async def get_ledger() -> LedgerStore:
    """Dependency para obtener el ledger"""
    if ledger_store is None:
        logger.error("Ledger not initialized! Call init_ledger() first.")
        raise RuntimeError("Ledger not initialized. Please check application startup.")
    return ledger_store


async def close_ledger() -> None:
    """Cerrar conexiones del ledger"""
    global ledger_store, _redis_client, _redis_pool
    if isinstance(ledger_store, SqlLedgerStore):
        await ledger_store.dispose()
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
    if _redis_pool is not None:
        await _redis_pool.disconnect()
        _redis_pool = None
    ledger_store = None
    logger.info("Ledger cerrado")
