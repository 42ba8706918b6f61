"""Ledger sobre Redis

Modelo de claves:
  {prefix}:node:{ruta}      valor JSON de una hoja
  {prefix}:children:{ruta}  set con las claves hijas de un nodo interior

Las escrituras condicionales usan WATCH/MULTI/EXEC y los contadores INCRBY,
así que varios lectores en puerta pueden compartir el mismo Redis.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError, ResponseError, WatchError

from shared.ledger.store import (
    LedgerDataError,
    LedgerStore,
    LedgerUnavailableError,
    flatten,
    parent_chain,
    unflatten,
)

logger = logging.getLogger(__name__)

MAX_WATCH_RETRIES = 5


def create_redis_pool(redis_url: str, password: Optional[str] = None, max_connections: int = 20) -> ConnectionPool:
    """Pool de conexiones para alta concurrencia de lectores"""
    return ConnectionPool.from_url(
        redis_url,
        password=password,
        max_connections=max_connections,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_keepalive=True,
        retry_on_timeout=True,
        health_check_interval=30,
    )


class RedisLedgerStore(LedgerStore):
    """Ledger jerárquico persistido en Redis"""

    def __init__(self, client: redis.Redis, prefix: str = "ledger"):
        self._redis = client
        self._prefix = prefix

    def _node_key(self, path: str) -> str:
        return f"{self._prefix}:node:{path}"

    def _children_key(self, path: str) -> str:
        return f"{self._prefix}:children:{path}"

    def _decode(self, path: str, raw: str) -> Any:
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            raise LedgerDataError(f"Valor no JSON en {path}")

    async def _read(self, conn, path: str) -> Any:
        raw = await conn.get(self._node_key(path))
        if raw is not None:
            return self._decode(path, raw)
        leaves: Dict[str, Any] = {}
        await self._collect(conn, path, leaves)
        return unflatten(path, leaves)

    async def _collect(self, conn, path: str, leaves: Dict[str, Any]) -> None:
        for child in await conn.smembers(self._children_key(path)):
            child_path = f"{path}/{child}"
            raw = await conn.get(self._node_key(child_path))
            if raw is not None:
                leaves[child_path] = self._decode(child_path, raw)
            else:
                await self._collect(conn, child_path, leaves)

    async def _subtree_keys(self, conn, path: str) -> List[str]:
        """Claves Redis del subárbol de `path` (hojas e índices)"""
        keys = [self._node_key(path), self._children_key(path)]
        for child in await conn.smembers(self._children_key(path)):
            keys.extend(await self._subtree_keys(conn, f"{path}/{child}"))
        return keys

    def _queue_leaf(self, pipe, path: str, value: Any) -> None:
        """Encolar escritura de hoja + registro en los índices de sus padres"""
        for parent, child in parent_chain(path):
            pipe.sadd(self._children_key(parent), child)
            if parent:
                pipe.delete(self._node_key(parent))
        pipe.set(self._node_key(path), json.dumps(value))

    def _queue_replace(self, pipe, path: str, value: Any, old_keys: List[str]) -> None:
        if old_keys:
            pipe.delete(*old_keys)
        leaves = flatten(path, value)
        for leaf_path, leaf_value in leaves:
            self._queue_leaf(pipe, leaf_path, leaf_value)
        if not leaves:
            parts = path.rsplit("/", 1)
            parent, child = (parts[0], parts[1]) if len(parts) == 2 else ("", parts[0])
            pipe.srem(self._children_key(parent), child)

    async def get(self, path: str) -> Any:
        try:
            return await self._read(self._redis, path)
        except RedisError as e:
            raise LedgerUnavailableError(f"Redis no disponible: {e}") from e

    async def set(self, path: str, value: Any) -> None:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for _ in range(MAX_WATCH_RETRIES):
                    try:
                        await pipe.watch(self._children_key(path))
                        old_keys = await self._subtree_keys(pipe, path)
                        pipe.multi()
                        self._queue_replace(pipe, path, value, old_keys)
                        await pipe.execute()
                        return
                    except WatchError:
                        logger.warning(f"Escritura concurrente en {path}, reintentando set")
                        continue
                raise LedgerUnavailableError(f"No se pudo escribir {path}: demasiada contención")
        except RedisError as e:
            raise LedgerUnavailableError(f"Redis no disponible: {e}") from e

    async def create(self, path: str, value: Any) -> bool:
        if not flatten(path, value):
            raise LedgerDataError(f"Nada que crear en {path}")
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for _ in range(MAX_WATCH_RETRIES):
                    try:
                        await pipe.watch(self._node_key(path), self._children_key(path))
                        exists = await pipe.exists(self._node_key(path), self._children_key(path))
                        if exists:
                            await pipe.unwatch()
                            return False
                        pipe.multi()
                        self._queue_replace(pipe, path, value, [])
                        await pipe.execute()
                        return True
                    except WatchError:
                        continue
                raise LedgerUnavailableError(f"No se pudo crear {path}: demasiada contención")
        except RedisError as e:
            raise LedgerUnavailableError(f"Redis no disponible: {e}") from e

    async def compare_and_set(self, path: str, expected: Any, value: Any) -> bool:
        key = self._node_key(path)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for _ in range(MAX_WATCH_RETRIES):
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        current = self._decode(path, raw) if raw is not None else None
                        if current != expected:
                            await pipe.unwatch()
                            return False
                        pipe.multi()
                        self._queue_leaf(pipe, path, value)
                        await pipe.execute()
                        return True
                    except WatchError:
                        # Otro escritor tocó la hoja: reevaluar con el valor nuevo
                        logger.warning(f"Conflicto WATCH en {path}, reevaluando")
                        continue
                return False
        except RedisError as e:
            raise LedgerUnavailableError(f"Redis no disponible: {e}") from e

    async def increment(self, path: str, delta: int = 1) -> int:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for parent, child in parent_chain(path):
                    pipe.sadd(self._children_key(parent), child)
                pipe.incrby(self._node_key(path), delta)
                results = await pipe.execute()
            return int(results[-1])
        except ResponseError as e:
            raise LedgerDataError(f"Contador no entero en {path}: {e}") from e
        except RedisError as e:
            raise LedgerUnavailableError(f"Redis no disponible: {e}") from e

    async def children(self, path: str) -> List[str]:
        try:
            return sorted(await self._redis.smembers(self._children_key(path)))
        except RedisError as e:
            raise LedgerUnavailableError(f"Redis no disponible: {e}") from e

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            raise LedgerUnavailableError(f"Redis no disponible: {e}") from e
