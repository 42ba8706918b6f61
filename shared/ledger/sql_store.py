"""Ledger sobre PostgreSQL (SQLAlchemy async)

Una fila por hoja en ledger_nodes(path, value). Los nodos interiores se
reconstruyen por prefijo de ruta.
"""
import json
import logging
from typing import Any, Dict, List

from sqlalchemy import Column, String, Text, delete, insert, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base

from shared.ledger.store import (
    LedgerDataError,
    LedgerStore,
    LedgerUnavailableError,
    flatten,
    unflatten,
)

logger = logging.getLogger(__name__)

Base = declarative_base()


class LedgerNode(Base):
    __tablename__ = "ledger_nodes"

    path = Column(String(1024), primary_key=True)
    value = Column(Text, nullable=False)  # JSON


def to_async_url(database_url: str) -> str:
    """Convertir a async URL (asyncpg)"""
    if "?" in database_url:
        database_url = database_url.split("?")[0]
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql+psycopg://"):
        return database_url.replace("postgresql+psycopg://", "postgresql+asyncpg://", 1)
    return database_url


def create_ledger_engine(database_url: str, pool_size: int = 5, max_overflow: int = 10, echo: bool = False) -> AsyncEngine:
    url = to_async_url(database_url)
    logger.info(f"Using async driver: {url.split(':')[0]}")
    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=pool_size,
        max_overflow=max_overflow,
    )


class SqlLedgerStore(LedgerStore):
    """Ledger jerárquico persistido en una tabla SQL"""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def create_schema(self) -> None:
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            raise LedgerUnavailableError(f"No se pudo crear el esquema del ledger: {e}") from e

    async def dispose(self) -> None:
        await self._engine.dispose()

    @staticmethod
    def _subtree_clause(path: str):
        return or_(LedgerNode.path == path, LedgerNode.path.startswith(path + "/", autoescape=True))

    @staticmethod
    def _decode(path: str, raw: str) -> Any:
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            raise LedgerDataError(f"Valor no JSON en {path}")

    async def _load(self, session: AsyncSession, path: str) -> Dict[str, Any]:
        result = await session.execute(
            select(LedgerNode.path, LedgerNode.value).where(self._subtree_clause(path))
        )
        return {row.path: self._decode(row.path, row.value) for row in result}

    async def _replace(self, session: AsyncSession, path: str, value: Any) -> None:
        await session.execute(delete(LedgerNode).where(self._subtree_clause(path)))
        # Una hoja que pasa a tener hijos deja de ser hoja
        parts = path.split("/")
        ancestors = ["/".join(parts[:i]) for i in range(1, len(parts))]
        if ancestors:
            await session.execute(delete(LedgerNode).where(LedgerNode.path.in_(ancestors)))
        rows = [{"path": p, "value": json.dumps(v)} for p, v in flatten(path, value)]
        if rows:
            await session.execute(insert(LedgerNode), rows)

    async def get(self, path: str) -> Any:
        try:
            async with self._session_maker() as session:
                leaves = await self._load(session, path)
            return unflatten(path, leaves)
        except (SQLAlchemyError, OSError) as e:
            raise LedgerUnavailableError(f"Base de datos no disponible: {e}") from e

    async def set(self, path: str, value: Any) -> None:
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    await self._replace(session, path, value)
        except (SQLAlchemyError, OSError) as e:
            raise LedgerUnavailableError(f"Base de datos no disponible: {e}") from e

    async def create(self, path: str, value: Any) -> bool:
        if not flatten(path, value):
            raise LedgerDataError(f"Nada que crear en {path}")
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    existing = await session.execute(
                        select(LedgerNode.path).where(self._subtree_clause(path)).limit(1)
                    )
                    if existing.first() is not None:
                        return False
                    rows = [{"path": p, "value": json.dumps(v)} for p, v in flatten(path, value)]
                    if rows:
                        await session.execute(insert(LedgerNode), rows)
            return True
        except IntegrityError:
            # Otro escritor creó el mismo nodo entre la comprobación y el insert
            return False
        except (SQLAlchemyError, OSError) as e:
            raise LedgerUnavailableError(f"Base de datos no disponible: {e}") from e

    async def compare_and_set(self, path: str, expected: Any, value: Any) -> bool:
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    if expected is None:
                        existing = await session.execute(
                            select(LedgerNode.path).where(LedgerNode.path == path)
                        )
                        if existing.first() is not None:
                            return False
                        await session.execute(
                            insert(LedgerNode).values(path=path, value=json.dumps(value))
                        )
                        return True
                    result = await session.execute(
                        update(LedgerNode)
                        .where(LedgerNode.path == path, LedgerNode.value == json.dumps(expected))
                        .values(value=json.dumps(value))
                    )
                    return result.rowcount == 1
        except IntegrityError:
            return False
        except (SQLAlchemyError, OSError) as e:
            raise LedgerUnavailableError(f"Base de datos no disponible: {e}") from e

    async def increment(self, path: str, delta: int = 1) -> int:
        # Dos intentos: el primer insert del contador puede chocar con otro escritor
        for attempt in range(2):
            try:
                return await self._increment_once(path, delta)
            except IntegrityError as e:
                if attempt == 1:
                    raise LedgerUnavailableError(f"Conflicto creando contador {path}: {e}") from e
                logger.warning(f"Contador {path} creado concurrentemente, reintentando")
            except (SQLAlchemyError, OSError) as e:
                raise LedgerUnavailableError(f"Base de datos no disponible: {e}") from e

    async def _increment_once(self, path: str, delta: int) -> int:
        async with self._session_maker() as session:
            async with session.begin():
                result = await session.execute(
                    select(LedgerNode).where(LedgerNode.path == path).with_for_update()
                )
                node = result.scalar_one_or_none()
                if node is None:
                    new_value = delta
                    session.add(LedgerNode(path=path, value=json.dumps(new_value)))
                else:
                    current = self._decode(path, node.value)
                    if isinstance(current, bool) or not isinstance(current, int):
                        raise LedgerDataError(f"Contador no entero en {path}: {current!r}")
                    new_value = current + delta
                    node.value = json.dumps(new_value)
        return new_value

    async def children(self, path: str) -> List[str]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(LedgerNode.path).where(LedgerNode.path.startswith(path + "/", autoescape=True))
                )
                prefix_len = len(path) + 1
                names = {row.path[prefix_len:].split("/", 1)[0] for row in result}
            return sorted(names)
        except (SQLAlchemyError, OSError) as e:
            raise LedgerUnavailableError(f"Base de datos no disponible: {e}") from e

    async def ping(self) -> bool:
        try:
            async with self._session_maker() as session:
                await session.execute(select(1))
            return True
        except (SQLAlchemyError, OSError) as e:
            raise LedgerUnavailableError(f"Base de datos no disponible: {e}") from e
