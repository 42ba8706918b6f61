"""Ledger en memoria (desarrollo y tests)"""
import asyncio
import copy
from typing import Any, List

from shared.ledger.store import LedgerDataError, LedgerStore, flatten, unflatten


class InMemoryLedgerStore(LedgerStore):
    """Árbol de dicts anidados protegido por un asyncio.Lock"""

    def __init__(self, initial: dict = None):
        self._root: dict = copy.deepcopy(initial) if initial else {}
        self._lock = asyncio.Lock()

    def _parts(self, path: str) -> List[str]:
        return [p for p in path.split("/") if p]

    def _find(self, path: str) -> Any:
        node: Any = self._root
        for part in self._parts(path):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _parent(self, path: str, create: bool) -> dict:
        parts = self._parts(path)
        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                if not create:
                    return None
                child = {}
                node[part] = child
            node = child
        return node

    def _write(self, path: str, value: Any) -> None:
        parts = self._parts(path)
        if not parts:
            raise LedgerDataError("No se puede escribir en la raíz")
        # Normalizar igual que los backends persistentes: sin dicts vacíos ni None
        normalized = unflatten(path, dict(flatten(path, value)))
        parent = self._parent(path, create=True)
        if normalized is None:
            parent.pop(parts[-1], None)
        else:
            parent[parts[-1]] = normalized

    async def get(self, path: str) -> Any:
        return copy.deepcopy(self._find(path))

    async def set(self, path: str, value: Any) -> None:
        async with self._lock:
            self._write(path, copy.deepcopy(value))

    async def create(self, path: str, value: Any) -> bool:
        if not flatten(path, value):
            raise LedgerDataError(f"Nada que crear en {path}")
        async with self._lock:
            if self._find(path) is not None:
                return False
            self._write(path, copy.deepcopy(value))
            return True

    async def compare_and_set(self, path: str, expected: Any, value: Any) -> bool:
        async with self._lock:
            current = self._find(path)
            if isinstance(current, dict):
                raise LedgerDataError(f"compare_and_set sobre un nodo interior: {path}")
            if current != expected:
                return False
            self._write(path, copy.deepcopy(value))
            return True

    async def increment(self, path: str, delta: int = 1) -> int:
        async with self._lock:
            current = self._find(path)
            if current is None:
                current = 0
            if isinstance(current, bool) or not isinstance(current, int):
                raise LedgerDataError(f"Contador no entero en {path}: {current!r}")
            new_value = current + delta
            self._write(path, new_value)
            return new_value

    async def children(self, path: str) -> List[str]:
        node = self._find(path)
        if not isinstance(node, dict):
            return []
        return sorted(node.keys())
