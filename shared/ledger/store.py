"""Interfaz del Ledger Store (árbol jerárquico clave/valor)

El ledger es la fuente de verdad de eventos, tipos de entrada y entradas
emitidas. Los backends deben ser intercambiables: memoria, Redis o SQL.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple


class LedgerError(Exception):
    """Error base del ledger (store inaccesible o respuesta no interpretable)"""


class LedgerUnavailableError(LedgerError):
    """El store no respondió o el driver falló"""


class LedgerDataError(LedgerError):
    """El contenido leído no tiene la forma esperada"""


class InvalidPathSegmentError(ValueError):
    """Segmento de ruta vacío o con caracteres reservados"""


class LedgerStore(ABC):
    """Store jerárquico con escrituras atómicas de un solo campo"""

    @abstractmethod
    async def get(self, path: str) -> Any:
        """Valor en `path`; un nodo interior se devuelve como dict anidado. None si no existe."""
        ...

    @abstractmethod
    async def set(self, path: str, value: Any) -> None:
        """Reemplazar el nodo en `path` (incluido todo su subárbol)."""
        ...

    @abstractmethod
    async def create(self, path: str, value: Any) -> bool:
        """Escribir solo si no existe nada en `path`. True si se escribió."""
        ...

    @abstractmethod
    async def compare_and_set(self, path: str, expected: Any, value: Any) -> bool:
        """Escribir la hoja `path` solo si su valor actual es `expected` (None = ausente)."""
        ...

    @abstractmethod
    async def increment(self, path: str, delta: int = 1) -> int:
        """Incremento atómico de un contador entero; devuelve el nuevo valor."""
        ...

    @abstractmethod
    async def children(self, path: str) -> List[str]:
        """Claves hijas directas de `path`, ordenadas."""
        ...

    async def ping(self) -> bool:
        return True


def flatten(path: str, value: Any) -> List[Tuple[str, Any]]:
    """Convertir un valor (posiblemente dict anidado) en pares (ruta_hoja, valor)"""
    if isinstance(value, dict):
        leaves = []
        for key, child in value.items():
            key = str(key)
            if not key or "/" in key:
                raise InvalidPathSegmentError(f"Clave inválida en el valor: {key!r}")
            leaves.extend(flatten(f"{path}/{key}", child))
        return leaves
    if value is None:
        return []
    return [(path, value)]


def unflatten(base: str, leaves: Dict[str, Any]) -> Optional[Any]:
    """Reconstruir el subárbol de `base` a partir de {ruta_hoja: valor}"""
    if base in leaves:
        return leaves[base]
    prefix = base + "/"
    tree: Dict[str, Any] = {}
    for leaf_path, value in leaves.items():
        if not leaf_path.startswith(prefix):
            continue
        parts = leaf_path[len(prefix):].split("/")
        node = tree
        for part in parts[:-1]:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise LedgerDataError(f"Nodo hoja con hijos en {leaf_path}")
            node = child
        node[parts[-1]] = value
    return tree or None


def parent_chain(path: str) -> List[Tuple[str, str]]:
    """Pares (padre, hijo) desde la raíz hasta `path`; la raíz es ''"""
    parts = [p for p in path.split("/") if p]
    pairs = []
    for i, part in enumerate(parts):
        pairs.append(("/".join(parts[:i]), part))
    return pairs
