"""Reintentos con backoff exponencial para llamadas al ledger"""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


async def retry_with_backoff(
    func: Callable[[], Awaitable[Any]],
    max_retries: int = 1,
    initial_delay: float = 0.2,
    max_delay: float = 2.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    description: Optional[str] = None
) -> Any:
    """
    Ejecutar función con retry y backoff exponencial

    Args:
        func: Función sin argumentos a ejecutar (async o sync)
        max_retries: Reintentos después del primer intento
        initial_delay: Delay inicial en segundos
        max_delay: Delay máximo en segundos
        exponential_base: Base para cálculo exponencial
        exceptions: Excepciones que disparan el retry; el resto se propaga
        description: Texto para los logs

    Returns:
        Resultado de la función. Si se agotan los reintentos, relanza la última excepción.
    """
    delay = initial_delay
    label = description or getattr(func, "__name__", "operación")

    for attempt in range(max_retries + 1):
        try:
            result = func()
            if inspect.isawaitable(result):
                result = await result
            return result
        except exceptions as e:
            if attempt == max_retries:
                raise
            logger.warning(
                f"{label} falló (intento {attempt + 1}/{max_retries + 1}): "
                f"{type(e).__name__}: {e}. Reintentando en {delay:.1f}s..."
            )
            await asyncio.sleep(delay)
            delay = min(delay * exponential_base, max_delay)
