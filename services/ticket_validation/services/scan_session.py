"""Sesión de escaneo de un dispositivo en puerta

Conecta la fuente de lecturas (cámara / decodificador QR) con el gate:

    lectura -> decode -> debouncer -> gate -> pantalla del operador

Cada lectura admitida se procesa en su propia tarea, de modo que dos
códigos distintos pueden estar en vuelo a la vez.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional, Set

from services.ticket_validation.services.redemption_gate import (
    MESSAGES,
    RedemptionGate,
    RedemptionResult,
    RedemptionStatus,
    TicketInfo,
)
from services.ticket_validation.services.scan_debouncer import ScanDebouncer
from shared.utils.scan_codec import decode, normalize

logger = logging.getLogger(__name__)


class OperatorDisplay(ABC):
    """Pantalla del operador de puerta"""

    @abstractmethod
    async def show_allow(self, result: RedemptionResult, details: Optional[TicketInfo] = None) -> None:
        """Banner de acceso permitido; details solo si el operador activó el panel"""

    @abstractmethod
    async def show_deny(self, result: RedemptionResult) -> None:
        """Banner de acceso denegado (ya validada o no válida)"""

    @abstractmethod
    async def show_error(self, result: RedemptionResult) -> None:
        """Estado 'no se pudo verificar', distinto de una denegación"""

    @abstractmethod
    async def clear(self) -> None:
        pass


class ScanSource(ABC):
    """Fuente push de textos decodificados"""

    @abstractmethod
    def payloads(self) -> AsyncIterator[str]:
        pass

    @abstractmethod
    async def stop(self) -> None:
        pass


class QueueScanSource(ScanSource):
    """Fuente alimentada a mano (WebSocket, tests)"""

    _STOP = object()

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._stopped = False

    async def push(self, text: str) -> None:
        if not self._stopped:
            await self._queue.put(text)

    async def payloads(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is self._STOP:
                return
            yield item

    async def stop(self) -> None:
        if not self._stopped:
            self._stopped = True
            await self._queue.put(self._STOP)


class ScanSession:
    """Una sesión por pantalla de escaneo abierta"""

    def __init__(
        self,
        venue_id: str,
        gate: RedemptionGate,
        display: OperatorDisplay,
        debouncer: Optional[ScanDebouncer] = None,
        show_details: bool = False
    ):
        self.venue_id = venue_id
        self.gate = gate
        self.display = display
        self.debouncer = debouncer or ScanDebouncer()
        self.show_details = show_details
        self._tasks: Set[asyncio.Task] = set()
        self._clear_task: Optional[asyncio.Task] = None
        self._source: Optional[ScanSource] = None
        self._closed = False

    async def on_payload(self, raw: str) -> Optional[asyncio.Task]:
        """
        Entrada de una lectura de la cámara

        Returns:
            La tarea de canje si la lectura fue admitida, None si se descartó
        """
        if self._closed:
            return None

        code = decode(raw)
        key = code if code is not None else normalize(raw)
        if not key or not self.debouncer.admit(key):
            return None

        task = asyncio.create_task(self._process(key, code))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def submit(self, raw: str) -> Optional[RedemptionResult]:
        """Procesar una lectura y esperar su resultado"""
        task = await self.on_payload(raw)
        if task is None:
            return None
        return await task

    async def _process(self, key: str, code: Optional[str]) -> RedemptionResult:
        try:
            if code is None:
                # Lectura que no es una entrada nuestra: no se consulta el ledger
                result = RedemptionResult(
                    status=RedemptionStatus.INVALID,
                    message=MESSAGES[RedemptionStatus.INVALID]
                )
            else:
                result = await self.gate.redeem(self.venue_id, code)
        except asyncio.CancelledError:
            self.debouncer.release(key)
            raise
        except Exception as e:
            logger.error(f"Error inesperado canjeando {key} en {self.venue_id}: {e}", exc_info=True)
            result = RedemptionResult(
                status=RedemptionStatus.LOOKUP_ERROR,
                message=MESSAGES[RedemptionStatus.LOOKUP_ERROR]
            )

        self.debouncer.complete(key)
        await self._show(result)
        self._schedule_clear()
        return result

    async def _show(self, result: RedemptionResult) -> None:
        if result.status == RedemptionStatus.ALLOW:
            await self.display.show_allow(result, result.ticket if self.show_details else None)
        elif result.status == RedemptionStatus.LOOKUP_ERROR:
            await self.display.show_error(result)
        else:
            await self.display.show_deny(result)

    def _schedule_clear(self) -> None:
        if self._clear_task is not None and not self._clear_task.done():
            self._clear_task.cancel()
        self._clear_task = asyncio.create_task(self._clear_after(self.debouncer.display_duration))

    async def _clear_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.display.clear()

    async def run(self, source: ScanSource) -> None:
        """Consumir la fuente hasta que se detenga o se cierre la sesión"""
        self._source = source
        async for raw in source.payloads():
            if self._closed:
                break
            await self.on_payload(raw)

    async def close(self) -> None:
        """Parar la fuente y cancelar canjes en vuelo sin mostrar nada más"""
        if self._closed:
            return
        self._closed = True
        if self._source is not None:
            await self._source.stop()

        pending = list(self._tasks)
        cancelled = len(pending)
        if self._clear_task is not None:
            pending.append(self._clear_task)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info(f"Sesión de escaneo cerrada ({self.venue_id}), {cancelled} canjes cancelados")
