"""Antirrebote de lecturas del escáner

Una cámara apuntando a un QR entrega el mismo texto muchas veces por
segundo. El debouncer decide qué lecturas llegan al gate:

* mientras se muestra un resultado no se admite ninguna lectura;
* una lectura distinta de la anterior se admite (salvo que ese mismo
  código ya esté en vuelo);
* la misma lectura solo se vuelve a admitir pasado el intervalo de silencio;
* el estado SHOWING_RESULT dura la ventana de visualización y vuelve a
  IDLE al vencer.

El reloj es inyectable para poder testear sin esperas reales.
"""
import time
from enum import Enum
from typing import Callable, Optional, Set

from shared.core.config import settings


class DebouncerState(str, Enum):
    IDLE = "idle"
    SHOWING_RESULT = "showing_result"


class ScanDebouncer:
    """Filtro de lecturas repetidas por sesión de escaneo"""

    def __init__(
        self,
        quiet_interval: Optional[float] = None,
        display_duration: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.quiet_interval = quiet_interval if quiet_interval is not None else settings.SCAN_QUIET_INTERVAL_SECONDS
        self.display_duration = (
            display_duration if display_duration is not None else settings.SCAN_RESULT_DISPLAY_SECONDS
        )
        self._clock = clock
        self._last_payload: Optional[str] = None
        self._last_accepted_at: Optional[float] = None
        self._display_until: Optional[float] = None
        self._in_flight: Set[str] = set()

    @property
    def state(self) -> DebouncerState:
        if self._display_until is not None and self._clock() < self._display_until:
            return DebouncerState.SHOWING_RESULT
        return DebouncerState.IDLE

    @property
    def in_flight(self) -> Set[str]:
        return set(self._in_flight)

    def admit(self, payload: str) -> bool:
        """
        Decidir si una lectura pasa al gate

        Returns:
            True si hay que procesarla; en ese caso el llamador debe invocar
            complete() o release() cuando termine.
        """
        if self.state == DebouncerState.SHOWING_RESULT:
            return False
        if payload in self._in_flight:
            return False

        now = self._clock()
        if (
            payload == self._last_payload
            and self._last_accepted_at is not None
            and now - self._last_accepted_at <= self.quiet_interval
        ):
            return False

        self._last_payload = payload
        self._last_accepted_at = now
        self._in_flight.add(payload)
        return True

    def complete(self, payload: str) -> None:
        """El resultado de payload se está mostrando: abre la ventana de visualización"""
        self._in_flight.discard(payload)
        self._display_until = self._clock() + self.display_duration

    def release(self, payload: str) -> None:
        """Libera una lectura cancelada sin mostrar resultado"""
        self._in_flight.discard(payload)
