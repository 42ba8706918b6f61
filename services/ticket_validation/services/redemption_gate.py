"""Canje de entradas en puerta

Máquina de estados por entrada:

    (no emitida) -> emitida (validated=false) -> canjeada (validated=true)

Solo la transición emitida -> canjeada escribe en el ledger, y lo hace con
un compare-and-set sobre el campo validated: si dos lectores escanean el
mismo código a la vez, solo uno obtiene ALLOW.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Callable, Optional, Tuple

from shared.core.config import settings
from shared.ledger import paths
from shared.ledger.models import is_validated
from shared.ledger.store import LedgerDataError, LedgerError, LedgerStore
from shared.utils.retry import retry_with_backoff
from shared.utils.scan_codec import normalize

logger = logging.getLogger(__name__)


class RedemptionStatus(str, Enum):
    ALLOW = "allow"
    ALREADY_USED = "already_used"
    INVALID = "invalid"
    LOOKUP_ERROR = "lookup_error"


MESSAGES = {
    RedemptionStatus.ALLOW: "¡Acceso permitido!",
    RedemptionStatus.ALREADY_USED: "Entrada ya validada",
    RedemptionStatus.INVALID: "Entrada no válida",
    RedemptionStatus.LOOKUP_ERROR: "No se pudo verificar la entrada, inténtalo de nuevo",
}


@dataclass(frozen=True)
class TicketInfo:
    """Datos que se muestran al operador"""
    code: str
    sequence_number: Optional[int]
    holder_name: str
    holder_email: Optional[str]
    ticket_type: Optional[str]
    price: Optional[str]
    event_name: str
    event_date: date


@dataclass(frozen=True)
class RedemptionResult:
    status: RedemptionStatus
    message: str
    ticket: Optional[TicketInfo] = None

    @property
    def allowed(self) -> bool:
        return self.status == RedemptionStatus.ALLOW

    def to_dict(self) -> dict:
        data = {"status": self.status.value, "message": self.message, "ticket": None}
        if self.ticket is not None:
            data["ticket"] = {
                "code": self.ticket.code,
                "sequence_number": self.ticket.sequence_number,
                "holder_name": self.ticket.holder_name,
                "holder_email": self.ticket.holder_email,
                "ticket_type": self.ticket.ticket_type,
                "price": self.ticket.price,
                "event_name": self.ticket.event_name,
                "event_date": self.ticket.event_date.isoformat(),
            }
        return data


def _result(status: RedemptionStatus, ticket: Optional[TicketInfo] = None) -> RedemptionResult:
    return RedemptionResult(status=status, message=MESSAGES[status], ticket=ticket)


def operator_today() -> date:
    """Día natural del operador (o la fecha fijada para ensayos)"""
    if settings.GATE_FIXED_DATE is not None:
        return settings.GATE_FIXED_DATE
    if settings.VENUE_TIMEZONE:
        from zoneinfo import ZoneInfo
        return datetime.now(ZoneInfo(settings.VENUE_TIMEZONE)).date()
    return date.today()


class RedemptionGate:
    """Valida un código contra la partición del día y lo marca como usado una sola vez"""

    def __init__(
        self,
        store: LedgerStore,
        today: Optional[Callable[[], date]] = None,
        lookup_timeout: Optional[float] = None,
        retries: Optional[int] = None,
        retry_delay: float = 0.2
    ):
        self.store = store
        self.today = today or operator_today
        self.lookup_timeout = lookup_timeout if lookup_timeout is not None else settings.GATE_LOOKUP_TIMEOUT_SECONDS
        self.retries = retries if retries is not None else settings.GATE_LOOKUP_RETRIES
        self.retry_delay = retry_delay

    async def redeem(
        self,
        venue_id: str,
        decoded_code: str,
        current_date: Optional[date] = None
    ) -> RedemptionResult:
        """
        Canjear un código ya decodificado

        Returns:
            RedemptionResult con status allow | already_used | invalid | lookup_error.
            Nunca lanza por resultados esperados ni por fallos del ledger.
        """
        code = normalize(decoded_code)
        if not code:
            return _result(RedemptionStatus.INVALID)
        day = current_date or self.today()

        async def attempt():
            return await asyncio.wait_for(self._redeem_once(venue_id, day, code), timeout=self.lookup_timeout)

        try:
            result = await retry_with_backoff(
                attempt,
                max_retries=self.retries,
                initial_delay=self.retry_delay,
                exceptions=(LedgerError, asyncio.TimeoutError),
                description=f"Canje de {code}",
            )
        except (LedgerError, asyncio.TimeoutError) as e:
            logger.error(f"LOOKUP_ERROR canjeando {code} en {venue_id}: {type(e).__name__}: {e}")
            return _result(RedemptionStatus.LOOKUP_ERROR)

        logger.info(f"Canje {code} venue={venue_id} fecha={paths.format_partition_key(day)}: {result.status.value}")
        return result

    async def _find(self, venue_id: str, day: date, code: str) -> Optional[Tuple[str, dict]]:
        """Búsqueda lineal en todos los eventos del día (volúmenes de cientos)"""
        partition = await self.store.get(paths.day_path(venue_id, day))
        if partition is None:
            return None
        if not isinstance(partition, dict):
            raise LedgerDataError(f"Partición {paths.format_partition_key(day)} mal formada")

        for event_name in sorted(partition):
            event = partition[event_name]
            if not isinstance(event, dict):
                continue
            tickets = event.get("tickets")
            if not isinstance(tickets, dict):
                continue
            for key in paths.sort_ticket_keys(tickets):
                record = tickets[key]
                if isinstance(record, dict) and normalize(record.get("code")) == code:
                    path = paths.join(paths.tickets_path(venue_id, day, event_name), key)
                    return path, dict(record, eventName=record.get("eventName") or event_name)
        return None

    async def _redeem_once(self, venue_id: str, day: date, code: str) -> RedemptionResult:
        found = await self._find(venue_id, day, code)
        if found is None:
            return _result(RedemptionStatus.INVALID)

        path, record = found
        info = self._ticket_info(code, day, record)
        raw_validated = record.get("validated")

        if is_validated(raw_validated):
            return _result(RedemptionStatus.ALREADY_USED, info)

        # Única escritura del canje: validated false -> true, condicional
        swapped = await self.store.compare_and_set(paths.join(path, "validated"), raw_validated, True)
        if not swapped:
            current = await self.store.get(paths.join(path, "validated"))
            if is_validated(current):
                logger.warning(f"Carrera en {code}: otro lector lo canjeó primero")
                return _result(RedemptionStatus.ALREADY_USED, info)
            raise LedgerDataError(f"compare-and-set rechazado en {path} con validated={current!r}")

        return _result(RedemptionStatus.ALLOW, info)

    @staticmethod
    def _ticket_info(code: str, day: date, record: dict) -> TicketInfo:
        price = record.get("price")
        sequence = record.get("sequenceNumber")
        return TicketInfo(
            code=code,
            sequence_number=sequence if isinstance(sequence, int) and not isinstance(sequence, bool) else None,
            holder_name=str(record.get("holderName") or "Desconocido"),
            holder_email=record.get("holderEmail"),
            ticket_type=record.get("ticketType"),
            price=str(price) if price is not None else None,
            event_name=str(record.get("eventName")),
            event_date=day,
        )
