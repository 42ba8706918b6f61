"""Servicio para cálculo de estadísticas de ventas y asistencia"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from shared.core.config import settings
from shared.ledger import paths
from shared.ledger.models import is_validated, parse_price
from shared.ledger.store import LedgerStore

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass
class AggregateReport:
    tickets_sold: Dict[str, int] = field(default_factory=dict)
    revenue: Dict[str, Decimal] = field(default_factory=dict)


@dataclass
class TicketTypeStats:
    ticket_type: str
    tickets: int = 0
    revenue: Decimal = Decimal("0")


@dataclass
class AttendanceRow:
    sequence_number: Optional[int]
    holder_name: str
    holder_email: Optional[str]
    event_name: str
    ticket_type: Optional[str]
    price: Decimal
    validated: bool


@dataclass
class AttendanceReport:
    venue_id: str
    event_date: date
    rows: List[AttendanceRow]
    total_tickets: int
    validated_tickets: int
    validated_percentage: int
    revenue_total: Decimal
    revenue_validated: Decimal
    revenue_not_validated: Decimal
    net_revenue: Decimal


def _sequence(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _counter(value: Any) -> int:
    seq = _sequence(value)
    return seq if seq is not None and seq > 0 else 0


class StatsService:
    """Informes de solo lectura sobre el ledger; nunca escribe validated"""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def _event_dates(self, venue_id: str, event_name: str) -> List[date]:
        """Fechas en las que existe un evento con ese nombre"""
        events_root = paths.venue_events_path(venue_id)
        dates = []
        for day_key in await self.store.children(events_root):
            try:
                day = paths.parse_partition_key(day_key)
            except ValueError:
                logger.warning(f"Partición con clave no válida ignorada: {events_root}/{day_key}")
                continue
            if event_name in await self.store.children(paths.join(events_root, day_key)):
                dates.append(day)
        return sorted(dates)

    async def _tickets(self, venue_id: str, day: date, event_name: str) -> Dict[str, Any]:
        tickets = await self.store.get(paths.tickets_path(venue_id, day, event_name))
        return tickets if isinstance(tickets, dict) else {}

    async def aggregate(self, venue_id: str, event_names: Iterable[str]) -> AggregateReport:
        """
        Entradas vendidas e ingresos por evento

        Las entradas vendidas salen del contador lastTicketNumber (la
        numeración es densa 1..N); los ingresos recorren TICKET-1..TICKET-N
        sumando el precio. Un precio ilegible cuenta como 0 pero la entrada
        sigue contando como vendida. Eventos con el mismo nombre en varias
        fechas se suman.
        """
        report = AggregateReport()
        for event_name in event_names:
            sold = 0
            revenue = Decimal("0")
            for day in await self._event_dates(venue_id, event_name):
                high_water = _counter(await self.store.get(paths.counter_path(venue_id, day, event_name)))
                sold += high_water
                tickets = await self._tickets(venue_id, day, event_name)
                for n in range(1, high_water + 1):
                    record = tickets.get(paths.ticket_key(n))
                    if isinstance(record, dict):
                        revenue += parse_price(record.get("price"))
            report.tickets_sold[event_name] = sold
            report.revenue[event_name] = revenue
        return report

    async def ticket_type_breakdown(self, venue_id: str, event_name: str) -> List[TicketTypeStats]:
        """Entradas e ingresos por tipo de entrada (todas las fechas del evento)"""
        stats: Dict[str, TicketTypeStats] = {}
        for day in await self._event_dates(venue_id, event_name):
            tickets = await self._tickets(venue_id, day, event_name)
            for key in paths.sort_ticket_keys(tickets):
                record = tickets[key]
                if not isinstance(record, dict):
                    continue
                type_name = record.get("ticketType")
                if not type_name:
                    continue
                entry = stats.setdefault(type_name, TicketTypeStats(ticket_type=type_name))
                entry.tickets += 1
                entry.revenue += parse_price(record.get("price"))
        return [stats[name] for name in sorted(stats)]

    async def attendance_report(self, venue_id: str, event_date: date) -> AttendanceReport:
        """Listado de asistentes de un día con totales de validación e ingresos"""
        rows: List[AttendanceRow] = []
        partition = await self.store.get(paths.day_path(venue_id, event_date))
        if isinstance(partition, dict):
            for event_name in sorted(partition):
                event = partition[event_name]
                tickets = event.get("tickets") if isinstance(event, dict) else None
                if not isinstance(tickets, dict):
                    continue
                for key in paths.sort_ticket_keys(tickets):
                    record = tickets[key]
                    if not isinstance(record, dict):
                        continue
                    rows.append(AttendanceRow(
                        sequence_number=_sequence(record.get("sequenceNumber")),
                        holder_name=str(record.get("holderName") or ""),
                        holder_email=record.get("holderEmail"),
                        event_name=event_name,
                        ticket_type=record.get("ticketType"),
                        price=parse_price(record.get("price")),
                        validated=is_validated(record.get("validated")),
                    ))

        revenue_total, revenue_validated, validated = self._totals(rows)
        total = len(rows)
        net = (revenue_total / (Decimal("1") + Decimal(str(settings.VAT_RATE)))).quantize(CENTS, ROUND_HALF_UP)

        return AttendanceReport(
            venue_id=venue_id,
            event_date=event_date,
            rows=rows,
            total_tickets=total,
            validated_tickets=validated,
            validated_percentage=(validated * 100 // total) if total else 0,
            revenue_total=revenue_total,
            revenue_validated=revenue_validated,
            revenue_not_validated=revenue_total - revenue_validated,
            net_revenue=net,
        )

    @staticmethod
    def _totals(rows: List[AttendanceRow]) -> Tuple[Decimal, Decimal, int]:
        revenue_total = Decimal("0")
        revenue_validated = Decimal("0")
        validated = 0
        for row in rows:
            revenue_total += row.price
            if row.validated:
                validated += 1
                revenue_validated += row.price
        return revenue_total, revenue_validated, validated
