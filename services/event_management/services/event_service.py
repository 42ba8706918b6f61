"""Servicio de gestión de eventos del venue"""
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from shared.errors import EventAlreadyExistsError, EventNotFoundError
from shared.ledger import paths
from shared.ledger.models import Event, TicketType, format_price
from shared.ledger.store import LedgerDataError, LedgerStore

logger = logging.getLogger(__name__)


class EventService:
    """Alta y consulta de eventos en el ledger"""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def create_event(
        self,
        venue_id: str,
        event_date: date,
        name: str,
        description: Optional[str] = None,
        genre: Optional[str] = None,
        open_time: Optional[str] = None,
        close_time: Optional[str] = None,
        image_ref: Optional[str] = None,
        ticket_types: Optional[Dict[str, Dict]] = None
    ) -> Event:
        """
        Crear un evento con sus tipos de entrada

        Args:
            ticket_types: {nombre: {"price": Decimal|str, "capacity": int}}

        Raises:
            EventAlreadyExistsError: si ya hay un evento con ese nombre en esa fecha
        """
        event = Event(
            venue_id=paths.segment(venue_id),
            event_date=event_date,
            name=paths.segment(name),
            description=description,
            genre=genre,
            open_time=open_time,
            close_time=close_time,
            image_ref=image_ref,
        )
        for type_name, definition in (ticket_types or {}).items():
            price = definition.get("price")
            if isinstance(price, Decimal):
                price = format_price(price)
            event.ticket_types[paths.segment(type_name)] = TicketType(
                name=type_name.strip(),
                price=price,
                capacity=definition.get("capacity"),
            )

        record = {
            "info": event.info_record(),
            "ticketTypes": {n: t.to_record() for n, t in event.ticket_types.items()},
        }
        created = await self.store.create(paths.event_path(venue_id, event_date, name), record)
        if not created:
            raise EventAlreadyExistsError(name, event_date)

        logger.info(
            f"Evento creado: venue={venue_id} fecha={paths.format_partition_key(event_date)} "
            f"evento={event.name} tipos={list(event.ticket_types)}"
        )
        return event

    async def get_event(self, venue_id: str, event_date: date, name: str) -> Event:
        record = await self.store.get(paths.event_path(venue_id, event_date, name))
        if record is None:
            raise EventNotFoundError(name, event_date)
        if not isinstance(record, dict):
            raise LedgerDataError(f"Evento mal formado: {name}")
        return Event.from_record(venue_id, event_date, name.strip(), record)

    async def list_events(self, venue_id: str, event_date: date) -> List[Event]:
        """Eventos archivados bajo una fecha"""
        day = await self.store.get(paths.day_path(venue_id, event_date))
        if day is None:
            return []
        if not isinstance(day, dict):
            raise LedgerDataError("Partición de fecha mal formada")
        return [
            Event.from_record(venue_id, event_date, name, record)
            for name, record in sorted(day.items())
            if isinstance(record, dict)
        ]

    async def list_event_names(self, venue_id: str) -> List[str]:
        """Nombres únicos de eventos en todas las fechas (selector de informes)"""
        names = set()
        events_root = paths.venue_events_path(venue_id)
        for day_key in await self.store.children(events_root):
            for name in await self.store.children(paths.join(events_root, day_key)):
                names.add(name)
        return sorted(names)
