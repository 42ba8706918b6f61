"""Emisión de entradas numeradas"""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from shared.errors import AllocationConflictError, AllocationError, EventNotFoundError, TicketTypeNotFoundError
from shared.ledger import paths
from shared.ledger.models import Holder, Ticket, TicketType, format_price
from shared.ledger.store import LedgerError, LedgerStore
from shared.utils.scan_codec import generate_ticket_code

logger = logging.getLogger(__name__)


class TicketAllocator:
    """
    Asigna el siguiente número de entrada de un evento y persiste la entrada

    El contador lastTicketNumber se avanza con el incremento atómico del
    store, así que dos emisiones simultáneas nunca reciben el mismo número.
    La entrada se escribe después con create(): si ya existe un registro en
    TICKET-{n} se lanza AllocationConflictError en vez de pisarlo.
    """

    def __init__(self, store: LedgerStore, secret: Optional[str] = None):
        self.store = store
        self.secret = secret

    async def _resolve_price(
        self,
        venue_id: str,
        event_date: date,
        event_name: str,
        ticket_type: str
    ) -> Union[str, int, float, None]:
        record = await self.store.get(paths.ticket_type_path(venue_id, event_date, event_name, ticket_type))
        if record is None:
            raise TicketTypeNotFoundError(ticket_type, event_name)
        return TicketType.from_record(ticket_type, record).price

    async def allocate(
        self,
        venue_id: str,
        event_date: date,
        event_name: str,
        ticket_type: str,
        holder: Holder,
        price: Union[Decimal, str, int, float, None] = None,
        payment: Optional[Dict[str, Any]] = None
    ) -> Ticket:
        """
        Emitir una entrada

        Args:
            price: precio explícito; si no se indica se congela el del tipo de entrada
            payment: metadatos de pago opacos que se guardan tal cual

        Raises:
            EventNotFoundError: el evento no existe en esa fecha
            TicketTypeNotFoundError: el tipo no existe y no se dio precio
            AllocationConflictError: ya había una entrada con ese número
            AllocationError: el store falló; reintentar desde cero
        """
        venue_id = paths.segment(venue_id)
        event_name = paths.segment(event_name)
        ticket_type = paths.segment(ticket_type)
        if not holder.name or not holder.name.strip():
            raise ValueError("El titular de la entrada necesita nombre")

        try:
            if not await self.store.children(paths.event_path(venue_id, event_date, event_name)):
                raise EventNotFoundError(event_name, event_date)
            if price is None:
                price = await self._resolve_price(venue_id, event_date, event_name, ticket_type)
            elif isinstance(price, Decimal):
                price = format_price(price)

            sequence_number = await self.store.increment(
                paths.counter_path(venue_id, event_date, event_name)
            )
        except LedgerError as e:
            logger.error(f"No se pudo reservar número para {event_name}: {e}")
            raise AllocationError(f"No se pudo reservar número de entrada: {e}") from e

        ticket = Ticket(
            sequence_number=sequence_number,
            code=generate_ticket_code(venue_id, event_date, event_name, sequence_number, secret=self.secret),
            holder_name=holder.name.strip(),
            holder_email=holder.email,
            ticket_type_name=ticket_type,
            price=price,
            event_date=event_date,
            event_name=event_name,
            validated=False,
            issued_at=datetime.now(timezone.utc).isoformat(),
            payment=payment,
        )

        ticket_path = paths.ticket_path(venue_id, event_date, event_name, sequence_number)
        try:
            created = await self.store.create(ticket_path, ticket.to_record())
        except LedgerError as e:
            # El número queda quemado: el contador ya avanzó y la entrada no existe
            logger.warning(
                f"Número #{sequence_number} de {event_name} quemado: fallo escribiendo la entrada ({e})"
            )
            raise AllocationError(f"No se pudo guardar la entrada #{sequence_number}: {e}") from e

        if not created:
            logger.error(
                f"ALLOCATION_CONFLICT: {ticket_path} ya existía; el contador no refleja las entradas emitidas"
            )
            raise AllocationConflictError(sequence_number, event_name)

        logger.info(
            f"Entrada emitida: {ticket.code} evento={event_name} "
            f"fecha={paths.format_partition_key(event_date)} tipo={ticket_type}"
        )
        return ticket
