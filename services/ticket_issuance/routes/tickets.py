"""Rutas de emisión de entradas (flujo de venta / alta manual)"""
import logging
from datetime import date
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status

from shared.auth.dependencies import ensure_venue_access, get_current_admin_or_coordinator
from shared.errors import AllocationConflictError, AllocationError, EventNotFoundError, TicketTypeNotFoundError
from shared.ledger.connection import get_ledger
from shared.ledger.models import Holder
from shared.ledger.store import LedgerStore
from shared.utils.rate_limiter import RATE_LIMITS, limiter
from shared.utils.scan_codec import encode, render_qr_base64
from services.ticket_issuance.models.ticket import TicketIssueRequest, TicketIssuedResponse
from services.ticket_issuance.services.allocator_service import TicketAllocator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/{venue_id}/events/{event_date}/{event_name}/tickets",
    response_model=TicketIssuedResponse,
    status_code=status.HTTP_201_CREATED
)
@limiter.limit(RATE_LIMITS["issuance"])
async def issue_ticket(
    request: Request,
    venue_id: str,
    event_date: date,
    event_name: str,
    body: TicketIssueRequest,
    store: LedgerStore = Depends(get_ledger),
    current_user: Dict = Depends(get_current_admin_or_coordinator)
):
    """
    Emitir una entrada numerada

    El código y el QR solo se devuelven cuando la entrada ya está guardada
    en el ledger; si la escritura falla el comprador no ve ningún código.
    """
    ensure_venue_access(current_user, venue_id)
    allocator = TicketAllocator(store)

    try:
        ticket = await allocator.allocate(
            venue_id=venue_id,
            event_date=event_date,
            event_name=event_name,
            ticket_type=body.ticket_type,
            holder=Holder(name=body.holder.name, email=body.holder.email),
            price=body.price,
            payment=body.payment,
        )
    except (EventNotFoundError, TicketTypeNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AllocationConflictError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "allocation_conflict", "message": str(e)}
        )
    except AllocationError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "allocation_failed", "message": "No se pudo emitir la entrada, inténtalo de nuevo"}
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    payload = encode(ticket)
    return TicketIssuedResponse(
        sequence_number=ticket.sequence_number,
        code=ticket.code,
        scan_payload=payload,
        qr_code_base64=render_qr_base64(payload) if body.include_qr_image else None,
        holder_name=ticket.holder_name,
        holder_email=ticket.holder_email,
        ticket_type=ticket.ticket_type_name,
        price=str(ticket.price) if ticket.price is not None else None,
        event_name=ticket.event_name,
        event_date=ticket.event_date,
        validated=ticket.validated,
    )
