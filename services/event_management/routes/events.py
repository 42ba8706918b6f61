"""Rutas de gestión de eventos"""
import logging
from datetime import date
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from shared.auth.dependencies import ensure_venue_access, get_current_admin_or_coordinator
from shared.errors import EventAlreadyExistsError, EventNotFoundError
from shared.ledger.connection import get_ledger
from shared.ledger.store import LedgerError, LedgerStore
from services.event_management.models.event import EventCreate, EventNamesResponse, EventResponse
from services.event_management.services.event_service import EventService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{venue_id}/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    venue_id: str,
    request: EventCreate,
    store: LedgerStore = Depends(get_ledger),
    current_user: Dict = Depends(get_current_admin_or_coordinator)
):
    """
    Crear evento con sus tipos de entrada

    Requiere rol admin o coordinator del venue
    """
    ensure_venue_access(current_user, venue_id)
    service = EventService(store)
    try:
        event = await service.create_event(
            venue_id=venue_id,
            event_date=request.event_date,
            name=request.name,
            description=request.description,
            genre=request.genre,
            open_time=request.open_time,
            close_time=request.close_time,
            image_ref=request.image_ref,
            ticket_types={n: t.model_dump() for n, t in request.ticket_types.items()},
        )
    except EventAlreadyExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except LedgerError as e:
        logger.error(f"Error creando evento {request.name}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Ledger no disponible")

    return EventResponse.from_event(event)


@router.get("/{venue_id}/events", response_model=List[EventResponse])
async def list_events(
    venue_id: str,
    event_date: date = Query(..., description="Fecha del evento"),
    store: LedgerStore = Depends(get_ledger),
    current_user: Dict = Depends(get_current_admin_or_coordinator)
):
    """Listar eventos de una fecha"""
    ensure_venue_access(current_user, venue_id)
    try:
        events = await EventService(store).list_events(venue_id, event_date)
    except LedgerError as e:
        logger.error(f"Error listando eventos de {venue_id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Ledger no disponible")
    return [EventResponse.from_event(e) for e in events]


@router.get("/{venue_id}/event-names", response_model=EventNamesResponse)
async def list_event_names(
    venue_id: str,
    store: LedgerStore = Depends(get_ledger),
    current_user: Dict = Depends(get_current_admin_or_coordinator)
):
    """Nombres de eventos del venue (todas las fechas)"""
    ensure_venue_access(current_user, venue_id)
    try:
        names = await EventService(store).list_event_names(venue_id)
    except LedgerError as e:
        logger.error(f"Error listando nombres de eventos de {venue_id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Ledger no disponible")
    return EventNamesResponse(venue_id=venue_id, event_names=names)


@router.get("/{venue_id}/events/{event_date}/{event_name}", response_model=EventResponse)
async def get_event(
    venue_id: str,
    event_date: date,
    event_name: str,
    store: LedgerStore = Depends(get_ledger),
    current_user: Dict = Depends(get_current_admin_or_coordinator)
):
    """Detalle de un evento"""
    ensure_venue_access(current_user, venue_id)
    try:
        event = await EventService(store).get_event(venue_id, event_date, event_name)
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except LedgerError as e:
        logger.error(f"Error leyendo evento {event_name}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Ledger no disponible")
    return EventResponse.from_event(event)
