"""Rutas de administración: informes de ventas y asistencia"""
import logging
from datetime import date
from decimal import Decimal
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status

from shared.auth.dependencies import ensure_venue_access, get_current_admin_or_coordinator
from shared.ledger.connection import get_ledger
from shared.ledger.models import format_price
from shared.ledger.store import LedgerError, LedgerStore
from shared.utils.rate_limiter import RATE_LIMITS, limiter
from services.admin.models.admin import (
    AggregateRequest,
    AggregateResponse,
    AttendanceReportResponse,
    AttendeeRow,
    TicketTypeBreakdownResponse,
    TicketTypeStatsResponse,
)
from services.admin.services.stats_service import StatsService

logger = logging.getLogger(__name__)

router = APIRouter()


def _money(value: Decimal) -> str:
    return format_price(value) if value else "0"


@router.post("/venues/{venue_id}/reports/sales", response_model=AggregateResponse)
@limiter.limit(RATE_LIMITS["admin"])
async def sales_report(
    request: Request,
    venue_id: str,
    body: AggregateRequest,
    store: LedgerStore = Depends(get_ledger),
    current_user: Dict = Depends(get_current_admin_or_coordinator)
):
    """
    Entradas vendidas e ingresos de los eventos seleccionados

    Requiere rol admin o coordinator del venue
    """
    ensure_venue_access(current_user, venue_id)
    try:
        report = await StatsService(store).aggregate(venue_id, body.event_names)
    except LedgerError as e:
        logger.error(f"Error calculando ventas de {venue_id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Ledger no disponible")

    total_revenue = sum(report.revenue.values(), Decimal("0"))
    return AggregateResponse(
        venue_id=venue_id,
        tickets_sold=report.tickets_sold,
        revenue={name: _money(value) for name, value in report.revenue.items()},
        total_tickets=sum(report.tickets_sold.values()),
        total_revenue=_money(total_revenue),
    )


@router.get("/venues/{venue_id}/reports/events/{event_name}/ticket-types", response_model=TicketTypeBreakdownResponse)
async def ticket_type_report(
    venue_id: str,
    event_name: str,
    store: LedgerStore = Depends(get_ledger),
    current_user: Dict = Depends(get_current_admin_or_coordinator)
):
    """Desglose por tipo de entrada"""
    ensure_venue_access(current_user, venue_id)
    try:
        stats = await StatsService(store).ticket_type_breakdown(venue_id, event_name)
    except LedgerError as e:
        logger.error(f"Error calculando desglose de {event_name}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Ledger no disponible")

    return TicketTypeBreakdownResponse(
        venue_id=venue_id,
        event_name=event_name,
        ticket_types=[
            TicketTypeStatsResponse(ticket_type=s.ticket_type, tickets=s.tickets, revenue=_money(s.revenue))
            for s in stats
        ],
    )


@router.get("/venues/{venue_id}/reports/attendance/{event_date}", response_model=AttendanceReportResponse)
async def attendance_report(
    venue_id: str,
    event_date: date,
    store: LedgerStore = Depends(get_ledger),
    current_user: Dict = Depends(get_current_admin_or_coordinator)
):
    """Asistentes de un día con porcentaje validado e ingresos netos"""
    ensure_venue_access(current_user, venue_id)
    try:
        report = await StatsService(store).attendance_report(venue_id, event_date)
    except LedgerError as e:
        logger.error(f"Error generando asistencia de {venue_id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Ledger no disponible")

    return AttendanceReportResponse(
        venue_id=venue_id,
        event_date=event_date,
        attendees=[
            AttendeeRow(
                sequence_number=row.sequence_number,
                holder_name=row.holder_name,
                holder_email=row.holder_email,
                event_name=row.event_name,
                ticket_type=row.ticket_type,
                price=_money(row.price),
                validated=row.validated,
            )
            for row in report.rows
        ],
        total_tickets=report.total_tickets,
        validated_tickets=report.validated_tickets,
        validated_percentage=report.validated_percentage,
        revenue_total=_money(report.revenue_total),
        revenue_validated=_money(report.revenue_validated),
        revenue_not_validated=_money(report.revenue_not_validated),
        net_revenue=_money(report.net_revenue),
    )
