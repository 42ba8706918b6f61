"""Modelos Pydantic para informes de administración"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import date


# ==================== VENTAS ====================

class AggregateRequest(BaseModel):
    event_names: List[str] = Field(..., min_length=1)


class AggregateResponse(BaseModel):
    """Entradas vendidas e ingresos por nombre de evento"""
    venue_id: str
    tickets_sold: Dict[str, int]
    revenue: Dict[str, str]
    total_tickets: int
    total_revenue: str


class TicketTypeStatsResponse(BaseModel):
    ticket_type: str
    tickets: int
    revenue: str


class TicketTypeBreakdownResponse(BaseModel):
    venue_id: str
    event_name: str
    ticket_types: List[TicketTypeStatsResponse]


# ==================== ASISTENCIA ====================

class AttendeeRow(BaseModel):
    sequence_number: Optional[int] = None
    holder_name: str
    holder_email: Optional[str] = None
    event_name: str
    ticket_type: Optional[str] = None
    price: str
    validated: bool

    class Config:
        from_attributes = True


class AttendanceReportResponse(BaseModel):
    """Listado de asistentes de un día con totales"""
    venue_id: str
    event_date: date
    attendees: List[AttendeeRow]
    total_tickets: int
    validated_tickets: int
    validated_percentage: int
    revenue_total: str
    revenue_validated: str
    revenue_not_validated: str
    net_revenue: str
