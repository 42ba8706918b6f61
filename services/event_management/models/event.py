"""Modelos Pydantic para eventos"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict
from datetime import date
from decimal import Decimal

from shared.ledger.models import Event


class TicketTypeCreate(BaseModel):
    price: Decimal = Field(..., ge=0)
    capacity: Optional[int] = Field(None, ge=0)


class EventCreate(BaseModel):
    event_date: date
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    genre: Optional[str] = None
    open_time: Optional[str] = None  # "23:00"
    close_time: Optional[str] = None  # "06:00"
    image_ref: Optional[str] = None
    ticket_types: Dict[str, TicketTypeCreate] = {}

    @field_validator("name")
    @classmethod
    def name_without_slash(cls, value: str) -> str:
        if "/" in value or not value.strip():
            raise ValueError("El nombre del evento no puede estar vacío ni contener '/'")
        return value.strip()


class TicketTypeResponse(BaseModel):
    """Modelo de respuesta para tipos de entrada"""
    name: str
    price: Decimal
    capacity: Optional[int] = None


class EventResponse(BaseModel):
    venue_id: str
    event_date: date
    name: str
    description: Optional[str] = None
    genre: Optional[str] = None
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    image_ref: Optional[str] = None
    ticket_types: List[TicketTypeResponse] = []

    @classmethod
    def from_event(cls, event: Event) -> "EventResponse":
        return cls(
            venue_id=event.venue_id,
            event_date=event.event_date,
            name=event.name,
            description=event.description,
            genre=event.genre,
            open_time=event.open_time,
            close_time=event.close_time,
            image_ref=event.image_ref,
            ticket_types=[
                TicketTypeResponse(name=t.name, price=t.unit_price, capacity=t.capacity)
                for t in event.ticket_types.values()
            ],
        )


class EventNamesResponse(BaseModel):
    venue_id: str
    event_names: List[str]
