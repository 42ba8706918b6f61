"""Registros del ledger (eventos, tipos de entrada y entradas emitidas)

Los nombres de campo en el store son camelCase; en Python se usan en
snake_case mediante alias.
"""
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field

from shared.ledger.paths import format_partition_key, parse_partition_key

PriceValue = Union[str, int, float]


def parse_price(raw: Any) -> Decimal:
    """
    Interpretar un precio guardado como texto o número

    Históricamente el precio llega como texto ("15", "15,50") o numérico.
    Cualquier valor ausente, no numérico o no positivo cuenta como 0.
    """
    if raw is None or isinstance(raw, bool):
        return Decimal("0")
    if isinstance(raw, (int, float)):
        text = str(raw)
    elif isinstance(raw, str):
        text = raw.strip().replace(",", ".")
    else:
        return Decimal("0")
    try:
        value = Decimal(text)
    except InvalidOperation:
        return Decimal("0")
    if not value.is_finite() or value <= 0:
        return Decimal("0")
    return value


def format_price(value: Decimal) -> str:
    """Decimal -> texto tal como se guarda en la entrada"""
    return format(value.normalize(), "f") if value == value.to_integral() else format(value, "f")


def is_validated(raw: Any) -> bool:
    """El flag validated puede venir como bool o como texto heredado"""
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return raw.strip().lower() == "true"
    return False


class Holder(BaseModel):
    name: str
    email: Optional[str] = None


class TicketType(BaseModel):
    name: str
    price: Optional[PriceValue] = None
    capacity: Optional[int] = None  # orientativo, la puerta no lo aplica

    @property
    def unit_price(self) -> Decimal:
        return parse_price(self.price)

    def to_record(self) -> Dict[str, Any]:
        return {"price": self.price, "capacity": self.capacity}

    @classmethod
    def from_record(cls, name: str, record: Any) -> "TicketType":
        record = record if isinstance(record, dict) else {}
        capacity = record.get("capacity")
        return cls(
            name=name,
            price=record.get("price"),
            capacity=capacity if isinstance(capacity, int) and not isinstance(capacity, bool) else None,
        )


class Event(BaseModel):
    venue_id: str
    event_date: date
    name: str
    description: Optional[str] = None
    genre: Optional[str] = None
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    image_ref: Optional[str] = None
    ticket_types: Dict[str, TicketType] = Field(default_factory=dict)

    def info_record(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "genre": self.genre,
            "openTime": self.open_time,
            "closeTime": self.close_time,
            "imageRef": self.image_ref,
        }

    @classmethod
    def from_record(cls, venue_id: str, event_date: date, name: str, record: Dict[str, Any]) -> "Event":
        info = record.get("info") if isinstance(record.get("info"), dict) else {}
        types = record.get("ticketTypes") if isinstance(record.get("ticketTypes"), dict) else {}
        return cls(
            venue_id=venue_id,
            event_date=event_date,
            name=name,
            description=info.get("description"),
            genre=info.get("genre"),
            open_time=info.get("openTime"),
            close_time=info.get("closeTime"),
            image_ref=info.get("imageRef"),
            ticket_types={type_name: TicketType.from_record(type_name, value) for type_name, value in types.items()},
        )


class Ticket(BaseModel):
    """Unidad de canje en puerta"""

    sequence_number: int = Field(alias="sequenceNumber")
    code: str
    holder_name: str = Field(alias="holderName")
    holder_email: Optional[str] = Field(default=None, alias="holderEmail")
    ticket_type_name: Optional[str] = Field(default=None, alias="ticketType")
    price: Optional[PriceValue] = None  # congelado al emitir
    event_date: date = Field(alias="eventDate")
    event_name: str = Field(alias="eventName")
    validated: bool = False
    issued_at: Optional[str] = Field(default=None, alias="issuedAt")
    payment: Optional[Dict[str, Any]] = None  # metadatos de pago, no se interpretan

    class Config:
        populate_by_name = True

    def to_record(self) -> Dict[str, Any]:
        record = self.model_dump(by_alias=True, exclude_none=True)
        record["eventDate"] = format_partition_key(self.event_date)
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Ticket":
        data = dict(record)
        if isinstance(data.get("eventDate"), str):
            data["eventDate"] = parse_partition_key(data["eventDate"])
        data["validated"] = is_validated(data.get("validated"))
        return cls.model_validate(data)
