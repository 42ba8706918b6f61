"""Construcción de rutas del ledger de entradas

Toda ruta cuelga de venues/{venueId}/events/{dd-MM-yyyy}/{eventName}/...
Las fechas se manejan como datetime.date dentro del código y solo se
formatean a la clave de partición al direccionar el store.
"""
from datetime import date, datetime
from typing import Iterable

from shared.ledger.store import InvalidPathSegmentError


PARTITION_KEY_FORMAT = "%d-%m-%Y"
TICKET_KEY_PREFIX = "TICKET-"
COUNTER_KEY = "lastTicketNumber"


def format_partition_key(day: date) -> str:
    """date -> 'dd-MM-yyyy'"""
    return day.strftime(PARTITION_KEY_FORMAT)


def parse_partition_key(value: str) -> date:
    """'dd-MM-yyyy' -> date. Lanza ValueError si el formato no coincide."""
    return datetime.strptime(value.strip(), PARTITION_KEY_FORMAT).date()


def segment(value: str) -> str:
    """Validar un segmento de ruta (nombre de evento, venue, tipo de entrada)"""
    if not isinstance(value, str):
        raise InvalidPathSegmentError(f"Segmento de ruta inválido: {value!r}")
    cleaned = value.strip()
    if not cleaned or "/" in cleaned:
        raise InvalidPathSegmentError(f"Segmento de ruta inválido: {value!r}")
    return cleaned


def join(*parts: str) -> str:
    return "/".join(parts)


def split(path: str) -> list:
    return [p for p in path.split("/") if p]


def venue_events_path(venue_id: str) -> str:
    return join("venues", segment(venue_id), "events")


def day_path(venue_id: str, day: date) -> str:
    return join(venue_events_path(venue_id), format_partition_key(day))


def event_path(venue_id: str, day: date, event_name: str) -> str:
    return join(day_path(venue_id, day), segment(event_name))


def event_info_path(venue_id: str, day: date, event_name: str) -> str:
    return join(event_path(venue_id, day, event_name), "info")


def ticket_types_path(venue_id: str, day: date, event_name: str) -> str:
    return join(event_path(venue_id, day, event_name), "ticketTypes")


def ticket_type_path(venue_id: str, day: date, event_name: str, ticket_type: str) -> str:
    return join(ticket_types_path(venue_id, day, event_name), segment(ticket_type))


def tickets_path(venue_id: str, day: date, event_name: str) -> str:
    return join(event_path(venue_id, day, event_name), "tickets")


def ticket_key(sequence_number: int) -> str:
    return f"{TICKET_KEY_PREFIX}{sequence_number}"


def ticket_path(venue_id: str, day: date, event_name: str, sequence_number: int) -> str:
    return join(tickets_path(venue_id, day, event_name), ticket_key(sequence_number))


def counter_path(venue_id: str, day: date, event_name: str) -> str:
    """High-water mark: último número de entrada asignado para el evento"""
    return join(event_path(venue_id, day, event_name), COUNTER_KEY)


def sort_ticket_keys(keys: Iterable[str]) -> list:
    """Ordenar claves TICKET-n por número (TICKET-10 después de TICKET-9)"""
    def _key(k: str):
        suffix = k[len(TICKET_KEY_PREFIX):] if k.startswith(TICKET_KEY_PREFIX) else ""
        return (0, int(suffix)) if suffix.isdigit() else (1, k)
    return sorted(keys, key=_key)
