"""Códigos de entrada y payload escaneable (QR)

El código de una entrada es determinista a partir de (venue, fecha, evento,
número) y del secreto QR_SECRET:

    TICKET-{n}-{12 hex de HMAC-SHA256}

El payload que se imprime en el QR es SCAN_PAYLOAD_PREFIX + código. La
decodificación nunca lanza excepciones: la entrada viene de la cámara y las
lecturas parciales o corruptas son normales.
"""
import base64
import hashlib
import hmac
import re
from datetime import date
from io import BytesIO
from typing import Optional, Union

import qrcode

from shared.core.config import settings
from shared.ledger.paths import format_partition_key

SIGNATURE_LENGTH = 12
MAX_SEQUENCE_DIGITS = 9


def _code_pattern(code_prefix: str) -> "re.Pattern":
    return re.compile(
        rf"^{re.escape(code_prefix)}([1-9][0-9]{{0,{MAX_SEQUENCE_DIGITS - 1}}})-([0-9A-F]{{{SIGNATURE_LENGTH}}})$"
    )


def normalize(text: Optional[str]) -> str:
    """Quitar espacios/saltos de línea al inicio y final (típicos de la cámara)"""
    if not isinstance(text, str):
        return ""
    return text.strip()


def generate_ticket_code(
    venue_id: str,
    event_date: date,
    event_name: str,
    sequence_number: int,
    secret: Optional[str] = None,
    code_prefix: Optional[str] = None
) -> str:
    """
    Generar el código único de una entrada

    Usa HMAC-SHA256 sobre la tripleta del evento + número, de modo que:
    - No hace falta persistir el código antes de escribir la entrada
    - Dos eventos del mismo día no comparten códigos
    - No se puede fabricar un código válido sin el secret
    """
    if sequence_number < 1:
        raise ValueError("El número de entrada empieza en 1")
    secret = secret if secret is not None else settings.QR_SECRET
    code_prefix = code_prefix if code_prefix is not None else settings.TICKET_CODE_PREFIX

    message = f"{venue_id}|{format_partition_key(event_date)}|{event_name}|{sequence_number}"
    signature = hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256
    ).hexdigest().upper()

    return f"{code_prefix}{sequence_number}-{signature[:SIGNATURE_LENGTH]}"


def is_valid_code(code: str, code_prefix: Optional[str] = None) -> bool:
    code_prefix = code_prefix if code_prefix is not None else settings.TICKET_CODE_PREFIX
    return _code_pattern(code_prefix).match(normalize(code)) is not None


def encode(ticket_or_code: Union[str, object], payload_prefix: Optional[str] = None) -> str:
    """Ticket (o código) -> texto del QR"""
    code = ticket_or_code if isinstance(ticket_or_code, str) else getattr(ticket_or_code, "code")
    payload_prefix = payload_prefix if payload_prefix is not None else settings.SCAN_PAYLOAD_PREFIX
    return f"{payload_prefix}{normalize(code)}"


def decode(
    text: Optional[str],
    payload_prefix: Optional[str] = None,
    code_prefix: Optional[str] = None
) -> Optional[str]:
    """
    Texto leído por la cámara -> código de entrada

    Returns:
        El código, o None si el payload es inválido (longitud, prefijo o forma)
    """
    payload_prefix = payload_prefix if payload_prefix is not None else settings.SCAN_PAYLOAD_PREFIX
    code_prefix = code_prefix if code_prefix is not None else settings.TICKET_CODE_PREFIX

    payload = normalize(text)
    min_length = len(payload_prefix) + len(code_prefix) + 2 + SIGNATURE_LENGTH
    max_length = len(payload_prefix) + len(code_prefix) + MAX_SEQUENCE_DIGITS + 1 + SIGNATURE_LENGTH
    if not min_length <= len(payload) <= max_length:
        return None
    if not payload.startswith(payload_prefix):
        return None

    code = payload[len(payload_prefix):]
    if not _code_pattern(code_prefix).match(code):
        return None
    return code


def render_qr_png(payload: str) -> bytes:
    """Generar imagen PNG del QR"""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def render_qr_base64(payload: str) -> str:
    """QR en base64 para incrustar en la respuesta / email"""
    return base64.b64encode(render_qr_png(payload)).decode("ascii")
