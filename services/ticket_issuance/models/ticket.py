"""Modelos Pydantic para emisión de entradas"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, Dict, Any
from datetime import date
from decimal import Decimal


class HolderData(BaseModel):
    name: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None


class TicketIssueRequest(BaseModel):
    ticket_type: str = Field(..., min_length=1)
    holder: HolderData
    price: Optional[Decimal] = Field(None, ge=0)  # si no se indica, el del tipo de entrada
    payment: Optional[Dict[str, Any]] = None  # referencia de pago, se guarda sin interpretar
    include_qr_image: bool = True


class TicketIssuedResponse(BaseModel):
    sequence_number: int
    code: str
    scan_payload: str
    qr_code_base64: Optional[str] = None
    holder_name: str
    holder_email: Optional[str] = None
    ticket_type: Optional[str] = None
    price: Optional[str] = None
    event_name: str
    event_date: date
    validated: bool
