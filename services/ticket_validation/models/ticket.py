"""Modelos Pydantic para validación de entradas"""
from pydantic import BaseModel, Field, model_validator
from typing import Optional
from datetime import date


class TicketValidationRequest(BaseModel):
    payload: Optional[str] = Field(None, description="Texto leído del QR")
    code: Optional[str] = Field(None, description="Código tecleado a mano")
    venue_id: Optional[str] = None  # por defecto el del token

    @model_validator(mode="after")
    def check_input(self):
        if not self.payload and not self.code:
            raise ValueError("Indica payload o code")
        return self


class ValidatedTicketInfo(BaseModel):
    code: str
    sequence_number: Optional[int] = None
    holder_name: str
    holder_email: Optional[str] = None
    ticket_type: Optional[str] = None
    price: Optional[str] = None
    event_name: str
    event_date: date


class TicketValidationResponse(BaseModel):
    status: str  # allow | already_used | invalid | lookup_error
    valid: bool
    message: str
    ticket: Optional[ValidatedTicketInfo] = None
