"""Rutas de validación de entradas en puerta"""
import asyncio
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect, status

from shared.auth.dependencies import get_current_scanner, resolve_operator_venue, user_from_payload
from shared.auth.jwt_handler import verify_token
from shared.ledger.connection import get_ledger
from shared.ledger.store import LedgerStore
from shared.utils.rate_limiter import RATE_LIMITS, limiter
from shared.utils.scan_codec import decode, is_valid_code, normalize
from services.ticket_validation.models.ticket import TicketValidationRequest, TicketValidationResponse
from services.ticket_validation.services.redemption_gate import (
    MESSAGES,
    RedemptionGate,
    RedemptionResult,
    RedemptionStatus,
    TicketInfo,
)
from services.ticket_validation.services.scan_session import OperatorDisplay, QueueScanSource, ScanSession

logger = logging.getLogger(__name__)

router = APIRouter()

SCANNER_ROLES = ['scanner', 'admin', 'coordinator']


def _to_response(result: RedemptionResult) -> TicketValidationResponse:
    data = result.to_dict()
    return TicketValidationResponse(
        status=data["status"],
        valid=result.allowed,
        message=data["message"],
        ticket=data["ticket"],
    )


@router.post("/validate", response_model=TicketValidationResponse)
@limiter.limit(RATE_LIMITS["validation"])
async def validate_ticket(
    request: Request,
    body: TicketValidationRequest,
    store: LedgerStore = Depends(get_ledger),
    current_user: Dict = Depends(get_current_scanner)
):
    """
    Validar y canjear una entrada

    Requiere autenticación de scanner/admin/coordinator. invalid, already_used
    y lookup_error son resultados normales de puerta: siempre responde 200.
    """
    venue_id = resolve_operator_venue(current_user, body.venue_id)

    if body.payload:
        code = decode(body.payload)
    else:
        # Código tecleado a mano: misma forma que el impreso bajo el QR
        code = normalize(body.code) if is_valid_code(body.code) else None
    if not code:
        result = RedemptionResult(status=RedemptionStatus.INVALID, message=MESSAGES[RedemptionStatus.INVALID])
    else:
        result = await RedemptionGate(store).redeem(venue_id, code)

    logger.info(f"Validación por {current_user.get('user_id')} en {venue_id}: {result.status.value}")
    return _to_response(result)


class WebSocketDisplay(OperatorDisplay):
    """Envía a la pantalla del dispositivo lo que debe mostrar"""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def _send(self, message: Dict) -> None:
        await self.websocket.send_json(message)

    async def show_allow(self, result: RedemptionResult, details: Optional[TicketInfo] = None) -> None:
        message = {"display": "allow", **result.to_dict()}
        if details is None:
            message["ticket"] = None
        await self._send(message)

    async def show_deny(self, result: RedemptionResult) -> None:
        await self._send({"display": "deny", **result.to_dict()})

    async def show_error(self, result: RedemptionResult) -> None:
        await self._send({"display": "error", **result.to_dict()})

    async def clear(self) -> None:
        await self._send({"display": "clear"})


@router.websocket("/scan")
async def scan_stream(
    websocket: WebSocket,
    token: str = Query(...),
    venue_id: Optional[str] = Query(None),
    show_details: bool = Query(False),
    store: LedgerStore = Depends(get_ledger)
):
    """
    Sesión de escaneo continua

    El dispositivo envía cada texto decodificado como mensaje de texto y
    recibe {"display": allow|deny|error|clear, ...}.
    """
    payload = await verify_token(token)
    user = user_from_payload(payload) if payload else None
    if user is None or user.get('role') not in SCANNER_ROLES:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    venue = venue_id or user.get('venue_id')
    if not venue or (user.get('role') != 'admin' and user.get('venue_id') != venue):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    source = QueueScanSource()
    session = ScanSession(
        venue_id=venue,
        gate=RedemptionGate(store),
        display=WebSocketDisplay(websocket),
        show_details=show_details,
    )
    runner = asyncio.create_task(session.run(source))
    logger.info(f"Sesión de escaneo abierta: {user['user_id']} en {venue}")

    try:
        while True:
            text = await websocket.receive_text()
            await source.push(text)
    except WebSocketDisconnect:
        logger.info(f"Dispositivo desconectado: {user['user_id']} en {venue}")
    finally:
        await session.close()
        runner.cancel()
        await asyncio.gather(runner, return_exceptions=True)
