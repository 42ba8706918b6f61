"""
Rate limiting usando slowapi

Con varios lectores en puerta detrás del mismo NAT el identificador combina
IP + hash del token, así cada dispositivo tiene su propio cupo.
"""
import hashlib
import logging

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from shared.core.config import settings

logger = logging.getLogger(__name__)


def get_real_client_ip(request: Request) -> str:
    """
    Obtener IP real del cliente considerando proxies/load balancers.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # client, proxy1, proxy2: la primera es la del cliente
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return get_remote_address(request)


def get_user_identifier(request: Request) -> str:
    """IP + hash corto del token si la petición está autenticada"""
    ip = get_real_client_ip(request)

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token_hash = hashlib.md5(auth_header.encode()).hexdigest()[:8]
        return f"{ip}:{token_hash}"

    return ip


# storage_uri "memory://" en una sola instancia, "redis://..." para compartir cupos
limiter = Limiter(
    key_func=get_user_identifier,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
    headers_enabled=False,  # Deshabilitado para compatibilidad con response_model de FastAPI
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """
    Handler personalizado para rate limit exceeded.
    Retorna JSON con información útil para el cliente.
    """
    retry_after = exc.detail.split(" ")[-1] if exc.detail else "60"

    logger.warning(
        f"Rate limit exceeded - IP: {get_real_client_ip(request)}, "
        f"Path: {request.url.path}, "
        f"Retry-After: {retry_after}"
    )

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "detail": "Demasiadas solicitudes. Por favor espera antes de intentar nuevamente.",
            "retry_after_seconds": int(retry_after) if retry_after.isdigit() else 60,
        },
        headers={"Retry-After": str(retry_after)}
    )


RATE_LIMITS = {
    # Emisión: la hace el personal, una entrada por venta
    "issuance": "30/minute",

    # Validación en puerta: colas en hora punta
    "validation": "120/minute",

    # Gestión de eventos e informes
    "admin": "120/minute",
}
