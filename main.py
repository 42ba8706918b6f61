"""API Gateway principal - Punto de entrada de la aplicación"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
import logging
from contextlib import asynccontextmanager

from shared.core.config import settings
from shared.ledger import connection
from shared.ledger.connection import init_ledger, close_ledger
from shared.ledger.store import LedgerError
from shared.utils.rate_limiter import limiter, rate_limit_exceeded_handler

# Configurar logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle events de la aplicación"""
    logger.info("Iniciando aplicación...")
    await init_ledger()
    logger.info(f"Aplicación iniciada (ledger={settings.LEDGER_BACKEND})")
    yield
    logger.info("Cerrando aplicación...")
    await close_ledger()
    logger.info("Aplicación cerrada")


app = FastAPI(
    title="Venue Ticketing API",
    description="Emisión de entradas numeradas, canje en puerta e informes de venta",
    version="1.0.0",
    lifespan=lifespan
)

# En desarrollo, permitir todos los orígenes para facilitar testing
if settings.APP_ENV == "development":
    logger.info("Modo desarrollo: CORS configurado para permitir todos los orígenes")
    allow_origins = ["*"]
    allow_credentials = False  # No se puede usar credentials con allow_origins=["*"]
else:
    allow_origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]
    allow_credentials = True
    logger.info(f"CORS origins configurados: {allow_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)

# Rate limiting DESPUÉS de CORS
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Incluir routers de cada servicio
from services.event_management.routes.events import router as events_router
from services.ticket_issuance.routes.tickets import router as issuance_router
from services.ticket_validation.routes.validation import router as validation_router
from services.admin.routes.admin import router as admin_router

app.include_router(events_router, prefix="/api/v1/venues", tags=["events"])
app.include_router(issuance_router, prefix="/api/v1/venues", tags=["issuance"])
app.include_router(validation_router, prefix="/api/v1/tickets", tags=["validation"])
app.include_router(admin_router, prefix="/api/v1/admin", tags=["admin"])


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "ok", "service": "venue-ticketing-api"}


@app.get("/ready")
async def ready():
    """Ready check endpoint - verifica el ledger"""
    store = connection.ledger_store
    if store is None:
        return JSONResponse(status_code=503, content={"status": "not ready", "error": "ledger not initialized"})
    try:
        await store.ping()
    except LedgerError as e:
        logger.error(f"Ready check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "not ready", "error": str(e)})
    return {"status": "ready", "ledger": settings.LEDGER_BACKEND}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.APP_DEBUG
    )
