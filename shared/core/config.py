from datetime import date
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_ENV: str = "development"
    APP_DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Ledger: memory | redis | sql
    LEDGER_BACKEND: str = "memory"
    LEDGER_KEY_PREFIX: str = "ledger"

    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_PASSWORD: Optional[str] = None
    REDIS_MAX_CONNECTIONS: int = 20

    DATABASE_URL: Optional[str] = None
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10

    JWT_SECRET_KEY: str = "dev-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Códigos de entrada y payload del QR
    QR_SECRET: str = "dev-qr-secret-change-in-production"
    TICKET_CODE_PREFIX: str = "TICKET-"
    SCAN_PAYLOAD_PREFIX: str = "NOUT:"

    # Lector en puerta
    SCAN_QUIET_INTERVAL_SECONDS: float = 3.0
    SCAN_RESULT_DISPLAY_SECONDS: float = 2.0
    GATE_LOOKUP_TIMEOUT_SECONDS: float = 4.0
    GATE_LOOKUP_RETRIES: int = 1
    GATE_FIXED_DATE: Optional[date] = None  # solo para ensayos, nunca en producción
    VENUE_TIMEZONE: Optional[str] = None  # ej: Europe/Madrid

    VAT_RATE: float = 0.21

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra en .env que no están en el modelo

settings = Settings()
