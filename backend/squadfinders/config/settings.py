from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError as PydanticValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

from squadfinders.core.exceptions import ConfigurationError

# Cargar variables de entorno desde el archivo .env
load_dotenv(encoding="utf-8")


class Settings(BaseSettings):
    # App
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    TIMEZONE: str = "UTC"

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "squadfinders"

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Auto-expiry de mensajes
    AUTO_EXPIRY_ENABLED: bool = True
    EXPIRY_MINUTES: int = 5
    EXPIRY_INTERVAL_MINUTES: int = 1
    EXPIRY_BATCH_SIZE: int = 1000
    EXPIRE_PROCESSING: bool = True  # Mensajes 'processing' huérfanos también expiran

    # Reparto de lotes a los workers de IA
    CLAIM_DEFAULT_LIMIT: int = 50
    CLAIM_MAX_LIMIT: int = 100

    # Anti-spam: mismo sender + mismo texto dentro de la ventana
    DUPLICATE_WINDOW_MINUTES: int = 60

    # Limpieza de UserSeen (horas desde updatedAt)
    USER_SEEN_CLEANUP_ENABLED: bool = True
    USER_SEEN_CLEANUP_DISABLE_AFTER_HOURS: float = 24
    USER_SEEN_CLEANUP_INTERVAL_HOURS: float = 1

    # Limpieza de Players (horas desde message_date)
    PLAYER_CLEANUP_ENABLED: bool = True
    PLAYER_CLEANUP_DISABLE_AFTER_HOURS: float = 1
    PLAYER_CLEANUP_INTERVAL_HOURS: float = 0.25

    # Scheduler
    SCHEDULER_TICK_TIMEOUT_SECONDS: float = 120
    SCHEDULER_SHUTDOWN_TIMEOUT_SECONDS: float = 10

    model_config = {
        "env_file": ".env",
        "extra": "ignore"  # Ignorar campos adicionales en lugar de lanzar un error
    }

    @field_validator(
        "EXPIRY_MINUTES",
        "EXPIRY_INTERVAL_MINUTES",
        "EXPIRY_BATCH_SIZE",
        "CLAIM_DEFAULT_LIMIT",
        "CLAIM_MAX_LIMIT",
        "DUPLICATE_WINDOW_MINUTES",
        "USER_SEEN_CLEANUP_DISABLE_AFTER_HOURS",
        "USER_SEEN_CLEANUP_INTERVAL_HOURS",
        "PLAYER_CLEANUP_DISABLE_AFTER_HOURS",
        "PLAYER_CLEANUP_INTERVAL_HOURS",
        "SCHEDULER_TICK_TIMEOUT_SECONDS",
        "SCHEDULER_SHUTDOWN_TIMEOUT_SECONDS",
    )
    @classmethod
    def _must_be_positive(cls, value):
        if value <= 0:
            raise ValueError("debe ser mayor que 0")
        return value

    @field_validator("TIMEZONE")
    @classmethod
    def _valid_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"zona horaria desconocida: {value}") from e
        return value

    @model_validator(mode="after")
    def _claim_limits_consistent(self):
        if self.CLAIM_DEFAULT_LIMIT > self.CLAIM_MAX_LIMIT:
            raise ValueError("CLAIM_DEFAULT_LIMIT no puede superar CLAIM_MAX_LIMIT")
        return self


def load_settings(**overrides) -> Settings:
    """
    Construye Settings desde el entorno. Una configuración inválida corta
    el arranque con ConfigurationError, nunca en medio de un tick.
    """
    try:
        return Settings(**overrides)
    except PydanticValidationError as e:
        problems = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise ConfigurationError(
            "Configuración inválida",
            details={"errors": problems},
            cause=e,
        ) from e


settings = load_settings()
