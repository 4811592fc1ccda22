"""
Excepciones base estandarizadas para SquadFinders.

Jerarquía:
    SquadFindersError (base)
    ├── StorageError
    │   └── TransientStorageError
    ├── ConfigurationError
    ├── ValidationError
    ├── NotFoundError
    ├── DuplicateMessageError
    └── InvalidTransitionError
"""
from typing import Optional, Dict, Any


class SquadFindersError(Exception):
    """
    Base exception para todos los errores de SquadFinders.

    Attributes:
        message: Mensaje descriptivo del error.
        code: Código único para identificar el tipo de error.
        details: Información adicional para debugging.
    """
    code: str = "SQUADFINDERS_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        self.message = message
        self.details = details or {}
        self.cause = cause
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serializa el error a diccionario para respuestas API."""
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details
        }


# ============ Storage Errors ============

class StorageError(SquadFindersError):
    """Errores del almacén de documentos (MongoDB)."""
    code = "STORAGE_ERROR"
    status_code = 503


class TransientStorageError(StorageError):
    """Caída de conexión o timeout; el próximo tick/request reintenta."""
    code = "STORAGE_TRANSIENT"


# ============ Configuration Errors ============

class ConfigurationError(SquadFindersError):
    """Configuración inválida detectada al arrancar."""
    code = "CONFIGURATION_ERROR"


# ============ Request Errors ============

class ValidationError(SquadFindersError):
    """Errores de validación de datos."""
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(SquadFindersError):
    """Registro inexistente."""
    code = "NOT_FOUND"
    status_code = 404


class DuplicateMessageError(SquadFindersError):
    """El mensaje ya existe (mismo message_id o spam dentro de la ventana)."""
    code = "MESSAGE_DUPLICATE"
    status_code = 409


# ============ Lifecycle Errors ============

class InvalidTransitionError(SquadFindersError):
    """Transición de ai_status fuera del camino permitido."""
    code = "INVALID_TRANSITION"
    status_code = 400
