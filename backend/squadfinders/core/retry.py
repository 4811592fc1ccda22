"""
Decoradores de retry con backoff exponencial usando tenacity.

Uso:
    from squadfinders.core.retry import storage_retry

    class MyRepository:
        @storage_retry
        async def count(self, query):
            # Esta llamada se reintentará ante caídas transitorias de MongoDB
            return await self._coll.count_documents(query)

Sólo deben decorarse operaciones idempotentes: un $inc reintentado a ciegas
podría aplicarse dos veces.
"""
import functools
import logging

from pymongo.errors import AutoReconnect, DuplicateKeyError, NetworkTimeout, PyMongoError, ServerSelectionTimeoutError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from squadfinders.core.exceptions import StorageError, TransientStorageError

logger = logging.getLogger(__name__)

TRANSIENT_STORAGE_ERRORS = (
    AutoReconnect,
    NetworkTimeout,
    ServerSelectionTimeoutError,
)


# ============ Storage Retry ============

storage_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    retry=retry_if_exception_type(TRANSIENT_STORAGE_ERRORS),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True
)
"""
Decorador para operaciones idempotentes contra MongoDB.
- 3 intentos máximo
- Backoff exponencial rápido: 0.5s → 5s
- Reintenta en: AutoReconnect, NetworkTimeout, ServerSelectionTimeoutError
"""


# ============ Upsert Retry ============

upsert_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
    retry=retry_if_exception_type(DuplicateKeyError),
    before_sleep=before_sleep_log(logger, logging.DEBUG),
    reraise=True
)
"""
Decorador para upserts con $inc.
Dos upserts concurrentes sobre la misma clave única pueden chocar con
DuplicateKeyError; en ese caso no se aplicó nada y es seguro repetir.
"""


# ============ Storage Boundary ============

def storage_errors(func):
    """
    Traduce errores de pymongo a la jerarquía de SquadFinders en el borde
    del repositorio (por fuera de los reintentos).

    - DuplicateKeyError se propaga tal cual: los repositorios lo mapean
      a errores de dominio.
    - Caídas transitorias -> TransientStorageError (503, el cliente reintenta).
    - Cualquier otro PyMongoError -> StorageError.
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except DuplicateKeyError:
            raise
        except TRANSIENT_STORAGE_ERRORS as e:
            raise TransientStorageError(
                "MongoDB no disponible temporalmente",
                details={"operation": func.__name__},
                cause=e,
            ) from e
        except PyMongoError as e:
            raise StorageError(
                f"Error de MongoDB en {func.__name__}: {e}",
                details={"operation": func.__name__},
                cause=e,
            ) from e
    return wrapper
