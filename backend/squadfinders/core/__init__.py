# Core module - utilities and base classes
from .mongo_client import create_mongo_client, get_database, close_mongo_client, mongo_health_check
from .exceptions import (
    SquadFindersError, StorageError, TransientStorageError, ConfigurationError,
    ValidationError, NotFoundError, DuplicateMessageError, InvalidTransitionError
)
from .retry import storage_errors, storage_retry, upsert_retry

__all__ = [
    # MongoDB
    'create_mongo_client', 'get_database', 'close_mongo_client', 'mongo_health_check',
    # Exceptions
    'SquadFindersError', 'StorageError', 'TransientStorageError', 'ConfigurationError',
    'ValidationError', 'NotFoundError', 'DuplicateMessageError', 'InvalidTransitionError',
    # Retry
    'storage_errors', 'storage_retry', 'upsert_retry',
]
