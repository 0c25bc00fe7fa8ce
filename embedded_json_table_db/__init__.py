import logging as _logging

from .config import CacheOptions, DatabaseOptions, JsonOptions
from .database import ID_FIELD, Database
from .errors import (
    DBError,
    FlushError,
    StorageError,
    StorageReadError,
    StorageWriteError,
    TableNotFound,
    TableNotFoundError,
    ValidationError,
)
from .logging import get_logger, setup_logging
from .utils import new_ulid

_logging.getLogger(__name__).addHandler(_logging.NullHandler())

__all__ = [
    "Database",
    "DatabaseOptions",
    "CacheOptions",
    "JsonOptions",
    "ID_FIELD",
    "DBError",
    "ValidationError",
    "TableNotFound",
    "TableNotFoundError",
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
    "FlushError",
    "setup_logging",
    "get_logger",
    "new_ulid",
]
