from __future__ import annotations
from typing import Optional


class DBError(Exception):
    """Base class for all errors raised by the database."""


class ValidationError(DBError):
    pass


class TableNotFoundError(DBError):
    def __init__(self, table: str) -> None:
        super().__init__(f"table {table!r} not found")
        self.table = table


# Short alias matching the error taxonomy name
TableNotFound = TableNotFoundError


class StorageError(DBError):
    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class StorageReadError(StorageError):
    """File is missing, unreadable, or does not hold a valid document."""


class StorageWriteError(StorageError):
    """Document could not be written to the file."""


class FlushError(DBError):
    """
    A periodic cache flush failed. Raised on the background flush thread,
    so it is only ever delivered through logs and the on_flush_error callback.
    """
