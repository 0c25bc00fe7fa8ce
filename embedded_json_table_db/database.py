from __future__ import annotations
import copy
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from .cache import FlushErrorHandler, TableCache
from .config import DatabaseOptions
from .errors import DBError, TableNotFoundError, ValidationError
from .logging import get_logger
from .query import Direction, Where, apply_options, has_options, matches
from .storage import Document, FileStorage, Record
from .utils import check_json_value, new_ulid

ID_FIELD = "_id"

log = get_logger(__name__)


class Database:
    """
    A set of named tables stored together in one JSON document.

    Without a cache every mutation reads the document, applies the change and
    writes the whole document back before returning. With `cache={"interval": ms}`
    the document is held in memory and written back by a background flush;
    changes made since the last flush are lost if the process dies.

    Tables must be created before use. Referencing an unknown table raises
    TableNotFoundError, except for drop() which ignores it.
    """
    def __init__(
        self,
        path: str,
        *,
        cache: Optional[Mapping[str, Any]] = None,
        spaces: Optional[int] = None,
        on_flush_error: Optional[FlushErrorHandler] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        raw: Dict[str, Any] = {"path": path, "json": {"spaces": spaces}}
        if cache is not None:
            raw["cache"] = dict(cache)
        self._setup(_validate_options(raw), on_flush_error, id_factory)

    @classmethod
    def from_options(
        cls,
        options: Union[DatabaseOptions, Mapping[str, Any]],
        *,
        on_flush_error: Optional[FlushErrorHandler] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> "Database":
        if not isinstance(options, DatabaseOptions):
            options = _validate_options(dict(options))
        db = cls.__new__(cls)
        db._setup(options, on_flush_error, id_factory)
        return db

    def _setup(
        self,
        options: DatabaseOptions,
        on_flush_error: Optional[FlushErrorHandler],
        id_factory: Optional[Callable[[], str]],
    ) -> None:
        self.options = options
        self.path = options.path
        self._spaces = options.spaces
        self._new_id = id_factory or new_ulid
        self._lock = threading.RLock()
        self._fs = FileStorage(options.path)
        self._cache: Optional[TableCache] = None
        self._closed = False
        self._open(on_flush_error)

    def _open(self, on_flush_error: Optional[FlushErrorHandler]) -> None:
        """
        Create the file with an empty document if it does not exist yet, then
        seed and start the cache when enabled.
        """
        if not self._fs.exists():
            self._fs.store({}, self._spaces)
        if self.options.cache is not None:
            self._cache = TableCache(
                self._fs,
                self.options.cache.interval_seconds,
                lock=self._lock,
                spaces=self._spaces,
                on_flush_error=on_flush_error,
            )
            self._cache.start()
        else:
            # Fail early on an unreadable file rather than on the first operation
            self._fs.load()
        log.info("database.opened", path=self.path, cached=self.cached)

    # ----- Lifecycle -----

    @property
    def cached(self) -> bool:
        return self._cache is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def flush(self) -> bool:
        """Write buffered changes now. No-op without a cache."""
        self._check_open()
        if self._cache is None:
            return False
        return self._cache.flush()

    def close(self) -> None:
        """Stop the background flush and write buffered changes. Idempotent."""
        if self._closed:
            return
        # Not under self._lock: stop() joins the flush thread, which takes it.
        # If the final flush raises, the database stays open so close() can be retried.
        if self._cache is not None:
            self._cache.stop()
        self._closed = True
        log.info("database.closed", path=self.path)

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ----- Document access -----

    def _check_open(self) -> None:
        if self._closed:
            raise DBError(f"database {self.path} is closed")

    def _read(self) -> Document:
        if self._cache is not None:
            return self._cache.document()
        return self._fs.load()

    def _write(self, doc: Document) -> None:
        if self._cache is not None:
            # doc is the mirror itself; it already holds the change
            self._cache.mark_dirty()
        else:
            self._fs.store(doc, self._spaces)

    @staticmethod
    def _table(doc: Document, table: str) -> List[Record]:
        records = doc.get(table)
        if records is None:
            raise TableNotFoundError(table)
        return records

    # ----- Tables -----

    def create(self, *tables: str) -> List[str]:
        """Create the named tables; existing tables are left untouched."""
        with self._lock:
            self._check_open()
            doc = self._read()
            created = [t for t in dict.fromkeys(tables) if t not in doc]
            if not created:
                return []
            for t in created:
                doc[t] = []
            self._write(doc)
        log.debug("tables.created", path=self.path, tables=created)
        return created

    def drop(self, *tables: str) -> List[str]:
        """Remove tables and their records. Unknown names are ignored."""
        with self._lock:
            self._check_open()
            doc = self._read()
            dropped = [t for t in dict.fromkeys(tables) if t in doc]
            if not dropped:
                return []
            for t in dropped:
                del doc[t]
            self._write(doc)
        log.debug("tables.dropped", path=self.path, tables=dropped)
        return dropped

    def clear(self, *tables: str) -> None:
        """Remove all records from each table, keeping the tables."""
        with self._lock:
            self._check_open()
            doc = self._read()
            for t in tables:
                self._table(doc, t)
            for t in tables:
                doc[t] = []
            self._write(doc)

    def tables(self) -> List[str]:
        with self._lock:
            self._check_open()
            return list(self._read().keys())

    def exists(self, table: str) -> bool:
        with self._lock:
            self._check_open()
            return table in self._read()

    def size(self, table: Optional[str] = None) -> int:
        """Number of tables, or number of records in `table`."""
        with self._lock:
            self._check_open()
            doc = self._read()
            if table is None:
                return len(doc)
            return len(self._table(doc, table))

    # ----- Records -----

    def insert(self, table: str, *records: Mapping[str, Any]) -> List[Record]:
        """
        Append records with freshly generated ids. Any `_id` supplied by the
        caller is discarded. Returns the table's full contents afterwards.
        """
        for rec in records:
            _check_fields(rec, "record")
        with self._lock:
            self._check_open()
            doc = self._read()
            rows = self._table(doc, table)
            for rec in records:
                row = {k: copy.deepcopy(v) for k, v in rec.items() if k != ID_FIELD}
                row[ID_FIELD] = self._new_id()
                rows.append(row)
            self._write(doc)
            return copy.deepcopy(rows)

    def get(self, table: str, record_id: str) -> Optional[Record]:
        with self._lock:
            self._check_open()
            for rec in self._table(self._read(), table):
                if rec.get(ID_FIELD) == record_id:
                    return copy.deepcopy(rec)
        return None

    def find(
        self,
        table: str,
        where: Optional[Where] = None,
        *,
        sort: Optional[Mapping[str, Direction]] = None,
        skip: int = 0,
        limit: Optional[int] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> List[Record]:
        """
        Records matching every predicate in `where`, in table order. When any
        option is given the result is sorted, then skipped, then limited,
        then projected to `fields`.
        """
        with self._lock:
            self._check_open()
            found = [r for r in self._table(self._read(), table) if matches(r, where)]
            found = copy.deepcopy(found)
        if has_options(sort, skip, limit, fields):
            found = apply_options(found, sort=sort, skip=skip, limit=limit, fields=fields)
        return found

    def find_first(
        self,
        table: str,
        where: Optional[Where] = None,
        *,
        sort: Optional[Mapping[str, Direction]] = None,
        skip: int = 0,
        fields: Optional[Sequence[str]] = None,
    ) -> Optional[Record]:
        found = self.find(table, where, sort=sort, skip=skip, limit=None, fields=fields)
        return found[0] if found else None

    def count(
        self,
        table: str,
        where: Optional[Where] = None,
        *,
        sort: Optional[Mapping[str, Direction]] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> int:
        return len(self.find(table, where, sort=sort, skip=skip, limit=limit))

    def update(self, table: str, where: Optional[Where], patch: Mapping[str, Any]) -> List[Record]:
        """
        Merge `patch` field by field into every matching record. `_id` cannot
        be changed. Returns the table's full contents afterwards.
        """
        _check_fields(patch, "patch")
        if ID_FIELD in patch:
            raise ValidationError(f"{ID_FIELD} is immutable and cannot be updated")
        with self._lock:
            self._check_open()
            doc = self._read()
            rows = self._table(doc, table)
            # Evaluate every predicate before touching anything
            hits = [r for r in rows if matches(r, where)]
            for rec in hits:
                for k, v in patch.items():
                    rec[k] = copy.deepcopy(v)
            if hits:
                self._write(doc)
            log.debug("records.updated", path=self.path, table=table, n=len(hits))
            return copy.deepcopy(rows)

    def delete(self, table: str, where: Optional[Where] = None) -> int:
        """Remove every matching record. Returns how many were removed."""
        with self._lock:
            self._check_open()
            doc = self._read()
            rows = self._table(doc, table)
            keep = [r for r in rows if not matches(r, where)]
            n = len(rows) - len(keep)
            if n:
                rows[:] = keep
                self._write(doc)
            log.debug("records.deleted", path=self.path, table=table, n=n)
            return n

    def delete_first(self, table: str, where: Optional[Where] = None) -> int:
        """Remove the first matching record in table order. Returns 1 or 0."""
        with self._lock:
            self._check_open()
            doc = self._read()
            rows = self._table(doc, table)
            for i, rec in enumerate(rows):
                if matches(rec, where):
                    del rows[i]
                    self._write(doc)
                    return 1
            return 0


def _validate_options(raw: Dict[str, Any]) -> DatabaseOptions:
    try:
        return DatabaseOptions.from_mapping(raw)
    except PydanticValidationError as exc:
        raise ValidationError(f"invalid database options: {exc}") from exc


def _check_fields(rec: Any, what: str) -> None:
    if not isinstance(rec, Mapping):
        raise ValidationError(f"{what} must be a mapping, got {type(rec).__name__}")
    for k, v in rec.items():
        if not isinstance(k, str):
            raise ValidationError(f"{what}: field name {k!r} is not a string")
        if k != ID_FIELD:
            check_json_value(v, f"{what}.{k}")
