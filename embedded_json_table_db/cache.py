from __future__ import annotations
import threading
from typing import Callable, Dict, List, Optional

from .errors import FlushError, StorageError
from .logging import get_logger
from .storage import Document, FileStorage, Record

log = get_logger(__name__)

FlushErrorHandler = Callable[[FlushError], None]


class TableCache:
    """
    In-memory mirror of the whole document with periodic write-back.

    While running, the mirror is authoritative: reads are served from it and
    mutations are applied to it directly, then marked dirty. A background
    thread writes the full mirror to storage every `interval` seconds when
    it is dirty. Flushing is one-way; the written snapshot is never read back.

    All access to the mirror, including flushes, happens under `lock`, which
    the owning Database shares so that a flush never observes a half-applied
    mutation.
    """
    def __init__(
        self,
        storage: FileStorage,
        interval: float,
        *,
        lock: threading.RLock,
        spaces: Optional[int] = None,
        on_flush_error: Optional[FlushErrorHandler] = None,
    ) -> None:
        self._storage = storage
        self.interval = interval
        self._lock = lock
        self._spaces = spaces
        self._on_flush_error = on_flush_error
        self.tables: Dict[str, List[Record]] = {}
        self.dirty = False
        self.seeded = False
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def seed(self) -> None:
        with self._lock:
            self.tables = self._storage.load()
            self.dirty = False
            self.seeded = True
        log.debug("cache.seeded", path=self._storage.path, tables=len(self.tables))

    def start(self) -> None:
        if not self.seeded:
            self.seed()
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"json-table-flush:{self._storage.path}", daemon=True
        )
        self._thread.start()
        log.debug("cache.started", path=self._storage.path, interval=self.interval)

    def stop(self) -> None:
        """Cancel the flush loop, then write any buffered changes once more."""
        thread = self._thread
        self._stop.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None
        self.flush()
        log.debug("cache.stopped", path=self._storage.path)

    def document(self) -> Document:
        return self.tables

    def mark_dirty(self) -> None:
        self.dirty = True

    def flush(self) -> bool:
        """
        Write the whole mirror if it changed since the last successful flush.
        Returns True if a write happened. Storage errors propagate.
        """
        with self._lock:
            if not self.dirty:
                return False
            self._storage.store(self.tables, self._spaces)
            self.dirty = False
            n = len(self.tables)
        log.debug("cache.flushed", path=self._storage.path, tables=n)
        return True

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self._tick()

    def _tick(self) -> None:
        try:
            self.flush()
        except StorageError as exc:
            err = FlushError(f"periodic flush of {self._storage.path} failed: {exc}")
            err.__cause__ = exc
            log.error("cache.flush_failed", path=self._storage.path, error=str(exc), exc_info=exc)
            self._report(err)

    def _report(self, err: FlushError) -> None:
        if self._on_flush_error is None:
            return
        try:
            self._on_flush_error(err)
        except Exception:
            log.exception("cache.flush_error_handler_failed", path=self._storage.path)
