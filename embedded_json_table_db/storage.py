from __future__ import annotations
import json
import os
import shutil
import tempfile
from typing import Any, Dict, List, Optional

from .errors import StorageReadError, StorageWriteError
from .logging import get_logger
from .utils import dump_document

Record = Dict[str, Any]
Document = Dict[str, List[Record]]

log = get_logger(__name__)


class FileStorage:
    """
    Whole-document I/O against a single JSON file.

    Every store() rewrites the complete document; there is no append or
    diffing, so each write costs O(total document size).
    """
    def __init__(self, path: str) -> None:
        self.path = path

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def load(self) -> Document:
        """
        Read and parse the file. The top level must be an object whose
        values are arrays of objects.
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                doc = json.load(f)
        except (OSError, ValueError) as exc:
            raise StorageReadError(f"unable to read {self.path}: {exc}", self.path) from exc
        self._check_shape(doc)
        log.debug("storage.loaded", path=self.path, tables=len(doc))
        return doc

    def store(self, doc: Document, spaces: Optional[int] = None) -> None:
        """
        Serialize the full document into a temp file next to the target and
        atomically replace the target with it.
        """
        try:
            text = dump_document(doc, spaces)
        except (TypeError, ValueError) as exc:
            raise StorageWriteError(f"document is not JSON-serializable: {exc}", self.path) from exc

        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path: Optional[str] = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix="." + os.path.basename(self.path) + ".", suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            if os.path.exists(self.path):
                # mkstemp creates 0600; keep the document's own permissions
                shutil.copymode(self.path, tmp_path)
            self.replace_file(tmp_path)
            tmp_path = None
        except OSError as exc:
            raise StorageWriteError(f"unable to write {self.path}: {exc}", self.path) from exc
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
        log.debug("storage.stored", path=self.path, tables=len(doc), size=len(text))

    def replace_file(self, tmp_path: str) -> None:
        os.replace(tmp_path, self.path)
        if hasattr(os, "O_DIRECTORY"):
            dir_fd = os.open(os.path.dirname(os.path.abspath(self.path)), os.O_RDONLY | os.O_DIRECTORY)
            try:
                os.fsync(dir_fd)
            finally:
                os.close(dir_fd)

    def _check_shape(self, doc: Any) -> None:
        if not isinstance(doc, dict):
            raise StorageReadError(f"{self.path}: top-level JSON value must be an object", self.path)
        for table, records in doc.items():
            if not isinstance(records, list):
                raise StorageReadError(f"{self.path}: table {table!r} is not an array", self.path)
            for rec in records:
                if not isinstance(rec, dict):
                    raise StorageReadError(
                        f"{self.path}: table {table!r} holds a non-object record", self.path
                    )
