"""
portal_empleado.source.local
~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Directory-tree transport: keys are paths relative to a root directory.

Used for development and for deployments that sync payroll files to disk.
The ETag is the SHA-256 of the file content; there is no version id.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from ..exceptions import ObjectStoreError
from .transport import MISSING, MetadataResult, ObjectMetadata, ObjectResult, StoredObject

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class LocalObjectStore:
    """Read-only object store backed by files under ``root``."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    def describe(self) -> str:
        return str(self._root)

    def _resolve(self, key: str) -> Path | None:
        path = (self._root / key.lstrip("/")).resolve()
        # Keys must not escape the root.
        if path != self._root and self._root not in path.parents:
            return None
        return path

    def _read(self, key: str) -> bytes | None:
        path = self._resolve(key)
        if path is None or not path.is_file():
            return None
        try:
            return path.read_bytes()
        except OSError as exc:
            raise ObjectStoreError(f"Cannot read {path}", key=key, cause=exc) from exc

    def head(self, key: str) -> MetadataResult:
        data = self._read(key)
        if data is None:
            return MISSING
        return ObjectMetadata(etag=hashlib.sha256(data).hexdigest())

    def get(self, key: str) -> ObjectResult:
        data = self._read(key)
        if data is None:
            return MISSING
        logger.debug("Local read: %s (%d bytes)", key, len(data))
        return StoredObject(body=data, etag=hashlib.sha256(data).hexdigest())
