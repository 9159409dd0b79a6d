"""
portal_empleado.source.transport
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Object-store transport interface.

A missing key is an expected outcome, so transports return the ``MISSING``
sentinel for it instead of raising. Every other failure is raised as
``ObjectStoreError`` and left to the caller to judge.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional, Protocol, Union, runtime_checkable


class _Missing(Enum):
    MISSING = "missing"

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Literal[_Missing.MISSING] = _Missing.MISSING


@dataclass(frozen=True)
class ObjectMetadata:
    """Validators reported by a metadata-only request."""

    etag:       Optional[str] = None
    version_id: Optional[str] = None


@dataclass(frozen=True)
class StoredObject:
    """Body and validators of a downloaded object."""

    body:       bytes
    etag:       Optional[str] = None
    version_id: Optional[str] = None
    metadata_etag: Optional[str] = None

    @property
    def resolved_etag(self) -> Optional[str]:
        return self.etag or self.metadata_etag


MetadataResult = Union[ObjectMetadata, _Missing]
ObjectResult = Union[StoredObject, _Missing]


@runtime_checkable
class ObjectStore(Protocol):
    """Minimal read-only view of a key/value object store."""

    def head(self, key: str) -> MetadataResult:
        """Validators for ``key``, or ``MISSING``."""
        ...

    def get(self, key: str) -> ObjectResult:
        """Full object for ``key``, or ``MISSING``."""
        ...

    def describe(self) -> str:
        """Human-readable location, used in log lines."""
        ...
