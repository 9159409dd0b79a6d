"""
portal_empleado.exceptions
~~~~~~~~~~~~~~~~~~~~~~~~~~
Exception hierarchy for the receipt portal.

"Object not found" in the remote store is *not* an exception: transports
return the ``MISSING`` sentinel instead (see ``source.transport``).
"""

from __future__ import annotations


class PortalError(Exception):
    """Base exception for all portal_empleado errors."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        self.message = message

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by {type(self.cause).__name__}: {self.cause})"
        return self.message


class ConfigurationError(PortalError):
    """Raised when the runtime configuration cannot be used as given."""


class InvalidPeriodError(PortalError):
    """Raised for a year outside 2000–2100 or a month outside 1–12."""

    def __init__(self, year: int, month: int | None = None) -> None:
        label = f"{year}" if month is None else f"{year}-{month}"
        super().__init__(f"Invalid receipt period: {label}")
        self.year = year
        self.month = month


class InvalidIdentityError(PortalError):
    """Raised when an identity (CUIL) contains no digits at all."""


class ObjectStoreError(PortalError):
    """
    Raised by an object-store transport for any failure other than a
    missing key (permissions, throttling, network, unreadable file).

    Attributes:
        key: The object key that was being accessed.
    """

    def __init__(self, message: str, *, key: str, cause: BaseException | None = None) -> None:
        super().__init__(message, cause=cause)
        self.key = key


class PayrollParseError(PortalError):
    """Raised when a cached payroll payload is not a usable JSON document."""


class LockTimeoutError(PortalError):
    """Raised when a period lock could not be acquired within the timeout."""

    def __init__(self, key: str, timeout: float) -> None:
        super().__init__(f"Timed out after {timeout:g}s waiting for period lock {key}")
        self.key = key
        self.timeout = timeout
