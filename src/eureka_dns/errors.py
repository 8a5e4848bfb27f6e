"""Exception types raised while reconciling and notifying."""

from __future__ import annotations

from typing import Optional

from eureka_dns.models import ErrorKind


class ReconcileError(Exception):
    """Base class for failures that end an invocation as FAILED."""

    kind: ErrorKind = ErrorKind.PROVIDER_ERROR


class RecordNotFound(ReconcileError):
    kind = ErrorKind.RECORD_NOT_FOUND


class RecordDataMissing(ReconcileError):
    kind = ErrorKind.RECORD_DATA_MISSING


class ProviderError(ReconcileError):
    """A DNS provider call failed (network, throttling, 5xx...)."""

    kind = ErrorKind.PROVIDER_ERROR

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ReconcileTimeout(ReconcileError):
    kind = ErrorKind.TIMEOUT


class AddressUnavailable(ReconcileError):
    """The observed address is missing or not a usable IPv4 address."""

    kind = ErrorKind.ADDRESS_UNAVAILABLE


class NotificationError(Exception):
    """An alarm transition could not be delivered."""
