"""Shared data types for reconciliation and alarm evaluation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


# =============================================================================
# Enums
# =============================================================================


class Outcome(Enum):
    """Result of a single reconciler invocation."""

    UPDATED = "Updated"
    UNCHANGED = "Unchanged"
    FAILED = "Failed"


class ErrorKind(Enum):
    """Why an invocation failed.

    Every kind counts as a failure for the error alarm; none is retried
    within the invocation that raised it.
    """

    RECORD_NOT_FOUND = "RecordNotFound"
    RECORD_DATA_MISSING = "RecordDataMissing"
    PROVIDER_ERROR = "ProviderError"
    TIMEOUT = "Timeout"
    ADDRESS_UNAVAILABLE = "AddressUnavailable"


class AlarmKind(Enum):
    MISSING_INVOCATIONS = "MissingInvocations"
    ERROR_RATE = "ErrorRate"


class AlarmStatus(Enum):
    OK = "OK"
    ALARM = "ALARM"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class DNSRecord:
    """A record set as returned by the DNS provider."""

    zone_id: str
    name: str
    type: str = "A"
    values: FrozenSet[str] = field(default_factory=frozenset)
    ttl: int = 300


@dataclass(frozen=True)
class InvocationEvent:
    """Telemetry for one reconciler invocation.

    ``detail`` is diagnostic text for the operational log. It is never
    returned to the caller.
    """

    timestamp: float
    outcome: Outcome
    observed_address: str
    error: Optional[ErrorKind] = None
    detail: str = ""

    @property
    def failed(self) -> bool:
        return self.outcome is Outcome.FAILED

    def to_response(self) -> Dict[str, Any]:
        """Response seen by the trigger; carries no internal detail."""
        if self.failed:
            return {"statusCode": 500, "statusDescription": "Internal Server Error"}
        return {"statusCode": 200, "statusDescription": "OK"}


@dataclass(frozen=True)
class AlarmState:
    kind: AlarmKind
    status: AlarmStatus = AlarmStatus.INSUFFICIENT_DATA
    last_transition_at: float = 0.0


@dataclass(frozen=True)
class AlarmTransition:
    """Notification payload for one alarm edge."""

    alarm_kind: AlarmKind
    previous_status: AlarmStatus
    new_status: AlarmStatus
    timestamp: float

    @classmethod
    def between(cls, previous: AlarmState, current: AlarmState) -> "AlarmTransition":
        return cls(
            alarm_kind=current.kind,
            previous_status=previous.status,
            new_status=current.status,
            timestamp=current.last_transition_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alarmKind": self.alarm_kind.value,
            "previousStatus": self.previous_status.value,
            "newStatus": self.new_status.value,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AlarmTransition":
        return cls(
            alarm_kind=AlarmKind(data["alarmKind"]),
            previous_status=AlarmStatus(data["previousStatus"]),
            new_status=AlarmStatus(data["newStatus"]),
            timestamp=float(data["timestamp"]),
        )
