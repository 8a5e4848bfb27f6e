"""Sliding-window alarm monitors fed by invocation events.

Both monitors share one evaluator configured the way a metric alarm is:
bucket width, evaluation periods, datapoints to alarm, threshold, comparison
and missing-data treatment. They differ only in what an event contributes to
a bucket and in those settings.

Timeline rules:

* A bucket is judged as *missing* only after it has fully elapsed.
* A bucket that already holds a data point may be evaluated while open, so a
  failure raises the error alarm in the same invocation that saw it.
* Buckets before the monitor's origin (first start) are never evaluated.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from eureka_dns.models import AlarmKind, AlarmState, AlarmStatus, InvocationEvent, Outcome

logger = logging.getLogger(__name__)

StateChange = Tuple[AlarmState, AlarmState]


# =============================================================================
# Alarm Settings
# =============================================================================


class MissingDataTreatment(Enum):
    BREACHING = "breaching"
    NOT_BREACHING = "notBreaching"
    IGNORE = "ignore"
    MISSING = "missing"

    @classmethod
    def parse(cls, value: str) -> "MissingDataTreatment":
        key = str(value).strip().replace("_", "").replace("-", "").lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        raise ValueError(
            f"Unknown missing data treatment '{value}'. "
            f"Supported: {', '.join(m.value for m in cls)}"
        )


class Comparison(Enum):
    LESS_THAN = "LessThanThreshold"
    GREATER_THAN = "GreaterThanThreshold"

    def breaches(self, value: float, threshold: float) -> bool:
        if self is Comparison.LESS_THAN:
            return value < threshold
        return value > threshold


# =============================================================================
# Sliding Window
# =============================================================================


class SlidingWindow:
    """Per-period counters keyed by bucket index (``timestamp // period``)."""

    def __init__(self, period_seconds: float, evaluation_periods: int):
        if period_seconds <= 0:
            raise ValueError("period_seconds must be positive")
        if evaluation_periods < 1:
            raise ValueError("evaluation_periods must be at least 1")
        self.period_seconds = float(period_seconds)
        self.evaluation_periods = evaluation_periods
        self.buckets: Dict[int, float] = {}

    def index_of(self, timestamp: float) -> int:
        return int(timestamp // self.period_seconds)

    def bucket_end(self, index: int) -> float:
        return (index + 1) * self.period_seconds

    def add(self, timestamp: float, value: float) -> None:
        index = self.index_of(timestamp)
        self.buckets[index] = self.buckets.get(index, 0.0) + value

    def get(self, index: int) -> Optional[float]:
        return self.buckets.get(index)

    def indices_ending_at(self, index: int) -> range:
        return range(index - self.evaluation_periods + 1, index + 1)

    def evict(self, newest_index: int) -> None:
        """Drop buckets that can no longer appear in a window ending at or after ``newest_index``."""
        oldest_kept = newest_index - self.evaluation_periods + 1
        for index in [i for i in self.buckets if i < oldest_kept]:
            del self.buckets[index]


# =============================================================================
# Monitors
# =============================================================================


class WindowMonitor(ABC):
    """Alarm state machine over a :class:`SlidingWindow`.

    ALARM when at least ``datapoints_to_alarm`` buckets of the window breach.
    OK when that is not the case and the window either holds a non-breaching
    bucket or spans its full length. A window with nothing to judge leaves
    the status alone under ``ignore`` and yields INSUFFICIENT_DATA under
    ``missing``.
    """

    kind: AlarmKind

    def __init__(
        self,
        *,
        period_seconds: float,
        evaluation_periods: int,
        datapoints_to_alarm: int,
        threshold: float,
        comparison: Comparison,
        missing_data: MissingDataTreatment,
        started_at: float,
    ):
        if not 1 <= datapoints_to_alarm <= evaluation_periods:
            raise ValueError("datapoints_to_alarm must be between 1 and evaluation_periods")
        self.window = SlidingWindow(period_seconds, evaluation_periods)
        self.datapoints_to_alarm = datapoints_to_alarm
        self.threshold = threshold
        self.comparison = comparison
        self.missing_data = missing_data
        self.state = AlarmState(kind=self.kind)
        self._origin = self.window.index_of(started_at)
        self._last_closed = self._origin - 1

    @abstractmethod
    def datapoint(self, event: InvocationEvent) -> Optional[float]:
        """What ``event`` adds to its bucket, or None to record nothing."""

    def observe(self, event: InvocationEvent) -> None:
        value = self.datapoint(event)
        if value is None:
            return
        if self.window.index_of(event.timestamp) < self._origin:
            logger.debug(f"{self.kind.value}: ignoring event older than monitor origin")
            return
        self.window.add(event.timestamp, value)

    def evaluate(self, now: float) -> List[StateChange]:
        """Evaluate every bucket that closed since the last call, then the open one."""
        changes: List[StateChange] = []
        current = self.window.index_of(now)

        for index in range(self._last_closed + 1, current):
            change = self._evaluate_window(index, self.window.bucket_end(index))
            if change:
                changes.append(change)
            self._last_closed = index

        if current >= self._origin and self.window.get(current) is not None:
            change = self._evaluate_window(current, now)
            if change:
                changes.append(change)

        self.window.evict(current)
        return changes

    def _evaluate_window(self, index: int, at: float) -> Optional[StateChange]:
        breaching: List[bool] = []
        for i in self.window.indices_ending_at(index):
            if i < self._origin:
                continue
            value = self.window.get(i)
            if value is not None:
                breaching.append(self.comparison.breaches(value, self.threshold))
            elif self.missing_data is MissingDataTreatment.BREACHING:
                breaching.append(True)
            elif self.missing_data is MissingDataTreatment.NOT_BREACHING:
                breaching.append(False)

        full_window = index - self._origin + 1 >= self.window.evaluation_periods
        if not breaching:
            if self.missing_data is MissingDataTreatment.MISSING:
                return self._transition(AlarmStatus.INSUFFICIENT_DATA, at)
            return None
        if sum(breaching) >= self.datapoints_to_alarm:
            return self._transition(AlarmStatus.ALARM, at)
        if not all(breaching) or full_window:
            return self._transition(AlarmStatus.OK, at)
        return None

    def _transition(self, status: AlarmStatus, at: float) -> Optional[StateChange]:
        previous = self.state
        if previous.status is status:
            return None
        self.state = AlarmState(kind=self.kind, status=status, last_transition_at=at)
        logger.info(f"Alarm {self.kind.value}: {previous.status.value} -> {status.value}")
        return previous, self.state

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.state.status.value,
            "last_transition_at": self.state.last_transition_at,
            "period_seconds": self.window.period_seconds,
            "origin": self._origin,
            "last_closed": self._last_closed,
            "buckets": {str(i): v for i, v in sorted(self.window.buckets.items())},
        }

    def load_dict(self, data: Dict[str, Any]) -> None:
        """Restore state saved by :meth:`to_dict`.

        Bucket indices are only meaningful for the same bucket width; when the
        width changed the window restarts from the current origin and only
        the alarm status carries over.
        """
        self.state = AlarmState(
            kind=self.kind,
            status=AlarmStatus(data.get("status", AlarmStatus.INSUFFICIENT_DATA.value)),
            last_transition_at=float(data.get("last_transition_at", 0.0)),
        )
        if float(data.get("period_seconds", 0.0)) != self.window.period_seconds:
            logger.info(f"{self.kind.value}: bucket width changed, restarting window")
            return
        self._origin = int(data.get("origin", self._origin))
        self._last_closed = int(data.get("last_closed", self._origin - 1))
        self.window.buckets = {int(i): float(v) for i, v in data.get("buckets", {}).items()}


class InvocationMonitor(WindowMonitor):
    """Alarms when the reconciler stops being invoked.

    Bucket width is ``invocation_period / evaluation_periods`` and every
    invocation counts, whatever its outcome. Missing buckets breach by
    default, so a scheduler that stops firing raises the alarm after
    ``evaluation_periods`` silent buckets.
    """

    kind = AlarmKind.MISSING_INVOCATIONS

    def __init__(
        self,
        *,
        invocation_period: float,
        evaluation_periods: int = 3,
        threshold: float = 1,
        missing_data: MissingDataTreatment = MissingDataTreatment.BREACHING,
        started_at: float,
    ):
        super().__init__(
            period_seconds=invocation_period // evaluation_periods,
            evaluation_periods=evaluation_periods,
            datapoints_to_alarm=evaluation_periods,
            threshold=threshold,
            comparison=Comparison.LESS_THAN,
            missing_data=missing_data,
            started_at=started_at,
        )

    def datapoint(self, event: InvocationEvent) -> Optional[float]:
        return 1.0


class ErrorMonitor(WindowMonitor):
    """Alarms when any invocation in the period failed."""

    kind = AlarmKind.ERROR_RATE

    def __init__(
        self,
        *,
        invocation_period: float,
        threshold: float = 0,
        missing_data: MissingDataTreatment = MissingDataTreatment.IGNORE,
        started_at: float,
    ):
        super().__init__(
            period_seconds=invocation_period,
            evaluation_periods=1,
            datapoints_to_alarm=1,
            threshold=threshold,
            comparison=Comparison.GREATER_THAN,
            missing_data=missing_data,
            started_at=started_at,
        )

    def datapoint(self, event: InvocationEvent) -> Optional[float]:
        return 1.0 if event.outcome is Outcome.FAILED else 0.0
