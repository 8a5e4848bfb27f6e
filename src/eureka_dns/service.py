"""One invocation end to end: reconcile, feed the monitors, notify."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from eureka_dns.config import Settings
from eureka_dns.errors import NotificationError
from eureka_dns.models import AlarmState, AlarmTransition, InvocationEvent
from eureka_dns.monitors import ErrorMonitor, InvocationMonitor, WindowMonitor
from eureka_dns.notifier import Notifier, create_notifier
from eureka_dns.providers import DNSProvider, create_dns_provider
from eureka_dns.reconciler import Reconciler
from eureka_dns.state import StateStore

logger = logging.getLogger(__name__)


class HealthcheckService:
    """Owns the monitors and feeds them every invocation synchronously.

    Alarm transitions that could not be delivered stay in an outbox that is
    persisted with the monitor windows and retried on the next invocation or
    tick.
    """

    def __init__(
        self,
        *,
        reconciler: Reconciler,
        invocation_monitor: InvocationMonitor,
        error_monitor: ErrorMonitor,
        notifier: Notifier,
        state_store: StateStore,
        clock: Callable[[], float] = time.time,
    ):
        self.reconciler = reconciler
        self.invocation_monitor = invocation_monitor
        self.error_monitor = error_monitor
        self.notifier = notifier
        self.state_store = state_store
        self._clock = clock
        self._outbox: List[AlarmTransition] = []
        self._restore()

    @property
    def monitors(self) -> List[WindowMonitor]:
        return [self.invocation_monitor, self.error_monitor]

    @property
    def pending_notifications(self) -> List[AlarmTransition]:
        return list(self._outbox)

    def alarm_states(self) -> Dict[str, AlarmState]:
        return {m.kind.value: m.state for m in self.monitors}

    def invoke(self, observed_address: Any) -> InvocationEvent:
        """Run one reconciliation and account for it in both monitors."""
        event = self.reconciler.reconcile(observed_address)
        if event.failed:
            logger.info(f"Invocation failed: {event.error.value if event.error else 'unknown'}")
        else:
            logger.info(f"Invocation {event.outcome.value}: {event.observed_address}")

        for monitor in self.monitors:
            monitor.observe(event)
        self._evaluate(self._clock())
        return event

    def tick(self) -> None:
        """Evaluate alarms without an invocation, so silence is noticed."""
        self._evaluate(self._clock())

    def _evaluate(self, now: float) -> None:
        self._flush_outbox()
        for monitor in self.monitors:
            for previous, current in monitor.evaluate(now):
                self._notify(previous, current)
        self._save()

    def _notify(self, previous: AlarmState, current: AlarmState) -> None:
        try:
            self.notifier.on_transition(previous, current)
        except NotificationError as e:
            logger.error(
                f"Could not deliver {current.kind.value} {current.status.value}, will retry: {e}"
            )
            self._outbox.append(AlarmTransition.between(previous, current))

    def _flush_outbox(self) -> None:
        pending, self._outbox = self._outbox, []
        for transition in pending:
            try:
                self.notifier.deliver(transition)
            except NotificationError as e:
                logger.error(f"Retry of {transition.alarm_kind.value} notification failed: {e}")
                self._outbox.append(transition)

    def _restore(self) -> None:
        state = self.state_store.load()
        saved = state.get("monitors", {})
        for monitor in self.monitors:
            if monitor.kind.value in saved:
                monitor.load_dict(saved[monitor.kind.value])
        self._outbox = []
        for item in state.get("outbox", []):
            try:
                self._outbox.append(AlarmTransition.from_dict(item))
            except (KeyError, ValueError) as e:
                logger.warning(f"Dropping malformed queued notification {item}: {e}")

    def _save(self) -> None:
        state: Dict[str, Any] = self.state_store.load()
        state["monitors"] = {m.kind.value: m.to_dict() for m in self.monitors}
        state["outbox"] = [t.to_dict() for t in self._outbox]
        self.state_store.save(state)


def build_service(
    settings: Settings,
    *,
    dns_provider: Optional[DNSProvider] = None,
    notifier: Optional[Notifier] = None,
    state_store: Optional[StateStore] = None,
    clock: Callable[[], float] = time.time,
) -> HealthcheckService:
    """Wire a service from settings; any collaborator can be passed in instead."""
    if dns_provider is None:
        dns_provider = create_dns_provider(
            settings.dns_provider,
            timeout_seconds=settings.reconcile_timeout_seconds,
            region=settings.aws_region,
        )
    if notifier is None:
        notifier = create_notifier(
            sns_topic_arn=settings.sns_topic_arn,
            webhook_url=settings.notify_webhook_url,
            record_name=settings.record_name,
            region=settings.aws_region,
        )
    if state_store is None:
        state_store = StateStore(settings.state_path)

    started_at = clock()
    return HealthcheckService(
        reconciler=Reconciler(
            dns_provider=dns_provider,
            zone_id=settings.hosted_zone_id,
            record_name=settings.record_name,
            ttl=settings.record_ttl,
            timeout_seconds=settings.reconcile_timeout_seconds,
            clock=clock,
        ),
        invocation_monitor=InvocationMonitor(
            invocation_period=settings.lambda_invocation_period,
            evaluation_periods=settings.evaluation_periods,
            missing_data=settings.missing_data,
            started_at=started_at,
        ),
        error_monitor=ErrorMonitor(
            invocation_period=settings.lambda_invocation_period,
            threshold=settings.error_threshold,
            started_at=started_at,
        ),
        notifier=notifier,
        state_store=state_store,
        clock=clock,
    )
