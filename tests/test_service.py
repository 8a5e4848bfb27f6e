"""End-to-end tests of one invocation through reconciler, monitors and notifier."""

from pathlib import Path

from eureka_dns.config import Settings
from eureka_dns.models import AlarmKind, AlarmStatus, ErrorKind, Outcome
from eureka_dns.service import HealthcheckService, build_service
from eureka_dns.state import MemoryStateStore, StateStore

from fakes import RECORD_NAME, ZONE_ID, FakeClock, MockDNSProvider, RecordingNotifier, a_record

PERIOD = 1800


def create_test_service(
    dns: MockDNSProvider,
    notifier: RecordingNotifier,
    clock: FakeClock,
    state_store: StateStore | None = None,
) -> HealthcheckService:
    settings = Settings(record_name=RECORD_NAME, hosted_zone_id=ZONE_ID)
    return build_service(
        settings,
        dns_provider=dns,
        notifier=notifier,
        state_store=state_store or MemoryStateStore(),
        clock=clock,
    )


def kinds_and_statuses(notifier: RecordingNotifier) -> list:
    return [(t.alarm_kind, t.previous_status, t.new_status) for t in notifier.delivered]


def test_error_alarm_notifies_exactly_once_per_edge() -> None:
    """Failure then success should produce ALARM and OK notifications, nothing else."""
    dns = MockDNSProvider([a_record("203.0.113.7")])
    notifier = RecordingNotifier()
    clock = FakeClock(0)
    service = create_test_service(dns, notifier, clock)

    assert service.invoke("203.0.113.7").outcome is Outcome.UNCHANGED

    clock.now = PERIOD
    dns.fail_list = True
    event = service.invoke("203.0.113.7")
    assert event.error is ErrorKind.PROVIDER_ERROR

    clock.now = 2 * PERIOD
    dns.fail_list = False
    assert service.invoke("203.0.113.7").outcome is Outcome.UNCHANGED

    clock.now = 3 * PERIOD
    service.invoke("203.0.113.7")

    assert kinds_and_statuses(notifier) == [
        (AlarmKind.ERROR_RATE, AlarmStatus.OK, AlarmStatus.ALARM),
        (AlarmKind.ERROR_RATE, AlarmStatus.ALARM, AlarmStatus.OK),
    ]


def test_tick_raises_missing_invocations_alarm() -> None:
    """A tick should raise the alarm once three buckets are empty."""
    dns = MockDNSProvider([a_record("203.0.113.7")])
    notifier = RecordingNotifier()
    clock = FakeClock(0)
    service = create_test_service(dns, notifier, clock)
    service.invoke("203.0.113.7")

    clock.now = 2399
    service.tick()
    assert notifier.delivered == []

    clock.now = 2400
    service.tick()

    assert kinds_and_statuses(notifier) == [
        (AlarmKind.MISSING_INVOCATIONS, AlarmStatus.OK, AlarmStatus.ALARM)
    ]
    assert notifier.delivered[0].timestamp == 2400
    assert service.alarm_states()["MissingInvocations"].status is AlarmStatus.ALARM


def test_drift_update_is_recorded_as_success() -> None:
    """An update should count as a successful invocation."""
    dns = MockDNSProvider([a_record("198.51.100.1")])
    notifier = RecordingNotifier()
    service = create_test_service(dns, notifier, FakeClock(0))

    event = service.invoke("203.0.113.7")

    assert event.outcome is Outcome.UPDATED
    assert event.to_response()["statusCode"] == 200
    assert service.alarm_states()["ErrorRate"].status is AlarmStatus.OK


def test_undelivered_notification_is_retried() -> None:
    """Failed deliveries should be retried on the next tick."""
    dns = MockDNSProvider([a_record("203.0.113.7")])
    notifier = RecordingNotifier()
    notifier.failures_left = 1
    clock = FakeClock(0)
    service = create_test_service(dns, notifier, clock)

    dns.fail_list = True
    service.invoke("203.0.113.7")

    assert notifier.delivered == []
    assert len(service.pending_notifications) == 1

    clock.now = 60
    service.tick()

    assert kinds_and_statuses(notifier) == [
        (AlarmKind.ERROR_RATE, AlarmStatus.INSUFFICIENT_DATA, AlarmStatus.ALARM)
    ]
    assert service.pending_notifications == []


def test_state_survives_process_restart(tmp_path: Path) -> None:
    """A new service on the same state file should continue the alarm windows."""
    dns = MockDNSProvider([a_record("203.0.113.7")])
    store = StateStore(str(tmp_path / "state.json"))
    clock = FakeClock(0)

    first_notifier = RecordingNotifier()
    create_test_service(dns, first_notifier, clock, store).invoke("203.0.113.7")

    clock.now = 2400
    second_notifier = RecordingNotifier()
    second = create_test_service(dns, second_notifier, clock, store)
    second.tick()

    assert kinds_and_statuses(second_notifier) == [
        (AlarmKind.MISSING_INVOCATIONS, AlarmStatus.OK, AlarmStatus.ALARM)
    ]
    saved = store.load()
    assert saved["monitors"]["MissingInvocations"]["status"] == "ALARM"
    assert saved["outbox"] == []


def test_pending_notifications_are_persisted(tmp_path: Path) -> None:
    """Queued notifications should survive a restart."""
    dns = MockDNSProvider([a_record("203.0.113.7")])
    dns.fail_list = True
    store = StateStore(str(tmp_path / "state.json"))
    notifier = RecordingNotifier()
    notifier.failures_left = 5

    create_test_service(dns, notifier, FakeClock(0), store).invoke("203.0.113.7")

    outbox = store.load()["outbox"]
    assert [item["alarmKind"] for item in outbox] == ["ErrorRate"]

    notifier.failures_left = 0
    restarted = create_test_service(dns, notifier, FakeClock(10), store)
    restarted.tick()

    assert [t.alarm_kind for t in notifier.delivered] == [AlarmKind.ERROR_RATE]
