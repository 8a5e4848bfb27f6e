"""Unit tests for alarm transition notifiers."""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests
from botocore.exceptions import ClientError

from eureka_dns.errors import NotificationError
from eureka_dns.models import AlarmKind, AlarmState, AlarmStatus, AlarmTransition
from eureka_dns.notifier import (
    FanoutNotifier,
    LogNotifier,
    SNSNotifier,
    WebhookNotifier,
    create_notifier,
    is_notifiable,
)

from fakes import RecordingNotifier

TOPIC_ARN = "arn:aws:sns:eu-west-1:123456789012:healthcheck_alarm_topic"


def state(status: AlarmStatus, at: float = 0.0) -> AlarmState:
    return AlarmState(kind=AlarmKind.ERROR_RATE, status=status, last_transition_at=at)


def transition() -> AlarmTransition:
    return AlarmTransition(
        alarm_kind=AlarmKind.MISSING_INVOCATIONS,
        previous_status=AlarmStatus.OK,
        new_status=AlarmStatus.ALARM,
        timestamp=2400.0,
    )


# =============================================================================
# Edge Filtering
# =============================================================================


@pytest.mark.parametrize(
    "previous,current,expected",
    [
        (AlarmStatus.OK, AlarmStatus.ALARM, True),
        (AlarmStatus.ALARM, AlarmStatus.OK, True),
        (AlarmStatus.INSUFFICIENT_DATA, AlarmStatus.ALARM, True),
        (AlarmStatus.INSUFFICIENT_DATA, AlarmStatus.OK, False),
        (AlarmStatus.OK, AlarmStatus.INSUFFICIENT_DATA, False),
        (AlarmStatus.ALARM, AlarmStatus.ALARM, False),
        (AlarmStatus.OK, AlarmStatus.OK, False),
    ],
)
def test_is_notifiable(previous: AlarmStatus, current: AlarmStatus, expected: bool) -> None:
    """Only edges into ALARM and ALARM to OK should notify."""
    assert is_notifiable(state(previous), state(current)) is expected


def test_on_transition_delivers_only_edges() -> None:
    """on_transition should skip silent transitions."""
    notifier = RecordingNotifier()

    assert notifier.on_transition(state(AlarmStatus.OK), state(AlarmStatus.ALARM, 60)) is True
    assert notifier.on_transition(state(AlarmStatus.ALARM), state(AlarmStatus.ALARM)) is False

    assert notifier.delivered == [
        AlarmTransition(AlarmKind.ERROR_RATE, AlarmStatus.OK, AlarmStatus.ALARM, 60)
    ]


def test_transition_dict_roundtrip_uses_wire_names() -> None:
    """Serialized transitions should use camelCase keys."""
    data = transition().to_dict()

    assert data == {
        "alarmKind": "MissingInvocations",
        "previousStatus": "OK",
        "newStatus": "ALARM",
        "timestamp": 2400.0,
    }
    assert AlarmTransition.from_dict(data) == transition()


# =============================================================================
# SNS
# =============================================================================


class TestSNSNotifier:
    def test_publishes_json_payload(self) -> None:
        """Transitions should be published as JSON."""
        client = MagicMock()
        client.publish.return_value = {"MessageId": "m-1"}
        notifier = SNSNotifier(TOPIC_ARN, record_name="home.example.com", client=client)

        notifier.deliver(transition())

        kwargs = client.publish.call_args.kwargs
        assert kwargs["TopicArn"] == TOPIC_ARN
        assert kwargs["Subject"] == "ALARM: MissingInvocations for home.example.com"
        assert json.loads(kwargs["Message"]) == {
            "alarmKind": "MissingInvocations",
            "previousStatus": "OK",
            "newStatus": "ALARM",
            "timestamp": 2400.0,
            "recordName": "home.example.com",
        }

    def test_client_error_raises_notification_error(self) -> None:
        """SNS errors should raise NotificationError."""
        client = MagicMock()
        client.publish.side_effect = ClientError(
            {"Error": {"Code": "NotFound", "Message": "Topic does not exist"}}, "Publish"
        )
        notifier = SNSNotifier(TOPIC_ARN, client=client)

        with pytest.raises(NotificationError, match="Topic does not exist"):
            notifier.deliver(transition())

    def test_subject_is_truncated_to_sns_limit(self) -> None:
        """Subjects should fit the 100 character SNS limit."""
        client = MagicMock()
        client.publish.return_value = {"MessageId": "m-1"}
        notifier = SNSNotifier(TOPIC_ARN, record_name="a" * 200 + ".example.com", client=client)

        notifier.deliver(transition())

        assert len(client.publish.call_args.kwargs["Subject"]) == 100


# =============================================================================
# Webhook
# =============================================================================


class TestWebhookNotifier:
    def test_posts_json(self) -> None:
        """Transitions should be POSTed as JSON."""
        notifier = WebhookNotifier("https://hooks.example.com/alarm", record_name="home.example.com")

        with patch.object(notifier._session, "post") as mock_post:
            mock_response = MagicMock()
            mock_response.raise_for_status = MagicMock()
            mock_post.return_value = mock_response

            notifier.deliver(transition())

            mock_post.assert_called_once()
            args, kwargs = mock_post.call_args
            assert args == ("https://hooks.example.com/alarm",)
            assert kwargs["json"]["newStatus"] == "ALARM"
            assert kwargs["json"]["recordName"] == "home.example.com"
            assert kwargs["timeout"] == 10.0

    def test_http_error_raises_notification_error(self) -> None:
        """HTTP errors should raise NotificationError."""
        notifier = WebhookNotifier("https://hooks.example.com/alarm")

        with patch.object(notifier._session, "post") as mock_post:
            mock_post.side_effect = requests.exceptions.ConnectionError("Connection refused")

            with pytest.raises(NotificationError):
                notifier.deliver(transition())


# =============================================================================
# Fan-out
# =============================================================================


class TestFanoutNotifier:
    def test_delivers_to_all_children(self) -> None:
        """Every child notifier should receive the transition."""
        first, second = RecordingNotifier(), RecordingNotifier()

        FanoutNotifier([first, second]).deliver(transition())

        assert first.delivered == [transition()]
        assert second.delivered == [transition()]

    def test_failure_in_one_child_still_tries_others_then_raises(self) -> None:
        """One failing child should not block the others."""
        failing, healthy = RecordingNotifier(), RecordingNotifier()
        failing.failures_left = 1

        with pytest.raises(NotificationError, match="Recording"):
            FanoutNotifier([failing, healthy]).deliver(transition())

        assert healthy.delivered == [transition()]

    def test_create_notifier_without_channels_only_logs(self) -> None:
        """No channels configured should log only."""
        notifier = create_notifier()

        assert isinstance(notifier, FanoutNotifier)
        assert [type(n) for n in notifier.notifiers] == [LogNotifier]

    def test_create_notifier_with_webhook(self) -> None:
        """A webhook URL should add a webhook notifier."""
        notifier = create_notifier(webhook_url="https://hooks.example.com/alarm")

        assert [type(n) for n in notifier.notifiers] == [LogNotifier, WebhookNotifier]
        assert notifier.name == "Log+Webhook"
