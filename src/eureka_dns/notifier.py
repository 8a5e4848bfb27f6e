"""Alarm transition delivery."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

from eureka_dns.errors import NotificationError
from eureka_dns.models import AlarmState, AlarmStatus, AlarmTransition

logger = logging.getLogger(__name__)


def is_notifiable(previous: AlarmState, current: AlarmState) -> bool:
    """Only edges into ALARM and from ALARM back to OK are announced."""
    if previous.status is current.status:
        return False
    if current.status is AlarmStatus.ALARM:
        return True
    return previous.status is AlarmStatus.ALARM and current.status is AlarmStatus.OK


class Notifier(ABC):
    """Delivers alarm transitions to subscribers.

    Delivery is at least once; subscribers deduplicate if they need to.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def deliver(self, transition: AlarmTransition) -> None:
        """Send one transition. Raise NotificationError on failure."""

    def on_transition(self, previous: AlarmState, current: AlarmState) -> bool:
        if not is_notifiable(previous, current):
            return False
        self.deliver(AlarmTransition.between(previous, current))
        return True


def _subject(transition: AlarmTransition, record_name: str) -> str:
    subject = f"{transition.new_status.value}: {transition.alarm_kind.value}"
    if record_name:
        subject += f" for {record_name}"
    # SNS subjects are limited to 100 characters.
    return subject[:100]


class SNSNotifier(Notifier):
    """Publishes transitions to an SNS topic (e.g. with e-mail subscriptions)."""

    def __init__(self, topic_arn: str, *, record_name: str = "", client: Any = None, region: str = ""):
        self.topic_arn = topic_arn
        self.record_name = record_name
        if client is None:
            client = boto3.client("sns", region_name=region) if region else boto3.client("sns")
        self._client = client

    @property
    def name(self) -> str:
        return "SNS"

    def deliver(self, transition: AlarmTransition) -> None:
        payload = {**transition.to_dict(), "recordName": self.record_name}
        try:
            response = self._client.publish(
                TopicArn=self.topic_arn,
                Subject=_subject(transition, self.record_name),
                Message=json.dumps(payload, sort_keys=True),
            )
        except (ClientError, BotoCoreError) as e:
            raise NotificationError(f"Failed to publish to {self.topic_arn}: {e}") from e
        logger.info(
            f"Published {transition.alarm_kind.value} {transition.new_status.value} "
            f"to {self.topic_arn} ({response.get('MessageId')})"
        )


class WebhookNotifier(Notifier):
    """POSTs transitions as JSON to an HTTP endpoint."""

    def __init__(
        self,
        url: str,
        *,
        record_name: str = "",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.record_name = record_name
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def name(self) -> str:
        return "Webhook"

    def deliver(self, transition: AlarmTransition) -> None:
        payload: Dict[str, Any] = {
            **transition.to_dict(),
            "recordName": self.record_name,
            "text": _subject(transition, self.record_name),
        }
        try:
            response = self._session.post(self.url, json=payload, timeout=self._timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise NotificationError(f"Failed to POST alarm transition to webhook: {e}") from e
        logger.info(f"Webhook notified: {payload['text']}")


class LogNotifier(Notifier):
    @property
    def name(self) -> str:
        return "Log"

    def deliver(self, transition: AlarmTransition) -> None:
        logger.warning(
            f"Alarm {transition.alarm_kind.value}: "
            f"{transition.previous_status.value} -> {transition.new_status.value}"
        )


class FanoutNotifier(Notifier):
    """Delivers to every child; fails if any child failed, after trying all."""

    def __init__(self, notifiers: List[Notifier]):
        self.notifiers = notifiers

    @property
    def name(self) -> str:
        return "+".join(n.name for n in self.notifiers) or "none"

    def deliver(self, transition: AlarmTransition) -> None:
        errors: List[str] = []
        for notifier in self.notifiers:
            try:
                notifier.deliver(transition)
            except NotificationError as e:
                logger.error(f"{notifier.name} notification failed: {e}")
                errors.append(f"{notifier.name}: {e}")
        if errors:
            raise NotificationError("; ".join(errors))


def create_notifier(
    *, sns_topic_arn: str = "", webhook_url: str = "", record_name: str = "", region: str = ""
) -> Notifier:
    """Factory for the configured notification channels; logs always."""
    notifiers: List[Notifier] = [LogNotifier()]
    if sns_topic_arn:
        notifiers.append(SNSNotifier(sns_topic_arn, record_name=record_name, region=region))
    if webhook_url:
        notifiers.append(WebhookNotifier(webhook_url, record_name=record_name))
    return FanoutNotifier(notifiers)
