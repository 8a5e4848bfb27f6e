"""Lambda-style entry point invoked through a function URL.

The caller's source address is the address to publish. The response is the
only thing the caller sees: 200 on Updated/Unchanged, 500 on any failure,
without internal detail.

A scheduled EventBridge event (no HTTP request context) only evaluates the
alarms. Point a second schedule at the function so a silent updater is
reported while it is silent. Alarm windows live in memory for the life of a
warm container unless STATE_PATH points at shared storage (e.g. EFS).
"""

from __future__ import annotations

import functools
import logging
import os
from typing import Any, Callable, Dict, Optional

from eureka_dns.config import Settings
from eureka_dns.service import HealthcheckService, build_service
from eureka_dns.state import MemoryStateStore, StateStore

logger = logging.getLogger(__name__)

OK_RESPONSE = {"statusCode": 200, "statusDescription": "OK"}
FAILURE_RESPONSE = {"statusCode": 500, "statusDescription": "Internal Server Error"}

Handler = Callable[[Dict[str, Any], Any], Dict[str, Any]]


def extract_source_ip(event: Dict[str, Any]) -> Optional[str]:
    """Source address from an HTTP API v2 / function URL event (or REST v1)."""
    context = event.get("requestContext") or {}
    for section in ("http", "identity"):
        source_ip = (context.get(section) or {}).get("sourceIp")
        if source_ip:
            return str(source_ip)
    source_ip = event.get("sourceIp")
    return str(source_ip) if source_ip else None


def is_scheduled_event(event: Dict[str, Any]) -> bool:
    if "requestContext" in event:
        return False
    return event.get("source") == "aws.events" or event.get("detail-type") == "Scheduled Event"


def make_handler(service_factory: Callable[[], HealthcheckService]) -> Handler:
    def handle(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
        event = event or {}
        try:
            service = service_factory()
            if is_scheduled_event(event):
                service.tick()
                return dict(OK_RESPONSE)
            result = service.invoke(extract_source_ip(event))
        except Exception as e:
            logger.error(f"Invocation aborted: {e}", exc_info=True)
            return dict(FAILURE_RESPONSE)
        return result.to_response()

    return handle


@functools.lru_cache(maxsize=1)
def _container_service() -> HealthcheckService:
    """One service per warm container."""
    settings = Settings.load()
    logging.getLogger().setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    errors = settings.validate()
    if errors:
        raise ValueError("Invalid configuration: " + "; ".join(errors))
    if os.environ.get("STATE_PATH"):
        state_store: StateStore = StateStore(settings.state_path)
    else:
        state_store = MemoryStateStore()
    return build_service(settings, state_store=state_store)


handler = make_handler(_container_service)
