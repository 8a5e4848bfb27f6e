#!/usr/bin/env python3
"""eureka-dns - keep a DNS A record on a dynamic public address

Reconciles one Route 53 record with the public address of the host it runs
on (or of the caller, when deployed behind a function URL), and watches its
own invocations so operators hear about it when updates stop happening or
start failing.

Alarms:
    MissingInvocations   No invocation in EVALUATION_PERIODS consecutive buckets of
                         LAMBDA_INVOCATION_PERIOD / EVALUATION_PERIODS seconds.
    ErrorRate            More than ERROR_THRESHOLD failed invocations within one
                         LAMBDA_INVOCATION_PERIOD.

Notifications are sent on the edges into ALARM and from ALARM back to OK.

Modes (SYNC_MODE):
    watch      Invoke every LAMBDA_INVOCATION_PERIOD and evaluate alarms every poll.
    once       Run one invocation and exit 0 on success, 1 on failure.
    evaluate   Only evaluate alarms from STATE_PATH and exit. Run it from a
               separate schedule (cron) so stalled `once` runs are reported.

See eureka_dns.config for the environment variables.
"""

from __future__ import annotations

import logging
import os
import sys
import time
from typing import Callable, Optional

from eureka_dns.address import discover_public_address
from eureka_dns.config import Settings, get_config_file_mtime
from eureka_dns.errors import AddressUnavailable
from eureka_dns.service import HealthcheckService, build_service

logger = logging.getLogger("eureka_dns")


# =============================================================================
# Logging Setup
# =============================================================================


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))


# =============================================================================
# Runtime
# =============================================================================


def observe_address(settings: Settings) -> Optional[str]:
    """Public address of this host, or None when the lookup failed."""
    try:
        return discover_public_address(
            settings.ip_lookup_url, timeout=min(10.0, settings.reconcile_timeout_seconds)
        )
    except AddressUnavailable as e:
        logger.error(f"{e}")
        return None


def run_once(service: HealthcheckService, settings: Settings) -> bool:
    event = service.invoke(observe_address(settings))
    return not event.failed


class Watcher:
    """Polling loop for ``SYNC_MODE=watch``.

    Alarms are evaluated every poll so a stalled loop is reported. Invocations
    run on a fixed cadence of one invocation period, measured from the previous
    scheduled time rather than from the poll that ran it.
    """

    def __init__(
        self,
        service: HealthcheckService,
        settings: Settings,
        *,
        config_path: str = "",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        service_factory: Callable[[Settings], HealthcheckService] = build_service,
        settings_loader: Callable[[], Settings] = Settings.load,
    ):
        self.service = service
        self.settings = settings
        self.config_path = config_path
        self._clock = clock
        self._sleep = sleep
        self._service_factory = service_factory
        self._settings_loader = settings_loader
        self._next_invocation: Optional[float] = None
        self._config_mtime = get_config_file_mtime(config_path) if config_path else 0.0

    def step(self) -> None:
        now = self._clock()
        if self._next_invocation is None or now >= self._next_invocation:
            self._schedule_next(now)
            run_once(self.service, self.settings)
        else:
            self.service.tick()
        self._reload_if_changed()

    def run(self, max_steps: Optional[int] = None) -> None:
        steps = 0
        while max_steps is None or steps < max_steps:
            self.step()
            steps += 1
            if max_steps is None or steps < max_steps:
                self._sleep(self._sleep_interval())

    def _schedule_next(self, now: float) -> None:
        period = self.settings.lambda_invocation_period
        if self._next_invocation is None or now - self._next_invocation >= period:
            self._next_invocation = now + period
        else:
            self._next_invocation += period

    def _sleep_interval(self) -> float:
        interval = float(max(5, self.settings.poll_interval_seconds))
        if self._next_invocation is not None:
            interval = min(interval, max(0.0, self._next_invocation - self._clock()))
        return interval

    def _reload_if_changed(self) -> None:
        if not self.config_path:
            return
        mtime = get_config_file_mtime(self.config_path)
        if mtime == self._config_mtime:
            return
        self._config_mtime = mtime
        logger.info(f"Config change detected in: {self.config_path}")

        try:
            settings = self._settings_loader()
            errors = settings.validate()
            if errors:
                raise ValueError("; ".join(errors))
            self.service = self._service_factory(settings)
            self.settings = settings
            self._next_invocation = None
            logger.info(f"Reloaded configuration for {settings.record_name}, invoking on next poll")
        except Exception as e:
            logger.error(f"Failed to reload configuration: {e}", exc_info=True)
            logger.warning("Continuing with previous configuration")


# =============================================================================
# Main
# =============================================================================


def format_alarm_states(service: HealthcheckService) -> str:
    states = service.alarm_states().items()
    return ", ".join(f"{kind}={state.status.value}" for kind, state in states)


def validate_config(settings: Settings) -> bool:
    """Validate configuration."""
    errors = settings.validate()
    if not settings.sns_topic_arn and not settings.notify_webhook_url:
        logger.warning("SNS_TOPIC_ARN/NOTIFY_WEBHOOK_URL not set. Alarms will only be logged.")

    if errors:
        for error in errors:
            logger.error(error)
        return False

    return True


def main():
    """Main entry point."""
    try:
        settings = Settings.load()
    except ValueError as e:
        configure_logging("INFO")
        logger.error(f"Configuration validation failed: {e}")
        sys.exit(1)

    configure_logging(settings.log_level)
    logger.info(f"eureka-dns: {settings.record_name} in {settings.hosted_zone_id}")

    # Validate configuration
    if not validate_config(settings):
        logger.error("Configuration validation failed")
        sys.exit(1)

    try:
        service = build_service(settings)
    except Exception as e:
        logger.error(f"Failed to set up clients: {e}", exc_info=True)
        sys.exit(1)
    provider = service.reconciler.dns_provider

    logger.info(f"DNS Provider: {provider.name}")
    logger.info(f"Notifier: {service.notifier.name}")
    logger.info(
        f"Invocation period: {settings.lambda_invocation_period}s "
        f"({settings.evaluation_periods} evaluation periods, "
        f"missing data {settings.missing_data.value})"
    )
    logger.info(f"Sync mode: {settings.sync_mode}")

    if settings.sync_mode == "evaluate":
        service.tick()
        logger.info(f"Alarm states: {format_alarm_states(service)}")
        sys.exit(0)

    # Test connection
    if not provider.test_connection(settings.hosted_zone_id):
        logger.error(f"Cannot connect to {provider.name}. Exiting.")
        sys.exit(1)

    try:
        if settings.sync_mode == "once":
            sys.exit(0 if run_once(service, settings) else 1)

        logger.info(f"Poll interval: {settings.poll_interval_seconds}s")
        Watcher(service, settings, config_path=os.environ.get("EUREKA_CONFIG_PATH", "")).run()

    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
