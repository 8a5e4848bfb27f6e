"""Settings from environment variables and an optional YAML file.

Environment variables:

    Record:
        RECORD_NAME                  Record to keep updated (legacy: APP_RECORD_NAME)
        HOSTED_ZONE_ID               Hosted zone holding the record (legacy: APP_HOSTEDZONE_ID)
        RECORD_TTL                   TTL written on update (default: 300)
        DNS_PROVIDER                 DNS provider type: "route53" (default: route53)
        AWS_REGION                   Region for AWS clients (default: boto3 default chain)

    Reconciliation:
        RECONCILE_TIMEOUT_SECONDS    Bound on one invocation (default: 30)
        IP_LOOKUP_URL                Echo service used when no source address is supplied
                                     (default: https://checkip.amazonaws.com)

    Monitoring:
        LAMBDA_INVOCATION_PERIOD     Seconds between scheduled invocations (default: 1800)
        EVALUATION_PERIODS           Buckets per invocation period for the missing
                                     invocations alarm (default: 3)
        ERROR_THRESHOLD              Error alarm fires when failures exceed this (default: 0)
        MISSING_DATA_TREATMENT       Missing invocations alarm policy for empty buckets:
                                     breaching, notBreaching, ignore, missing (default: breaching)

    Notifications:
        SNS_TOPIC_ARN                Topic receiving alarm transitions (optional)
        NOTIFY_WEBHOOK_URL           Webhook receiving alarm transitions (optional)

    Runtime:
        SYNC_MODE                    "once", "watch" or "evaluate" (default: watch)
        POLL_INTERVAL_SECONDS        Alarm evaluation interval in watch mode (default: 60)
        STATE_PATH                   JSON state file path (default: /data/state.json)
        LOG_LEVEL                    DEBUG, INFO, WARNING, ERROR (default: INFO)
        EUREKA_CONFIG_PATH           YAML file with the same settings in snake_case (optional).
                                     Environment variables take precedence.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Mapping, Optional

import yaml

from eureka_dns.address import DEFAULT_IP_LOOKUP_URL
from eureka_dns.monitors import MissingDataTreatment

logger = logging.getLogger(__name__)

SYNC_MODES = ("once", "watch", "evaluate")
DNS_PROVIDERS = ("route53",)

# Legacy names used by earlier Lambda deployments.
ENV_ALIASES = {
    "record_name": ("RECORD_NAME", "APP_RECORD_NAME"),
    "hosted_zone_id": ("HOSTED_ZONE_ID", "APP_HOSTEDZONE_ID"),
}


@dataclass(frozen=True)
class Settings:
    record_name: str = ""
    hosted_zone_id: str = ""
    record_ttl: int = 300
    dns_provider: str = "route53"
    aws_region: str = ""
    reconcile_timeout_seconds: float = 30.0
    ip_lookup_url: str = DEFAULT_IP_LOOKUP_URL
    lambda_invocation_period: int = 1800
    evaluation_periods: int = 3
    error_threshold: float = 0.0
    missing_data_treatment: str = MissingDataTreatment.BREACHING.value
    sns_topic_arn: str = ""
    notify_webhook_url: str = ""
    sync_mode: str = "watch"
    poll_interval_seconds: int = 60
    state_path: str = "/data/state.json"
    log_level: str = "INFO"

    @classmethod
    def load(
        cls, environ: Optional[Mapping[str, str]] = None, config_path: Optional[str] = None
    ) -> "Settings":
        """Build settings from a YAML file overlaid with environment variables."""
        env = os.environ if environ is None else environ
        path = config_path if config_path is not None else env.get("EUREKA_CONFIG_PATH", "")

        raw: Dict[str, Any] = {}
        if path:
            raw.update(load_config_file(path))

        for f in fields(cls):
            for var in ENV_ALIASES.get(f.name, (f.name.upper(),)):
                value = env.get(var)
                if value is not None and value.strip() != "":
                    raw[f.name] = value.strip()
                    break

        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Settings":
        known = {f.name: f for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in raw.items():
            if key not in known:
                logger.warning(f"Ignoring unknown setting '{key}'")
                continue
            if value is None:
                continue
            default = known[key].default
            try:
                if isinstance(default, int):
                    kwargs[key] = int(value)
                elif isinstance(default, float):
                    kwargs[key] = float(value)
                else:
                    kwargs[key] = str(value).strip()
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid value for {key}: {value!r} ({e})") from e
        kwargs["sync_mode"] = str(kwargs.get("sync_mode", cls.sync_mode)).lower()
        kwargs["dns_provider"] = str(kwargs.get("dns_provider", cls.dns_provider)).lower()
        return cls(**kwargs)

    @property
    def missing_data(self) -> MissingDataTreatment:
        return MissingDataTreatment.parse(self.missing_data_treatment)

    def validate(self) -> List[str]:
        """Return a list of configuration errors (empty when valid)."""
        errors = []

        if not self.record_name:
            errors.append("RECORD_NAME is required")
        if not self.hosted_zone_id:
            errors.append("HOSTED_ZONE_ID is required")
        if self.dns_provider not in DNS_PROVIDERS:
            errors.append(
                f"Unsupported DNS_PROVIDER: {self.dns_provider}. Supported: {', '.join(DNS_PROVIDERS)}"
            )
        if self.record_ttl <= 0:
            errors.append("RECORD_TTL must be positive")
        if self.reconcile_timeout_seconds <= 0:
            errors.append("RECONCILE_TIMEOUT_SECONDS must be positive")
        if self.evaluation_periods < 1:
            errors.append("EVALUATION_PERIODS must be at least 1")
        elif self.lambda_invocation_period // self.evaluation_periods < 1:
            errors.append(
                "LAMBDA_INVOCATION_PERIOD must be at least EVALUATION_PERIODS seconds "
                "so each evaluation bucket is non-empty"
            )
        if self.error_threshold < 0:
            errors.append("ERROR_THRESHOLD must not be negative")
        try:
            MissingDataTreatment.parse(self.missing_data_treatment)
        except ValueError as e:
            errors.append(str(e))
        if self.sync_mode not in SYNC_MODES:
            errors.append(
                f"Invalid SYNC_MODE: {self.sync_mode}. Use one of: {', '.join(SYNC_MODES)}"
            )
        if self.poll_interval_seconds <= 0:
            errors.append("POLL_INTERVAL_SECONDS must be positive")

        return errors


def load_config_file(path: str) -> Dict[str, Any]:
    """Read settings from a YAML mapping; a missing file yields no settings."""
    if not os.path.exists(path):
        logger.warning(f"Config file {path} does not exist, using environment only")
        return {}
    with open(path, "r") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data


def get_config_file_mtime(config_path: str) -> float:
    """Get modification time of config file, returns 0 if file doesn't exist."""
    try:
        return os.path.getmtime(config_path) if os.path.exists(config_path) else 0.0
    except OSError:
        return 0.0
