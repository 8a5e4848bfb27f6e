"""DNS provider interface and the Route 53 implementation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from eureka_dns.errors import ProviderError
from eureka_dns.models import DNSRecord

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    """Canonical form for comparing record names (no trailing dot, lowercase)."""
    return name.strip().rstrip(".").lower()


# =============================================================================
# DNS Provider Interface
# =============================================================================


class DNSProvider(ABC):
    """Abstract base class for DNS providers.

    Implementations raise :class:`ProviderError` for any API failure instead
    of returning partial results; the caller decides how a failure is counted.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name for logging."""
        pass

    @abstractmethod
    def test_connection(self, zone_id: str) -> bool:
        """Test that the zone can be read with the configured credentials."""
        pass

    @abstractmethod
    def list_record_sets(self, zone_id: str) -> List[DNSRecord]:
        """Return every record set in the zone."""
        pass

    @abstractmethod
    def upsert_record_set(
        self, zone_id: str, name: str, record_type: str, values: Iterable[str], ttl: int
    ) -> Any:
        """Create or replace a record set and return the provider's acknowledgement."""
        pass

    def find_record(self, zone_id: str, name: str, record_type: str = "A") -> Optional[DNSRecord]:
        wanted = normalize_name(name)
        for record in self.list_record_sets(zone_id):
            if normalize_name(record.name) == wanted and record.type == record_type:
                return record
        return None


# =============================================================================
# Route 53
# =============================================================================


class Route53DNSProvider(DNSProvider):
    """Amazon Route 53 provider.

    Retries are disabled on the client: a failed call fails the invocation
    and the next scheduled invocation is the retry.
    """

    def __init__(self, client: Any = None, *, timeout_seconds: float = 30.0, region: str = ""):
        if client is None:
            config = Config(
                connect_timeout=timeout_seconds,
                read_timeout=timeout_seconds,
                retries={"total_max_attempts": 1, "mode": "standard"},
            )
            kwargs: Dict[str, Any] = {"config": config}
            if region:
                kwargs["region_name"] = region
            client = boto3.client("route53", **kwargs)
        self._client = client

    @property
    def name(self) -> str:
        return "Route 53"

    def test_connection(self, zone_id: str) -> bool:
        try:
            self._client.list_resource_record_sets(HostedZoneId=zone_id, MaxItems="1")
            logger.info(f"{self.name} connection successful")
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to connect to {self.name}: {e}")
            return False

    def list_record_sets(self, zone_id: str) -> List[DNSRecord]:
        records: List[DNSRecord] = []
        try:
            paginator = self._client.get_paginator("list_resource_record_sets")
            for page in paginator.paginate(HostedZoneId=zone_id):
                for item in page.get("ResourceRecordSets", []):
                    records.append(self._to_record(zone_id, item))
        except (ClientError, BotoCoreError) as e:
            raise ProviderError(f"Failed to list record sets in zone {zone_id}: {e}", e) from e
        return records

    def upsert_record_set(
        self, zone_id: str, name: str, record_type: str, values: Iterable[str], ttl: int
    ) -> Any:
        change_batch = {
            "Comment": "eureka-dns address update",
            "Changes": [
                {
                    "Action": "UPSERT",
                    "ResourceRecordSet": {
                        "Name": name,
                        "Type": record_type,
                        "TTL": ttl,
                        "ResourceRecords": [{"Value": v} for v in sorted(values)],
                    },
                }
            ],
        }
        try:
            response = self._client.change_resource_record_sets(
                HostedZoneId=zone_id, ChangeBatch=change_batch
            )
        except (ClientError, BotoCoreError) as e:
            raise ProviderError(f"Failed to upsert {name} in zone {zone_id}: {e}", e) from e
        change_info = response.get("ChangeInfo", {})
        logger.debug(f"Upsert accepted: {change_info.get('Id')} ({change_info.get('Status')})")
        return change_info

    @staticmethod
    def _to_record(zone_id: str, item: Dict[str, Any]) -> DNSRecord:
        # Alias records carry AliasTarget instead of ResourceRecords.
        values = frozenset(
            str(r["Value"]) for r in item.get("ResourceRecords") or [] if r.get("Value")
        )
        return DNSRecord(
            zone_id=zone_id,
            name=str(item.get("Name", "")),
            type=str(item.get("Type", "")),
            values=values,
            ttl=int(item.get("TTL", 0)),
        )


# =============================================================================
# Provider Registry
# =============================================================================


def create_dns_provider(provider: str, *, timeout_seconds: float, region: str = "") -> DNSProvider:
    """Factory function to create the configured DNS provider."""
    if provider == "route53":
        return Route53DNSProvider(timeout_seconds=timeout_seconds, region=region)
    raise ValueError(f"Unsupported DNS provider: '{provider}'. Supported providers: route53")
