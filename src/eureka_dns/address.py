"""Observed address discovery and validation."""

from __future__ import annotations

import ipaddress
import logging

import requests

from eureka_dns.errors import AddressUnavailable

logger = logging.getLogger(__name__)

DEFAULT_IP_LOOKUP_URL = "https://checkip.amazonaws.com"


def validate_address(value: object) -> str:
    """Return ``value`` as a canonical IPv4 string or raise AddressUnavailable."""
    if not isinstance(value, str) or not value.strip():
        raise AddressUnavailable("No observed source address")
    try:
        return str(ipaddress.IPv4Address(value.strip()))
    except (ipaddress.AddressValueError, ValueError) as e:
        raise AddressUnavailable(f"Observed address {value!r} is not an IPv4 address: {e}") from e


def discover_public_address(
    url: str = DEFAULT_IP_LOOKUP_URL,
    *,
    timeout: float = 5.0,
    session: requests.Session | None = None,
) -> str:
    """Ask an echo service which address our requests come from.

    Used when no trigger supplies a source address, e.g. when running from a
    host behind the dynamic connection itself.
    """
    http = session or requests.Session()
    try:
        response = http.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise AddressUnavailable(f"Public address lookup via {url} failed: {e}") from e

    address = validate_address(response.text)
    logger.debug(f"Public address from {url}: {address}")
    return address
