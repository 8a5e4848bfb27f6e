"""Unit tests for observed address discovery and validation."""

from unittest.mock import MagicMock

import pytest
import requests

from eureka_dns.address import discover_public_address, validate_address
from eureka_dns.errors import AddressUnavailable


def test_validate_address_strips_whitespace() -> None:
    """Surrounding whitespace should be removed."""
    assert validate_address(" 203.0.113.7\n") == "203.0.113.7"


@pytest.mark.parametrize("value", [None, "", "   ", "example.com", "256.1.1.1", "2001:db8::1", 42])
def test_validate_address_rejects(value) -> None:
    """Anything but an IPv4 address should be rejected."""
    with pytest.raises(AddressUnavailable):
        validate_address(value)


def test_discover_public_address_reads_echo_body() -> None:
    """The echo service body should be the address."""
    session = MagicMock()
    response = MagicMock()
    response.text = "203.0.113.7\n"
    session.get.return_value = response

    address = discover_public_address("https://checkip.example.com", timeout=3, session=session)

    assert address == "203.0.113.7"
    session.get.assert_called_once_with("https://checkip.example.com", timeout=3)


def test_discover_public_address_network_error() -> None:
    """Network errors should become AddressUnavailable."""
    session = MagicMock()
    session.get.side_effect = requests.exceptions.ConnectTimeout("timed out")

    with pytest.raises(AddressUnavailable, match="lookup"):
        discover_public_address(session=session)


def test_discover_public_address_garbage_body() -> None:
    """A non-address body should be rejected."""
    session = MagicMock()
    response = MagicMock()
    response.text = "<html>captive portal</html>"
    session.get.return_value = response

    with pytest.raises(AddressUnavailable):
        discover_public_address(session=session)
