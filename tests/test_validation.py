"""Tests for registration input validation."""

from __future__ import annotations

import pytest

from termfleet.validation import (
    InvalidInput,
    validate_ipv4,
    validate_registration,
    validate_workstation_name,
)


class TestWorkstationName:
    @pytest.mark.parametrize("name", ["abc", "desk-01", "A1b", "a" * 63, "0-0"])
    def test_valid(self, name):
        assert validate_workstation_name(name) == name

    @pytest.mark.parametrize("name", [
        "ab",
        "a" * 64,
        "-desk",
        "desk-",
        "desk_1",
        "desk.one",
        "dësk",
        "desk1\n",
    ])
    def test_invalid(self, name):
        with pytest.raises(InvalidInput):
            validate_workstation_name(name)

    @pytest.mark.parametrize("name", [None, "", 123])
    def test_missing_or_wrong_type(self, name):
        with pytest.raises(InvalidInput, match="required"):
            validate_workstation_name(name)


class TestIPv4:
    @pytest.mark.parametrize("ip", ["0.0.0.0", "10.0.0.5", "255.255.255.255", "192.168.001.010"])
    def test_valid(self, ip):
        assert validate_ipv4(ip) == ip

    @pytest.mark.parametrize("ip", [
        "10.0.0",
        "10.0.0.5.6",
        "10.0.0.256",
        "1000.0.0.1",
        "10.0.0.x",
        "::1",
        " 10.0.0.5",
        "10.0.0.5\n",
        "١٠.0.0.5",
    ])
    def test_invalid(self, ip):
        with pytest.raises(InvalidInput):
            validate_ipv4(ip)

    def test_out_of_range_message(self):
        with pytest.raises(InvalidInput, match="between 0 and 255"):
            validate_ipv4("10.0.300.1")


def test_validate_registration_checks_both():
    assert validate_registration("desk1", "10.0.0.5") == ("desk1", "10.0.0.5")
    with pytest.raises(InvalidInput):
        validate_registration("desk1", "nope")
