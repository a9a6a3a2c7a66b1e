"""Tests for liquidator address and amount validation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from liquidation_engine.errors import InvalidInput
from liquidation_engine.validation import validate_address, validate_amount


class TestValidateAddress:
    @pytest.mark.parametrize("address", ["0x1", "0xABCdef0123", "0x" + "f" * 64])
    def test_valid(self, address):
        assert validate_address(address) == address

    @pytest.mark.parametrize(
        "address", ["", "1234", "0x", "0xZZ", "0x" + "a" * 65, None, 123]
    )
    def test_invalid(self, address):
        with pytest.raises(InvalidInput) as exc:
            validate_address(address, "liquidator_address")
        assert exc.value.details["field"] == "liquidator_address"


class TestValidateAmount:
    def test_parses_string(self):
        assert validate_amount("1.5") == Decimal("1.5")

    @pytest.mark.parametrize("amount", ["0", "-1", "abc", None, "1e37", "1e36"])
    def test_invalid(self, amount):
        with pytest.raises(InvalidInput):
            validate_amount(amount, "debt_to_cover")

    def test_largest_storable_amount(self):
        amount = "999999999999999999.999999999999999999"
        assert validate_amount(amount) == Decimal(amount)

    def test_upper_bound_exclusive(self):
        with pytest.raises(InvalidInput):
            validate_amount("1e18", "debt_to_cover")

    def test_error_code(self):
        with pytest.raises(InvalidInput) as exc:
            validate_amount("0")
        assert exc.value.to_dict()["code"] == "invalid_input"
