"""Input validation for caller-supplied liquidation parameters."""

from __future__ import annotations

import re
from decimal import Decimal

from liquidation_engine.errors import InvalidInput
from liquidation_engine.risk_math import ZERO, Numeric, to_decimal

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")
# Numeric(36, 18) leaves 18 integer digits.
MAX_AMOUNT = Decimal("1e18")


def validate_address(address: object, field: str = "address") -> str:
    """Starknet felt address: ``0x`` followed by 1-64 hex digits."""
    if not isinstance(address, str) or not address:
        raise InvalidInput(f"{field} must be a string", field=field, address=address)
    if not ADDRESS_RE.match(address):
        raise InvalidInput(f"{field} has invalid format", field=field, address=address)
    return address


def validate_amount(amount: Numeric | None, field: str = "amount") -> Decimal:
    """Strictly positive amount that fits a Numeric(36, 18) column (below 1e18)."""
    value = to_decimal(amount, field)
    if value <= ZERO:
        raise InvalidInput(f"{field} must be greater than zero", field=field, amount=value)
    if value >= MAX_AMOUNT:
        raise InvalidInput(
            f"{field} exceeds maximum allowed value",
            field=field,
            amount=value,
            max_amount=MAX_AMOUNT,
        )
    return value
