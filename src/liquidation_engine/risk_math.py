"""Solvency math for lending positions. Pure functions, no I/O.

Every function takes an explicit ``decimal.Context``. The default context has
36 significant digits and rounds toward zero so solvency is never overstated.
The process-wide decimal context is never read or modified here.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Context, Decimal, InvalidOperation

from liquidation_engine.errors import InvalidInput

DEFAULT_PRECISION = 36
MIN_PRECISION = 30

ZERO = Decimal("0")
ONE = Decimal("1")

Numeric = Decimal | int | str | float


def make_context(precision: int = DEFAULT_PRECISION) -> Context:
    """Build the arithmetic context used throughout risk math."""
    if precision < MIN_PRECISION:
        raise InvalidInput(
            f"precision must be at least {MIN_PRECISION} digits", precision=precision
        )
    return Context(prec=precision, rounding=ROUND_DOWN)


DEFAULT_CONTEXT = make_context()

# Positions store amounts and health factors as Numeric(36, 18).
STORAGE_EXPONENT = Decimal("1e-18")
_STORAGE_CONTEXT = Context(prec=60, rounding=ROUND_DOWN)


def to_decimal(value: Numeric | None, field: str) -> Decimal:
    """Coerce a stored or user-supplied number to a finite Decimal."""
    if value is None or value == "":
        raise InvalidInput(f"{field} is required", field=field)
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be numeric", field=field, value=value)
    try:
        # str() first so floats keep their shortest repr instead of binary noise
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidInput(f"{field} must be numeric", field=field, value=value) from None
    if not result.is_finite():
        raise InvalidInput(f"{field} must be finite", field=field, value=value)
    return result


def _non_negative(value: Numeric | None, field: str) -> Decimal:
    result = to_decimal(value, field)
    if result < ZERO:
        raise InvalidInput(f"{field} must not be negative", field=field, value=result)
    return result


def _positive(value: Numeric | None, field: str) -> Decimal:
    result = to_decimal(value, field)
    if result <= ZERO:
        raise InvalidInput(f"{field} must be positive", field=field, value=result)
    return result


def _fraction(value: Numeric | None, field: str) -> Decimal:
    result = _positive(value, field)
    if result > ONE:
        raise InvalidInput(f"{field} must be in (0, 1]", field=field, value=result)
    return result


def health_factor(
    collateral_amount: Numeric,
    debt_amount: Numeric,
    collateral_price: Numeric,
    debt_price: Numeric,
    liquidation_threshold: Numeric,
    ctx: Context = DEFAULT_CONTEXT,
) -> Decimal | None:
    """Risk-adjusted collateral value over debt value.

    Returns ``None`` for a position without debt, which stands for an
    infinite health factor.
    """
    collateral = _non_negative(collateral_amount, "collateral_amount")
    debt = _non_negative(debt_amount, "debt_amount")
    c_price = _positive(collateral_price, "collateral_price")
    d_price = _positive(debt_price, "debt_price")
    threshold = _fraction(liquidation_threshold, "liquidation_threshold")

    if debt == ZERO:
        return None

    risk_adjusted = ctx.multiply(ctx.multiply(collateral, c_price), threshold)
    debt_value = ctx.multiply(debt, d_price)
    return ctx.divide(risk_adjusted, debt_value)


def loan_to_value(
    collateral_amount: Numeric,
    debt_amount: Numeric,
    collateral_price: Numeric,
    debt_price: Numeric,
    ctx: Context = DEFAULT_CONTEXT,
) -> Decimal:
    """Debt value over raw collateral value; 0 when there is no collateral."""
    collateral = _non_negative(collateral_amount, "collateral_amount")
    debt = _non_negative(debt_amount, "debt_amount")
    c_price = _positive(collateral_price, "collateral_price")
    d_price = _positive(debt_price, "debt_price")

    if collateral == ZERO:
        return ZERO

    collateral_value = ctx.multiply(collateral, c_price)
    debt_value = ctx.multiply(debt, d_price)
    return ctx.divide(debt_value, collateral_value)


def max_borrowable(
    collateral_amount: Numeric,
    collateral_price: Numeric,
    debt_price: Numeric,
    max_ltv: Numeric,
    ctx: Context = DEFAULT_CONTEXT,
) -> Decimal:
    """Debt-asset amount borrowable against the collateral at ``max_ltv``."""
    collateral = _non_negative(collateral_amount, "collateral_amount")
    c_price = _positive(collateral_price, "collateral_price")
    d_price = _positive(debt_price, "debt_price")
    ltv = _fraction(max_ltv, "max_ltv")

    max_debt_value = ctx.multiply(ctx.multiply(collateral, c_price), ltv)
    return ctx.divide(max_debt_value, d_price)


def max_withdrawable(
    collateral_amount: Numeric,
    debt_amount: Numeric,
    collateral_price: Numeric,
    debt_price: Numeric,
    liquidation_threshold: Numeric,
    ctx: Context = DEFAULT_CONTEXT,
) -> Decimal:
    """Collateral that can leave the position while keeping health factor >= 1."""
    collateral = _non_negative(collateral_amount, "collateral_amount")
    debt = _non_negative(debt_amount, "debt_amount")
    c_price = _positive(collateral_price, "collateral_price")
    d_price = _positive(debt_price, "debt_price")
    threshold = _fraction(liquidation_threshold, "liquidation_threshold")

    if debt == ZERO:
        return collateral

    debt_value = ctx.multiply(debt, d_price)
    min_collateral_value = ctx.divide(debt_value, threshold)
    min_collateral_amount = ctx.divide(min_collateral_value, c_price)
    return max(ctx.subtract(collateral, min_collateral_amount), ZERO)


def liquidation_seizure(
    debt_to_cover: Numeric,
    debt_price: Numeric,
    collateral_price: Numeric,
    liquidation_bonus: Numeric,
    ctx: Context = DEFAULT_CONTEXT,
) -> tuple[Decimal, Decimal]:
    """Collateral owed to a liquidator repaying ``debt_to_cover``.

    Returns ``(collateral_to_seize, bonus_amount)``, both in collateral units.
    Does not check the amount against the position's collateral.
    """
    debt = _non_negative(debt_to_cover, "debt_to_cover")
    d_price = _positive(debt_price, "debt_price")
    c_price = _positive(collateral_price, "collateral_price")
    bonus_rate = _non_negative(liquidation_bonus, "liquidation_bonus")

    debt_in_collateral = ctx.divide(ctx.multiply(debt, d_price), c_price)
    bonus_amount = ctx.multiply(debt_in_collateral, bonus_rate)
    return ctx.add(debt_in_collateral, bonus_amount), bonus_amount


def collateral_value(
    collateral_amount: Numeric,
    collateral_price: Numeric,
    ctx: Context = DEFAULT_CONTEXT,
) -> Decimal:
    """USD value of the collateral, unadjusted."""
    collateral = _non_negative(collateral_amount, "collateral_amount")
    c_price = _positive(collateral_price, "collateral_price")
    return ctx.multiply(collateral, c_price)


def quantize_for_storage(value: Decimal | None) -> Decimal | None:
    """Truncate to 18 decimal places before a value is written to a Numeric(36, 18) column.

    The database would round to nearest instead, which can lift a health
    factor just under 1.0 to exactly 1.0.
    """
    if value is None:
        return None
    return value.quantize(STORAGE_EXPONENT, rounding=ROUND_DOWN, context=_STORAGE_CONTEXT)
