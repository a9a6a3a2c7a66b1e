"""Typed failures raised by risk math, the monitor and the liquidation path.

| Error                   | Raised when                                   | Retry?            |
|-------------------------|-----------------------------------------------|-------------------|
| InvalidInput            | malformed amount, price or address            | never             |
| PositionNotFound        | no position with that id                      | no                |
| PositionNotActive       | position is liquidated/closed                 | no                |
| LiquidationInProgress   | another executor holds the position claim     | no                |
| NotLiquidatable         | stored health factor unknown or >= 1.0        | no                |
| PoolNotFound            | position references an unknown pool           | no                |
| ExceedsDebt             | debt_to_cover > outstanding debt              | no                |
| InsufficientCollateral  | seizure would exceed available collateral     | no                |
| PriceUnavailable        | oracle failed, or a quote is missing/stale    | next tick / caller|
| TransactionFailed       | relay rejected the submission, nothing stored | yes               |
| ReconciliationRequired  | position updated, liquidation record missing  | manual            |
"""

from __future__ import annotations


class LiquidationEngineError(Exception):
    """Base class. ``code`` is stable and safe to expose to API callers."""

    code = "internal_error"

    def __init__(self, message: str, **details: object) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": {k: str(v) for k, v in self.details.items()},
        }


class InvalidInput(LiquidationEngineError):
    code = "invalid_input"


class PositionNotFound(LiquidationEngineError):
    code = "position_not_found"


class PoolNotFound(LiquidationEngineError):
    code = "pool_not_found"


class PositionNotActive(LiquidationEngineError):
    code = "position_not_active"


class LiquidationInProgress(PositionNotActive):
    code = "liquidation_in_progress"


class NotLiquidatable(LiquidationEngineError):
    code = "not_liquidatable"


class ExceedsDebt(LiquidationEngineError):
    code = "exceeds_debt"


class InsufficientCollateral(LiquidationEngineError):
    code = "insufficient_collateral"


class PriceUnavailable(LiquidationEngineError):
    code = "price_unavailable"


class TransactionFailed(LiquidationEngineError):
    code = "transaction_failed"


class ReconciliationRequired(LiquidationEngineError):
    """The chain saw the liquidation but our record of it was not persisted."""

    code = "reconciliation_required"
