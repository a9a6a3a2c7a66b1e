"""Shared fixtures: in-memory repositories with the same claim semantics as the DB."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from liquidation_engine.models.liquidation import LiquidationRecord
from liquidation_engine.models.position import Pool, Position, PositionStatus

POOL_ADDRESS = "0x4c3a"
LIQUIDATOR = "0x1234abcd"


class InMemoryPositionRepo:
    def __init__(self) -> None:
        self.positions: dict[str, Position] = {}
        self.claims: dict[str, tuple[str, datetime]] = {}
        self.health_updates: list[tuple[str, Decimal | None]] = []

    def add(self, position: Position) -> Position:
        self.positions[position.id] = position
        return position

    async def get(self, position_id: str) -> Position | None:
        await asyncio.sleep(0)
        position = self.positions.get(position_id)
        return position.model_copy() if position is not None else None

    async def get_active(self) -> list[Position]:
        active = [p for p in self.positions.values() if p.status is PositionStatus.ACTIVE]
        return sorted(
            (p.model_copy() for p in active),
            key=lambda p: (p.health_factor is None, p.health_factor or Decimal("0")),
        )

    async def get_liquidatable(self, threshold: Decimal = Decimal("1.0")) -> list[Position]:
        return [
            p.model_copy()
            for p in self.positions.values()
            if p.status is PositionStatus.ACTIVE and p.is_liquidatable(threshold)
        ]

    async def update_health_factor(self, position_id: str, health_factor: Decimal | None) -> bool:
        self.health_updates.append((position_id, health_factor))
        position = self.positions.get(position_id)
        if position is None or position.status is not PositionStatus.ACTIVE:
            return False
        position.health_factor = health_factor
        return True

    async def claim_for_liquidation(
        self, position_id: str, claim_token: str, ttl_seconds: int = 300
    ) -> bool:
        # No await before the check-and-set: atomic within the event loop.
        now = datetime.now(timezone.utc)
        position = self.positions.get(position_id)
        if position is None or position.status is not PositionStatus.ACTIVE:
            return False
        current = self.claims.get(position_id)
        if current is not None and current[1] >= now - timedelta(seconds=ttl_seconds):
            return False
        self.claims[position_id] = (claim_token, now)
        return True

    async def release_claim(self, position_id: str, claim_token: str) -> None:
        current = self.claims.get(position_id)
        if current is not None and current[0] == claim_token:
            del self.claims[position_id]

    async def apply_liquidation(
        self,
        position_id: str,
        claim_token: str,
        collateral_amount: Decimal,
        debt_amount: Decimal,
        status: PositionStatus,
        health_factor: Decimal | None,
    ) -> Position | None:
        current = self.claims.get(position_id)
        if current is None or current[0] != claim_token:
            return None
        del self.claims[position_id]
        position = self.positions[position_id]
        position.collateral_amount = collateral_amount
        position.debt_amount = debt_amount
        position.status = status
        position.health_factor = health_factor
        position.last_updated = datetime.now(timezone.utc)
        return position.model_copy()


class InMemoryPoolRepo:
    def __init__(self, pools: list[Pool] | None = None) -> None:
        self.pools = {p.pool_address: p for p in pools or []}

    async def get_by_address(self, pool_address: str) -> Pool | None:
        return self.pools.get(pool_address)

    async def get_many(self, pool_addresses: set[str]) -> dict[str, Pool]:
        return {a: self.pools[a] for a in pool_addresses if a in self.pools}


class InMemoryLiquidationRepo:
    def __init__(self) -> None:
        self.records: list[LiquidationRecord] = []

    async def create(self, data: dict) -> LiquidationRecord:
        record = LiquidationRecord(id=str(uuid.uuid4()), **data)
        self.records.append(record)
        return record

    async def get_by_position(self, position_id: str) -> list[LiquidationRecord]:
        return [r for r in self.records if r.position_id == position_id]


def make_position(**overrides) -> Position:
    defaults = {
        "id": str(uuid.uuid4()),
        "user_id": "user-1",
        "pool_address": POOL_ADDRESS,
        "collateral_asset": "ETH",
        "debt_asset": "USDC",
        "collateral_amount": Decimal("10"),
        "debt_amount": Decimal("20000"),
        "health_factor": None,
        "status": PositionStatus.ACTIVE,
    }
    defaults.update(overrides)
    return Position(**defaults)


def make_pool(**overrides) -> Pool:
    defaults = {
        "pool_address": POOL_ADDRESS,
        "collateral_asset": "ETH",
        "debt_asset": "USDC",
        "max_ltv": Decimal("0.75"),
        "liquidation_threshold": Decimal("0.8"),
        "liquidation_bonus": Decimal("0.05"),
    }
    defaults.update(overrides)
    return Pool(**defaults)


@pytest.fixture
def position_repo():
    return InMemoryPositionRepo()


@pytest.fixture
def pool_repo():
    return InMemoryPoolRepo([make_pool()])


@pytest.fixture
def liquidation_repo():
    return InMemoryLiquidationRepo()


@pytest.fixture
def oracle():
    """Price oracle returning ETH=2500, USDC=1."""
    mock = AsyncMock()
    mock.get_prices.return_value = {"ETH": Decimal("2500"), "USDC": Decimal("1")}
    return mock


@pytest.fixture
def alert_sink():
    return AsyncMock()
