"""Tests for PositionRiskService on-demand metrics."""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import make_position

from liquidation_engine.errors import PositionNotActive, PositionNotFound
from liquidation_engine.models.position import PositionStatus
from liquidation_engine.position_risk_service import PositionRiskService


@pytest.fixture
def service(position_repo, pool_repo, oracle):
    return PositionRiskService(position_repo, pool_repo, oracle)


class TestRefreshHealth:
    async def test_persists_health_factor(self, service, position_repo):
        position = position_repo.add(make_position(debt_amount=Decimal("20000")))

        hf = await service.refresh_health(position.id)

        assert hf == Decimal("1")
        assert position_repo.positions[position.id].health_factor == Decimal("1")

    async def test_requests_uncached_prices(self, service, position_repo, oracle):
        position = position_repo.add(make_position(debt_amount=Decimal("20000")))

        await service.refresh_health(position.id)

        oracle.get_prices.assert_awaited_once_with({"ETH", "USDC"}, fresh=True)

    async def test_stored_value_truncated_to_column_scale(self, service, position_repo, oracle):
        oracle.get_prices.return_value = {
            "ETH": Decimal("2500"),
            "USDC": Decimal("1.00000000000000000001"),
        }
        position = position_repo.add(make_position(debt_amount=Decimal("20000")))

        hf = await service.refresh_health(position.id)

        assert hf == Decimal("0.999999999999999999")
        assert hf.as_tuple().exponent >= -18

    async def test_no_debt_clears_health_factor(self, service, position_repo, oracle):
        position = position_repo.add(
            make_position(debt_amount=Decimal("0"), health_factor=Decimal("3"))
        )

        assert await service.refresh_health(position.id) is None
        assert position_repo.positions[position.id].health_factor is None
        oracle.get_prices.assert_not_awaited()

    async def test_not_found(self, service):
        with pytest.raises(PositionNotFound):
            await service.refresh_health("missing")

    async def test_closed_position(self, service, position_repo):
        position = position_repo.add(make_position(status=PositionStatus.CLOSED))
        with pytest.raises(PositionNotActive):
            await service.refresh_health(position.id)


class TestGetMetrics:
    async def test_metrics(self, service, position_repo):
        position = position_repo.add(make_position(debt_amount=Decimal("10000")))

        metrics = await service.get_metrics(position.id)

        assert metrics.health_factor == Decimal("2")
        assert metrics.loan_to_value == Decimal("0.4")
        assert metrics.max_borrowable == Decimal("18750")
        assert metrics.max_withdrawable == Decimal("5")
        assert metrics.collateral_price == Decimal("2500")

    async def test_metrics_may_use_cached_prices(self, service, position_repo, oracle):
        position = position_repo.add(make_position(debt_amount=Decimal("10000")))

        await service.get_metrics(position.id)

        oracle.get_prices.assert_awaited_once_with({"ETH", "USDC"}, fresh=False)
