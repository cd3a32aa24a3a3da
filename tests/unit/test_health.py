"""Unit tests for the health calculator."""
from __future__ import annotations

from decimal import Decimal

import pytest

from credit_guard.config import RiskConfig
from credit_guard.health import (
    INFINITE_HEALTH,
    MAX_RISK_LTV,
    auto_repay_amount,
    compute_health,
    effective_max_ltv_bps,
    health_factor,
    is_healthy,
    liquidation_price,
    ltv,
    ltv_at_least,
    ltv_bps,
    ltv_exceeds,
    max_additional_borrow,
    reputation_bonus_bps,
)
from credit_guard.models import (
    CollateralEntry,
    DebtEntry,
    GadConfig,
    Position,
    Reputation,
)

from conftest import OWNER, SOL, USDC

PRICES = {"SOL": 100 * USDC, "USDC": USDC}


class TestLtv:
    def test_no_debt_is_zero(self) -> None:
        assert ltv(0, 0) == 0
        assert ltv(1000, 0) == 0

    def test_debt_without_collateral_is_max_risk(self) -> None:
        assert ltv(0, 500) == MAX_RISK_LTV
        assert ltv_bps(0, 500) == 10_000

    def test_ratio(self) -> None:
        assert ltv(10_000, 7_500) == Decimal(75)
        assert ltv_bps(10_000, 7_500) == 7_500

    @pytest.mark.parametrize("coll, debt", [(1, 0), (10**12, 1), (3, 2), (0, 7)])
    def test_never_negative(self, coll: int, debt: int) -> None:
        assert ltv(coll, debt) >= 0

    def test_threshold_comparisons_are_exact(self) -> None:
        assert not ltv_exceeds(10_000, 8_000, 8000)
        assert ltv_at_least(10_000, 8_000, 8000)
        assert ltv_exceeds(10_000, 8_001, 8000)

    def test_threshold_with_zero_collateral(self) -> None:
        assert ltv_exceeds(0, 1, 9500)
        assert not ltv_exceeds(0, 0, 0)


class TestHealthFactor:
    def test_infinite_without_debt(self) -> None:
        assert health_factor(1000, 0, 8500) == INFINITE_HEALTH
        assert is_healthy(INFINITE_HEALTH)

    def test_value(self) -> None:
        assert health_factor(10_000, 8_500, 8500) == Decimal(1)
        assert not is_healthy(Decimal(1))

    def test_monotonic_in_collateral(self) -> None:
        factors = [health_factor(c, 5_000, 8500) for c in (6_000, 8_000, 12_000)]
        assert factors == sorted(factors)

    def test_monotonic_in_debt(self) -> None:
        factors = [health_factor(10_000, d, 8500) for d in (9_000, 7_000, 1_000)]
        assert factors == sorted(factors)


class TestLiquidationPrice:
    def test_none_without_inputs(self) -> None:
        assert liquidation_price(Decimal(0), Decimal(100), 8500) is None
        assert liquidation_price(Decimal(10), Decimal(0), 8500) is None

    def test_price(self) -> None:
        # 100 tokens, $8,500 debt, 85% threshold → $100
        assert liquidation_price(Decimal(100), Decimal(8500), 8500) == Decimal(100)


class TestBorrowLimits:
    def test_max_additional_borrow(self) -> None:
        assert max_additional_borrow(10_000, 5_000, 7500) == 2_500
        assert max_additional_borrow(10_000, 9_000, 7500) == 0

    @pytest.mark.parametrize("score, bonus", [(0, 0), (199, 0), (250, 300), (450, 500)])
    def test_reputation_bonus(self, score: int, bonus: int) -> None:
        assert reputation_bonus_bps(score) == bonus

    def test_effective_max_capped_by_liquidation_threshold(self) -> None:
        assert effective_max_ltv_bps(7500, 300, 8500) == 7800
        assert effective_max_ltv_bps(8000, 1000, 8500) == 8500


class TestAutoRepayAmount:
    def test_repays_down_to_buffer(self) -> None:
        # $1,000 collateral, $900 debt, trigger 80%, target 75% → $150
        assert auto_repay_amount(1_000, 900, 8000, 500) == 150

    def test_nothing_below_target(self) -> None:
        assert auto_repay_amount(1_000, 700, 8000, 500) == 0

    def test_result_reaches_target(self) -> None:
        coll, debt = 1_000_003, 900_001
        repay = auto_repay_amount(coll, debt, 8000, 500)
        assert not ltv_exceeds(coll, debt - repay, 7500)


class TestComputeHealth:
    def test_snapshot(self, sample_position: Position, sample_assets) -> None:
        health = compute_health(sample_position, PRICES, sample_assets, RiskConfig())
        assert health.collateral_value == 10_000 * USDC
        assert health.debt_value == 1_000 * USDC
        assert health.ltv == Decimal(10)
        assert health.is_healthy
        assert health.available_to_borrow == 6_500 * USDC
        # $1,000 / (100 SOL * 0.85)
        assert round(health.liquidation_price, 4) == Decimal("11.7647")
        assert health.gad_active is False

    def test_empty_position(self, sample_assets) -> None:
        health = compute_health(Position(owner=OWNER), {}, sample_assets, RiskConfig())
        assert health.ltv == 0
        assert health.health_factor == INFINITE_HEALTH
        assert health.liquidation_price is None
        assert health.available_to_borrow == 0

    def test_reputation_raises_headroom(self, sample_assets) -> None:
        position = Position(
            owner=OWNER,
            collateral=(CollateralEntry("SOL", 100 * SOL),),
            reputation=Reputation(successful_repayments=10),
        )
        health = compute_health(position, PRICES, sample_assets, RiskConfig())
        # score 500 → +500 bps on top of 75%
        assert health.available_to_borrow == 8_000 * USDC

    def test_gad_active_flag(self, risky_position: Position, sample_assets) -> None:
        gad = GadConfig(enabled=True, start_threshold_bps=8000)
        health = compute_health(risky_position, PRICES, sample_assets, RiskConfig(), gad)
        assert health.gad_active is True

        disabled = GadConfig(enabled=False, start_threshold_bps=8000)
        health = compute_health(risky_position, PRICES, sample_assets, RiskConfig(), disabled)
        assert health.gad_active is False

    def test_debt_includes_interest(self, sample_assets) -> None:
        position = Position(
            owner=OWNER,
            collateral=(CollateralEntry("SOL", 10 * SOL),),
            debts=(DebtEntry("USDC", 100 * USDC, 5 * USDC),),
        )
        health = compute_health(position, PRICES, sample_assets, RiskConfig())
        assert health.debt_value == 105 * USDC
