"""Health calculator: pure functions over integer micro-USD values, no I/O.

Ratios are returned as ``Decimal`` for display and reporting. Decisions use
the integer helpers (``ltv_bps``, ``ltv_exceeds``, ``ltv_at_least``), which
compare by cross-multiplication and never round.
"""
from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal

from .config import AssetConfig, RiskConfig
from .models import GadConfig, HealthStatus, Position
from .units import BPS_DENOMINATOR, USD_DECIMALS, from_base_units, value_of

INFINITE_HEALTH = Decimal("Infinity")
MAX_RISK_LTV = Decimal(100)

_BPS = Decimal(BPS_DENOMINATOR)


def ltv(collateral_value: int, debt_value: int) -> Decimal:
    """Loan-to-value as a percentage.

    No debt is 0%. Debt against zero collateral has no defined ratio and is
    reported as ``MAX_RISK_LTV``.
    """
    if debt_value == 0:
        return Decimal(0)
    if collateral_value == 0:
        return MAX_RISK_LTV
    return Decimal(debt_value) / Decimal(collateral_value) * 100


def ltv_bps(collateral_value: int, debt_value: int) -> int:
    """Loan-to-value in whole basis points (floor)."""
    if debt_value == 0:
        return 0
    if collateral_value == 0:
        return BPS_DENOMINATOR
    return debt_value * BPS_DENOMINATOR // collateral_value


def ltv_exceeds(collateral_value: int, debt_value: int, threshold_bps: int) -> bool:
    """Exact ``ltv > threshold_bps / 100``."""
    if collateral_value == 0:
        return debt_value > 0
    return debt_value * BPS_DENOMINATOR > collateral_value * threshold_bps


def ltv_at_least(collateral_value: int, debt_value: int, threshold_bps: int) -> bool:
    """Exact ``ltv >= threshold_bps / 100``."""
    if collateral_value == 0:
        return debt_value > 0
    return debt_value * BPS_DENOMINATOR >= collateral_value * threshold_bps


def health_factor(
    collateral_value: int, debt_value: int, liquidation_threshold_bps: int
) -> Decimal:
    """collateral * threshold / debt; ``INFINITE_HEALTH`` without debt."""
    if debt_value == 0:
        return INFINITE_HEALTH
    return Decimal(collateral_value) * liquidation_threshold_bps / _BPS / Decimal(debt_value)


def is_healthy(factor: Decimal) -> bool:
    return factor > 1


def liquidation_price(
    collateral_amount: Decimal, debt_value: Decimal, liquidation_threshold_bps: int
) -> Decimal | None:
    """Collateral price at which the health factor reaches 1.

    ``collateral_amount`` is in whole tokens and ``debt_value`` in USD, so the
    result is USD per token.
    """
    if collateral_amount == 0 or debt_value == 0:
        return None
    return debt_value / (collateral_amount * liquidation_threshold_bps / _BPS)


def max_additional_borrow(collateral_value: int, current_debt: int, max_ltv_bps: int) -> int:
    return max(0, collateral_value * max_ltv_bps // BPS_DENOMINATOR - current_debt)


def reputation_bonus_bps(score: int) -> int:
    if score >= 400:
        return 500
    if score >= 200:
        return 300
    return 0


def effective_max_ltv_bps(
    base_max_ltv_bps: int, bonus_bps: int, liquidation_threshold_bps: int
) -> int:
    """Base max LTV plus reputation bonus, never above the liquidation threshold."""
    return min(base_max_ltv_bps + bonus_bps, liquidation_threshold_bps)


def auto_repay_amount(
    collateral_value: int, debt_value: int, trigger_bps: int, buffer_bps: int = 500
) -> int:
    """Smallest repayment bringing LTV down to ``trigger - buffer``.

    The allowed debt is floored, so the returned repayment always reaches the
    target.
    """
    target_bps = max(0, trigger_bps - buffer_bps)
    target_debt = collateral_value * target_bps // BPS_DENOMINATOR
    return max(0, debt_value - target_debt)


# ---------------------------------------------------------------------------
# Position → HealthStatus
# ---------------------------------------------------------------------------


def collateral_value(
    position: Position, prices: Mapping[str, int], assets: Mapping[str, AssetConfig]
) -> int:
    return sum(
        value_of(c.amount, _decimals(assets, c.asset), prices[c.asset])
        for c in position.collateral
    )


def debt_value(
    position: Position, prices: Mapping[str, int], assets: Mapping[str, AssetConfig]
) -> int:
    return sum(
        value_of(d.total, _decimals(assets, d.asset), prices[d.asset])
        for d in position.debts
    )


def compute_health(
    position: Position,
    prices: Mapping[str, int],
    assets: Mapping[str, AssetConfig],
    risk: RiskConfig,
    gad_config: GadConfig | None = None,
) -> HealthStatus:
    """Build a HealthStatus snapshot.

    The liquidation price refers to the primary (first) collateral asset.
    Every asset of the position must have a price.
    """
    coll = collateral_value(position, prices, assets)
    debt = debt_value(position, prices, assets)
    threshold = risk.liquidation_threshold_bps

    factor = health_factor(coll, debt, threshold)

    liq_price = None
    if position.collateral:
        primary = position.collateral[0]
        liq_price = liquidation_price(
            from_base_units(primary.amount, _decimals(assets, primary.asset)),
            from_base_units(debt, USD_DECIMALS),
            threshold,
        )

    bonus = reputation_bonus_bps(position.reputation.score())
    max_ltv = effective_max_ltv_bps(risk.max_ltv_bps, bonus, threshold)

    gad_active = (
        gad_config is not None
        and gad_config.enabled
        and coll > 0
        and debt > 0
        and ltv_at_least(coll, debt, gad_config.start_threshold_bps)
    )

    return HealthStatus(
        ltv=ltv(coll, debt),
        health_factor=factor,
        liquidation_price=liq_price,
        collateral_value=coll,
        debt_value=debt,
        available_to_borrow=max_additional_borrow(coll, debt, max_ltv),
        is_healthy=is_healthy(factor),
        gad_active=gad_active,
    )


def _decimals(assets: Mapping[str, AssetConfig], asset: str) -> int:
    return assets.get(asset, AssetConfig()).decimals
