"""Gradual Auto-Deleveraging (GAD) controller.

Instead of one full liquidation, an over-leveraged position sells a bounded
slice of its collateral (``step_size_bps``) at most once per
``min_interval_seconds``. Small, time-dispersed steps leave no single large
liquidation for anyone to front-run.

The state (DISABLED / ARMED / ACTIVE) is never stored: it is recomputed from
the config and live health on every call.

Sale proceeds repay debt oldest entry first; within an entry, accrued
interest is repaid before principal.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from enum import Enum

from ..config import AssetConfig, GadSettings, validate_gad_settings
from ..errors import LedgerError
from ..health import ltv_at_least
from ..interfaces.ledger import Ledger
from ..models import (
    ActionKind,
    ActionResult,
    CollateralEntry,
    DebtEntry,
    GadConfig,
    HealthStatus,
    LedgerAction,
    Position,
)
from ..units import BPS_DENOMINATOR, units_for_value, value_of
from .locks import PositionLocks
from .position_service import PositionService

logger = logging.getLogger(__name__)

NO_ACTION = "No action needed"

# Paid to the keeper out of collateral, on top of the slice sold.
KEEPER_REWARD_BPS = 50


class GadState(str, Enum):
    DISABLED = "disabled"
    ARMED = "armed"
    ACTIVE = "active"


def gad_state(config: GadConfig | None, health: HealthStatus) -> GadState:
    if config is None or not config.enabled:
        return GadState.DISABLED
    if health.collateral_value > 0 and ltv_at_least(
        health.collateral_value, health.debt_value, config.start_threshold_bps
    ):
        return GadState.ACTIVE
    return GadState.ARMED


@dataclass(frozen=True)
class GadStepPlan:
    collateral_sold: tuple[CollateralEntry, ...]
    debt_repaid: tuple[DebtEntry, ...]
    sold_value: int
    repaid_value: int
    keeper_reward: tuple[CollateralEntry, ...] = ()


@dataclass(frozen=True)
class CrankResult:
    executed: bool
    message: str
    state: GadState
    plan: GadStepPlan | None = None
    signature: str = ""


@dataclass(frozen=True)
class GadStatus:
    enabled: bool
    state: GadState
    steps_executed: int
    total_deleveraged: int
    next_step_at: int | None


def plan_step(
    position: Position,
    prices: Mapping[str, int],
    assets: Mapping[str, AssetConfig],
    step_size_bps: int,
    keeper_reward_bps: int = 0,
) -> GadStepPlan:
    """Sell ``step_size_bps`` of every collateral entry; repay oldest debt first.

    ``keeper_reward_bps`` of each sold amount is also taken from collateral
    for the keeper. It repays nothing.
    """
    sold: list[CollateralEntry] = []
    reward: list[CollateralEntry] = []
    sold_value = 0
    for entry in position.collateral:
        amount = entry.amount * step_size_bps // BPS_DENOMINATOR
        if amount > 0:
            sold.append(CollateralEntry(entry.asset, amount))
            fee = amount * keeper_reward_bps // BPS_DENOMINATOR
            if fee > 0:
                reward.append(CollateralEntry(entry.asset, fee))
            sold_value += value_of(amount, _decimals(assets, entry.asset), prices[entry.asset])

    repaid: list[DebtEntry] = []
    remaining = sold_value
    repaid_value = 0
    for entry in position.debts:
        if remaining <= 0:
            break
        decimals = _decimals(assets, entry.asset)
        price = prices[entry.asset]
        units = min(units_for_value(remaining, decimals, price), entry.total)
        if units <= 0:
            continue
        interest = min(units, entry.accrued_interest)
        repaid.append(DebtEntry(entry.asset, units - interest, interest))
        value = value_of(units, decimals, price)
        repaid_value += value
        remaining -= value

    return GadStepPlan(
        collateral_sold=tuple(sold),
        debt_repaid=tuple(repaid),
        sold_value=sold_value,
        repaid_value=repaid_value,
        keeper_reward=tuple(reward),
    )


def _decimals(assets: Mapping[str, AssetConfig], asset: str) -> int:
    return assets.get(asset, AssetConfig()).decimals


class GadController:
    """Owns GAD configs and executes at most one step per crank."""

    def __init__(
        self,
        ledger: Ledger,
        positions: PositionService,
        locks: PositionLocks,
        assets: Mapping[str, AssetConfig],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ledger = ledger
        self._positions = positions
        self._locks = locks
        self._assets = assets
        self._clock = clock
        self._configs: dict[str, GadConfig] = {}

    def config_for(self, owner: str) -> GadConfig | None:
        """Last config this controller saw, without touching the ledger."""
        return self._configs.get(owner)

    async def get_config(self, owner: str) -> GadConfig | None:
        """Read the config from the ledger.

        Other keepers crank the same positions, so execution history is
        never served from the local copy.
        """
        config = await self._ledger.get_gad_config(owner)
        if config is not None:
            self._configs[owner] = config
        return config

    async def _submit(self, action: LedgerAction) -> ActionResult:
        result = await self._ledger.submit(action)
        if not result.success:
            raise LedgerError(f"Ledger refused {action.kind.value}: {result.message}")
        return result

    async def configure(self, owner: str, settings: GadSettings) -> ActionResult:
        """Validate and store GAD settings.

        Execution history is kept across re-configuration and only starts
        from zero the first time a position is configured.
        """
        validate_gad_settings(settings)

        async with self._locks.for_owner(owner):
            existing = await self.get_config(owner)
            base = existing if existing is not None else GadConfig()
            config = replace(
                base,
                enabled=settings.enabled,
                start_threshold_bps=settings.start_threshold_bps,
                step_size_bps=settings.step_size_bps,
                min_interval_seconds=settings.min_interval_seconds,
            )
            result = await self._submit(
                LedgerAction(ActionKind.CONFIGURE_GAD, owner, params=config.to_params())
            )
            self._configs[owner] = config

        logger.info(
            "GAD configured for %s: enabled=%s start=%d bps step=%d bps interval=%ds",
            owner,
            config.enabled,
            config.start_threshold_bps,
            config.step_size_bps,
            config.min_interval_seconds,
        )
        return result

    async def enable(self, owner: str) -> ActionResult:
        current = await self.get_config(owner)
        settings = _settings_from(current) if current else GadSettings()
        return await self.configure(owner, replace(settings, enabled=True))

    async def disable(self, owner: str) -> ActionResult:
        current = await self.get_config(owner)
        settings = _settings_from(current) if current else GadSettings()
        return await self.configure(owner, replace(settings, enabled=False))

    async def state(self, owner: str) -> GadState:
        config = await self.get_config(owner)
        health = await self._positions.health(owner, config)
        return gad_state(config, health)

    async def status(self, owner: str) -> GadStatus:
        config = await self.get_config(owner)
        if config is None:
            return GadStatus(False, GadState.DISABLED, 0, 0, None)
        state = gad_state(config, await self._positions.health(owner, config))
        return GadStatus(
            enabled=config.enabled,
            state=state,
            steps_executed=config.total_steps_executed,
            total_deleveraged=config.total_deleveraged,
            next_step_at=config.next_step_at() if state is GadState.ACTIVE else None,
        )

    async def crank(self, owner: str, keeper: str | None = None) -> CrankResult:
        """Execute one deleveraging step if the position qualifies.

        Safe for any keeper to call repeatedly: the interval gate makes extra
        calls no-ops. A named ``keeper`` earns ``KEEPER_REWARD_BPS`` of the
        collateral sold.
        """
        async with self._locks.for_owner(owner):
            config = await self.get_config(owner)
            if config is None or not config.enabled:
                return CrankResult(False, NO_ACTION, GadState.DISABLED)

            snap = await self._positions.snapshot(owner, config)
            state = gad_state(config, snap.health)
            if not snap.position.has_debt or not snap.position.has_collateral:
                return CrankResult(False, NO_ACTION, state)
            if state is not GadState.ACTIVE:
                return CrankResult(False, NO_ACTION, state)

            now = int(self._clock())
            if now - config.last_execution_time < config.min_interval_seconds:
                logger.debug(
                    "GAD step for %s not due until %d", owner, config.next_step_at()
                )
                return CrankResult(False, "Interval not elapsed", state)

            plan = plan_step(
                snap.position,
                snap.prices,
                self._assets,
                config.step_size_bps,
                KEEPER_REWARD_BPS if keeper else 0,
            )
            if not plan.collateral_sold:
                return CrankResult(False, "Nothing to sell", state)

            result = await self._submit(
                LedgerAction(
                    ActionKind.EXECUTE_GAD_STEP,
                    owner,
                    params={
                        "collateral_sold": [
                            {"asset": c.asset, "amount": c.amount} for c in plan.collateral_sold
                        ],
                        "debt_repaid": [
                            {
                                "asset": d.asset,
                                "principal": d.principal,
                                "accrued_interest": d.accrued_interest,
                            }
                            for d in plan.debt_repaid
                        ],
                        "value": plan.sold_value,
                        "executed_at": now,
                        "keeper": keeper or "",
                        "keeper_reward": [
                            {"asset": c.asset, "amount": c.amount} for c in plan.keeper_reward
                        ],
                    },
                )
            )

            self._configs[owner] = replace(
                config,
                last_execution_time=now,
                total_steps_executed=config.total_steps_executed + 1,
                total_deleveraged=config.total_deleveraged + plan.sold_value,
            )

        logger.warning(
            "GAD step %d executed for %s: sold %d µUSD of collateral, repaid %d µUSD",
            config.total_steps_executed + 1,
            owner,
            plan.sold_value,
            plan.repaid_value,
        )
        return CrankResult(True, "Step executed", state, plan, result.signature)


def _settings_from(config: GadConfig) -> GadSettings:
    return GadSettings(
        enabled=config.enabled,
        start_threshold_bps=config.start_threshold_bps,
        step_size_bps=config.step_size_bps,
        min_interval_seconds=config.min_interval_seconds,
    )
