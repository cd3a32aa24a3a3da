"""In-memory ledger for dry runs and tests.

Implements the same read/write contract as ``LedgerClient``: every action is
applied to a copy of the account state and committed only if the whole
action is valid, so a refused action leaves nothing behind.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Any

from ..config import AssetConfig
from ..models import (
    ActionKind,
    ActionResult,
    AgentConfig,
    GadConfig,
    LedgerAction,
    Position,
)
from ..units import value_of
from .addressing import derive_address

logger = logging.getLogger(__name__)


class PaperLedger:
    """A single-process ledger holding positions, prices and configs."""

    def __init__(
        self,
        assets: dict[str, AssetConfig] | None = None,
        prices: dict[str, int] | None = None,
        latency: float = 0.0,
    ) -> None:
        self.assets = dict(assets or {})
        self.prices: dict[str, int] = dict(prices or {})
        self.latency = latency
        self.positions: dict[str, Position] = {}
        self.agent_configs: dict[str, AgentConfig] = {}
        self.gad_configs: dict[str, GadConfig] = {}
        self.history: list[LedgerAction] = []
        # keeper -> asset -> collateral units earned by cranking
        self.keeper_rewards: dict[str, dict[str, int]] = {}
        self._tx_count = 0

    async def _io(self) -> None:
        # Every call suspends, like a network round trip would.
        await asyncio.sleep(self.latency)

    def set_price(self, asset: str, price: int) -> None:
        self.prices[asset] = price

    def put_position(self, position: Position) -> None:
        self.positions[position.owner] = position

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_position(self, owner: str) -> Position:
        await self._io()
        return self.positions.setdefault(owner, Position(owner=owner))

    async def get_prices(self, assets: Iterable[str]) -> dict[str, int]:
        await self._io()
        return {a: self.prices[a] for a in assets if a in self.prices}

    async def get_agent_config(self, owner: str) -> AgentConfig | None:
        await self._io()
        return self.agent_configs.get(owner)

    async def get_gad_config(self, owner: str) -> GadConfig | None:
        await self._io()
        return self.gad_configs.get(owner)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def submit(self, action: LedgerAction) -> ActionResult:
        await self._io()
        position = self.positions.get(action.owner) or Position(owner=action.owner)
        staged = _Staged(position)
        try:
            self._apply(staged, action)
        except ValueError as e:
            logger.info("Paper ledger refused %s: %s", action.kind.value, e)
            return ActionResult(success=False, message=str(e))

        self.positions[action.owner] = staged.position
        if staged.agent_config is not None:
            self.agent_configs[action.owner] = staged.agent_config
        if staged.gad_config is not None:
            self.gad_configs[action.owner] = staged.gad_config
        if staged.keeper is not None:
            rewards = self.keeper_rewards.setdefault(staged.keeper, {})
            for asset, amount in staged.keeper_reward.items():
                rewards[asset] = rewards.get(asset, 0) + amount
        self.history.append(action)
        self._tx_count += 1
        return ActionResult(
            success=True, signature=derive_address("paper-tx", str(self._tx_count))
        )

    def _apply(self, staged: _Staged, action: LedgerAction) -> None:
        kind = action.kind
        position = staged.position
        if kind in (
            ActionKind.DEPOSIT,
            ActionKind.WITHDRAW,
            ActionKind.BORROW,
            ActionKind.REPAY,
            ActionKind.AGENT_BORROW,
        ):
            if action.amount <= 0:
                raise ValueError("Invalid amount")

        if kind is ActionKind.DEPOSIT:
            staged.position = position.with_collateral(action.asset, action.amount)
        elif kind is ActionKind.WITHDRAW:
            staged.position = position.with_collateral(action.asset, -action.amount)
        elif kind is ActionKind.BORROW:
            staged.position = position.with_debt(action.asset, action.amount)
        elif kind is ActionKind.REPAY:
            staged.position = self._repay(position, action.asset, action.amount)
        elif kind is ActionKind.CONFIGURE_AGENT:
            staged.agent_config = AgentConfig(**action.params)
        elif kind is ActionKind.CONFIGURE_GAD:
            staged.gad_config = GadConfig(**action.params)
        elif kind is ActionKind.AGENT_BORROW:
            config = self._agent_budget(action)
            value = int(action.params["value"])
            if config.daily_borrow_used + value > config.daily_borrow_limit:
                raise ValueError("Daily borrow limit exceeded")
            staged.position = position.with_debt(action.asset, action.amount)
            staged.agent_config = replace(
                config, daily_borrow_used=config.daily_borrow_used + value
            )
        elif kind is ActionKind.RECORD_PAYMENT:
            config = self._agent_budget(action)
            value = int(action.params["value"])
            if not config.x402_enabled:
                raise ValueError("x402 payments are disabled")
            if value <= 0 or config.x402_daily_used + value > config.x402_daily_limit:
                raise ValueError("Daily payment limit exceeded")
            staged.agent_config = replace(
                config, x402_daily_used=config.x402_daily_used + value
            )
        elif kind is ActionKind.EXECUTE_GAD_STEP:
            self._gad_step(staged, action.params)
        else:
            raise ValueError(f"Unsupported action {kind}")

    def _agent_budget(self, action: LedgerAction) -> AgentConfig:
        config = self.agent_configs.get(action.owner)
        if config is None:
            raise ValueError("No agent config")
        return config.reset_if_new_day(float(action.params["now"]))

    def _repay(self, position: Position, asset: str, amount: int) -> Position:
        entry = position.debt_entry(asset)
        if entry is None or amount > entry.total:
            raise ValueError(f"Repay exceeds {asset} debt")
        interest = min(amount, entry.accrued_interest)
        updated = position.with_debt(asset, -(amount - interest), -interest)
        repaid_value = value_of(
            amount, self.assets.get(asset, AssetConfig()).decimals, self.prices.get(asset, 0)
        )
        reputation = replace(
            updated.reputation,
            successful_repayments=updated.reputation.successful_repayments + 1,
            total_repaid=updated.reputation.total_repaid + repaid_value,
        )
        return replace(updated, reputation=reputation)

    def _gad_step(self, staged: _Staged, params: dict[str, Any]) -> None:
        position = staged.position
        executed_at = int(params["executed_at"])
        config = self.gad_configs.get(position.owner)
        if config is not None:
            if executed_at - config.last_execution_time < config.min_interval_seconds:
                raise ValueError("GAD interval not elapsed")

        for sold in params.get("collateral_sold", []):
            position = position.with_collateral(sold["asset"], -int(sold["amount"]))
        for repaid in params.get("debt_repaid", []):
            position = position.with_debt(
                repaid["asset"],
                -int(repaid.get("principal", 0)),
                -int(repaid.get("accrued_interest", 0)),
            )
        keeper = params.get("keeper")
        for reward in params.get("keeper_reward", []):
            if not keeper:
                raise ValueError("Keeper reward without a keeper")
            amount = int(reward["amount"])
            position = position.with_collateral(reward["asset"], -amount)
            staged.keeper_reward[reward["asset"]] = (
                staged.keeper_reward.get(reward["asset"], 0) + amount
            )
        if staged.keeper_reward:
            staged.keeper = keeper

        reputation = replace(
            position.reputation, gad_events=position.reputation.gad_events + 1
        )
        staged.position = replace(position, reputation=reputation)

        if config is not None:
            staged.gad_config = replace(
                config,
                last_execution_time=executed_at,
                total_steps_executed=config.total_steps_executed + 1,
                total_deleveraged=config.total_deleveraged + int(params["value"]),
            )


@dataclass
class _Staged:
    """Effects of one action, committed together or not at all."""

    position: Position
    agent_config: AgentConfig | None = None
    gad_config: GadConfig | None = None
    keeper: str | None = None
    keeper_reward: dict[str, int] = field(default_factory=dict)
