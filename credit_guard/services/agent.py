"""Rate-limited controller for autonomous borrowing, repayment and payments.

Every autonomous action is gated by a calendar-day budget and by the health
calculator. Daily counters reset lazily: the day index is recomputed from the
clock on each access, no timer involved.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import replace
from typing import Union

from ..config import AgentSettings, AppConfig, validate_agent_settings
from ..errors import (
    DailyLimitExceeded,
    InsufficientBalance,
    InsufficientHeadroom,
    LedgerError,
    Unhealthy,
    ValidationError,
)
from ..health import auto_repay_amount
from ..interfaces.ledger import Ledger
from ..models import (
    ActionKind,
    ActionResult,
    AgentConfig,
    Alert,
    AlertType,
    DailyBudget,
    LedgerAction,
    PaymentResult,
)
from ..units import Number, day_index, format_usd, units_for_value, usd
from .alerts import AlertBus
from .locks import PositionLocks
from .position_service import PositionService

logger = logging.getLogger(__name__)

AUTO = "auto"
RepayAmount = Union[Number, str]


def reset_if_new_day(config: AgentConfig, now: float) -> AgentConfig:
    """Zero the used-today counters when the calendar day has changed."""
    return config.reset_if_new_day(now)


def agent_config_from_settings(settings: AgentSettings, now: float) -> AgentConfig:
    limit = usd(settings.daily_borrow_limit_usd)
    if settings.x402_daily_limit_usd is None:
        x402_limit = limit // 10
    else:
        x402_limit = usd(settings.x402_daily_limit_usd)
    return AgentConfig(
        daily_borrow_limit=limit,
        period_day=day_index(now),
        auto_repay_enabled=settings.auto_repay_enabled,
        auto_repay_threshold_bps=settings.auto_repay_threshold_bps,
        x402_enabled=settings.x402_enabled,
        x402_daily_limit=x402_limit,
        alert_threshold_bps=settings.alert_threshold_bps,
    )


class AgentController:
    """Accepts or rejects autonomous actions for each position."""

    def __init__(
        self,
        ledger: Ledger,
        positions: PositionService,
        bus: AlertBus,
        locks: PositionLocks,
        config: AppConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ledger = ledger
        self._positions = positions
        self._bus = bus
        self._locks = locks
        self._app_config = config
        self._clock = clock

    # ------------------------------------------------------------------
    # Config access
    # ------------------------------------------------------------------

    async def _current(self, owner: str) -> AgentConfig | None:
        """Read the ledger's config and apply the daily reset. Caller holds the lock.

        The used counters live on the ledger, so every controller and every
        restart sees the same budget.
        """
        config = await self._ledger.get_agent_config(owner)
        if config is None:
            return None
        fresh = reset_if_new_day(config, self._clock())
        if fresh is not config:
            logger.info("New budget day %d for %s", fresh.period_day, owner)
        return fresh

    async def get_config(self, owner: str) -> AgentConfig | None:
        async with self._locks.for_owner(owner):
            return await self._current(owner)

    async def remaining_budget(self, owner: str) -> DailyBudget:
        config = await self.get_config(owner)
        if config is None:
            return DailyBudget(0, 0, day_index(self._clock()))
        payment = config.x402_remaining if config.x402_enabled else 0
        return DailyBudget(config.borrow_remaining, payment, config.period_day)

    async def _submit(self, action: LedgerAction) -> ActionResult:
        result = await self._ledger.submit(action)
        if not result.success:
            raise LedgerError(f"Ledger refused {action.kind.value}: {result.message}")
        return result

    async def configure(self, owner: str, settings: AgentSettings) -> ActionResult:
        """Store new limits; today's used counters carry over."""
        validate_agent_settings(settings)
        async with self._locks.for_owner(owner):
            now = self._clock()
            config = agent_config_from_settings(settings, now)
            existing = await self._current(owner)
            if existing is not None:
                config = replace(
                    config,
                    daily_borrow_used=existing.daily_borrow_used,
                    x402_daily_used=existing.x402_daily_used,
                )
            result = await self._submit(
                LedgerAction(ActionKind.CONFIGURE_AGENT, owner, params=config.to_params())
            )

        logger.info(
            "Agent configured for %s: borrow limit %s/day, x402 %s",
            owner,
            format_usd(config.daily_borrow_limit),
            format_usd(config.x402_daily_limit) if config.x402_enabled else "off",
        )
        return result

    # ------------------------------------------------------------------
    # Autonomous borrow
    # ------------------------------------------------------------------

    async def autonomous_borrow(self, owner: str, amount_usd: Number, asset: str) -> ActionResult:
        """Borrow ``amount_usd`` worth of ``asset`` within today's budget.

        Raises:
            ValidationError: non-positive amount or no agent config.
            DailyLimitExceeded: the amount does not fit today's budget.
            Unhealthy: health factor is at or below 1.
            InsufficientHeadroom: the amount exceeds the borrowing headroom.
            LedgerError: the borrow was not confirmed; the budget is untouched.
        """
        amount = usd(amount_usd)
        if amount <= 0:
            raise ValidationError("Borrow amount must be positive")

        async with self._locks.for_owner(owner):
            config = await self._current(owner)
            if config is None:
                raise ValidationError(f"No agent config for {owner}")
            return await self._borrow(owner, config, amount, asset)

    async def _borrow(
        self, owner: str, config: AgentConfig, amount: int, asset: str
    ) -> ActionResult:
        """Gate and submit one budgeted borrow. Caller holds the lock."""
        if config.daily_borrow_used + amount > config.daily_borrow_limit:
            await self._bus.publish(
                Alert(
                    type=AlertType.DAILY_LIMIT_REACHED,
                    owner=owner,
                    message=(
                        f"Daily borrow limit reached. Used: {format_usd(config.daily_borrow_used)}, "
                        f"Limit: {format_usd(config.daily_borrow_limit)}"
                    ),
                    data={
                        "used": config.daily_borrow_used,
                        "limit": config.daily_borrow_limit,
                        "requested": amount,
                    },
                )
            )
            logger.warning("Autonomous borrow by %s rejected: daily limit", owner)
            raise DailyLimitExceeded(config.daily_borrow_used, config.daily_borrow_limit, amount)

        snap = await self._positions.snapshot(owner, extra_assets=(asset,))
        health = snap.health
        if not health.is_healthy:
            logger.warning("Autonomous borrow by %s rejected: unhealthy", owner)
            raise Unhealthy(health.health_factor)
        if amount > health.available_to_borrow:
            logger.warning("Autonomous borrow by %s rejected: headroom", owner)
            raise InsufficientHeadroom(amount, health.available_to_borrow)

        units = units_for_value(amount, self._app_config.decimals(asset), snap.prices[asset])
        if units <= 0:
            raise ValidationError(f"{format_usd(amount)} is below one unit of {asset}")
        # Debt and the budget debit land in one ledger write.
        result = await self._submit(
            LedgerAction(
                ActionKind.AGENT_BORROW,
                owner,
                asset,
                units,
                params={"value": amount, "now": int(self._clock())},
            )
        )

        logger.info(
            "Autonomous borrow %s %s for %s (used today %s)",
            format_usd(amount),
            asset,
            owner,
            format_usd(config.daily_borrow_used + amount),
        )
        return result

    # ------------------------------------------------------------------
    # Autonomous repay
    # ------------------------------------------------------------------

    async def autonomous_repay(
        self, owner: str, amount_usd: RepayAmount, asset: str | None = None
    ) -> ActionResult:
        """Repay debt; ``"auto"`` repays just enough to sit below the trigger.

        The auto target is ``auto_repay_threshold_bps`` minus the configured
        buffer (500 bps by default). Amounts under ``risk.min_repay_usd`` are
        not worth a ledger call and return success without action. The debt
        asset defaults to the oldest debt entry; naming an asset that is not
        owed raises ValidationError.
        """
        risk = self._app_config.risk

        async with self._locks.for_owner(owner):
            snap = await self._positions.snapshot(owner)
            health = snap.health

            if amount_usd == AUTO:
                config = await self._current(owner)
                if config is None:
                    raise ValidationError(f"No agent config for {owner}")
                amount = auto_repay_amount(
                    health.collateral_value,
                    health.debt_value,
                    config.auto_repay_threshold_bps,
                    risk.auto_repay_buffer_bps,
                )
                if amount < usd(risk.min_repay_usd):
                    return ActionResult(success=True, message="No repayment needed")
            else:
                amount = usd(amount_usd)
                if amount <= 0:
                    raise ValidationError("Repay amount must be positive")

            if asset:
                entry = snap.position.debt_entry(asset)
                if entry is None:
                    raise ValidationError(f"No {asset} debt to repay for {owner}")
            elif snap.position.debts:
                entry = snap.position.debts[0]
            else:
                return ActionResult(success=True, message="No debt to repay")

            units = units_for_value(
                amount, self._app_config.decimals(entry.asset), snap.prices[entry.asset]
            )
            units = min(units, entry.total)
            if units <= 0:
                return ActionResult(success=True, message="No repayment needed")

            await self._bus.publish(
                Alert(
                    type=AlertType.AUTO_REPAY,
                    owner=owner,
                    message=f"Auto-repaying {format_usd(amount)} to maintain health",
                    data={"amount": amount, "current_ltv": health.ltv, "asset": entry.asset},
                )
            )
            result = await self._submit(
                LedgerAction(ActionKind.REPAY, owner, entry.asset, units, params={"value": amount})
            )

        logger.info("Repaid %s %s for %s", format_usd(amount), entry.asset, owner)
        return result

    # ------------------------------------------------------------------
    # x402 payments
    # ------------------------------------------------------------------

    async def can_make_payment(self, owner: str, amount_usd: Number) -> bool:
        """Advisory check; committing the spend is up to the caller."""
        amount = usd(amount_usd)
        config = await self.get_config(owner)
        if config is None or not config.x402_enabled or amount <= 0:
            return False
        return config.x402_daily_used + amount <= config.x402_daily_limit

    async def record_payment(self, owner: str, amount_usd: Number) -> AgentConfig:
        """Commit an x402 spend against today's payment budget on the ledger."""
        amount = usd(amount_usd)
        if amount <= 0:
            raise ValidationError("Payment amount must be positive")
        async with self._locks.for_owner(owner):
            config = self._payment_budget(owner, await self._current(owner), amount)
            await self._commit_payment(owner, amount)
        return replace(config, x402_daily_used=config.x402_daily_used + amount)

    async def pay(
        self,
        owner: str,
        amount_usd: Number,
        balance_usd: Number = 0,
        auto_borrow: bool = False,
        asset: str = "USDC",
    ) -> PaymentResult:
        """Make an x402 payment from a wallet holding ``balance_usd``.

        With ``auto_borrow`` a shortfall is borrowed in ``asset`` first, under
        the daily borrow limit and the usual health checks. Both budgets are
        checked before anything is written.

        Raises:
            ValidationError: non-positive amount, or x402 is disabled.
            DailyLimitExceeded: the payment or the borrow is over budget.
            InsufficientBalance: the wallet is short and auto_borrow is off.
        """
        amount = usd(amount_usd)
        if amount <= 0:
            raise ValidationError("Payment amount must be positive")
        shortfall = max(0, amount - usd(balance_usd))

        async with self._locks.for_owner(owner):
            config = self._payment_budget(owner, await self._current(owner), amount)
            signature = ""
            if shortfall > 0:
                if not auto_borrow:
                    raise InsufficientBalance(usd(balance_usd), amount)
                borrowed = await self._borrow(owner, config, shortfall, asset)
                signature = borrowed.signature
            result = await self._commit_payment(owner, amount)

        logger.info(
            "x402 payment of %s by %s (borrowed %s)",
            format_usd(amount),
            owner,
            format_usd(shortfall),
        )
        return PaymentResult(amount, shortfall, result.signature or signature)

    def _payment_budget(self, owner: str, config: AgentConfig | None, amount: int) -> AgentConfig:
        if config is None or not config.x402_enabled:
            raise ValidationError(f"x402 payments are disabled for {owner}")
        if config.x402_daily_used + amount > config.x402_daily_limit:
            raise DailyLimitExceeded(config.x402_daily_used, config.x402_daily_limit, amount)
        return config

    async def _commit_payment(self, owner: str, amount: int) -> ActionResult:
        return await self._submit(
            LedgerAction(
                ActionKind.RECORD_PAYMENT,
                owner,
                params={"value": amount, "now": int(self._clock())},
            )
        )
