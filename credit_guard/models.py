"""Data models: all frozen (immutable)."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from .units import day_index


# ---------------------------------------------------------------------------
# Position
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CollateralEntry:
    """Collateral held for one asset, in base units."""

    asset: str
    amount: int


@dataclass(frozen=True)
class DebtEntry:
    """Debt owed in one asset, in base units."""

    asset: str
    principal: int
    accrued_interest: int = 0

    @property
    def total(self) -> int:
        return self.principal + self.accrued_interest


@dataclass(frozen=True)
class Reputation:
    successful_repayments: int = 0
    total_repaid: int = 0
    gad_events: int = 0
    account_age_days: int = 0

    def score(self) -> int:
        """Repayment history plus account age, minus 100 per GAD event."""
        base = min(self.successful_repayments * 50, 500)
        age_bonus = min(self.account_age_days // 30 * 10, 100)
        return max(0, base + age_bonus - self.gad_events * 100)


@dataclass(frozen=True)
class Position:
    """A collateralized credit position. Debts are kept oldest first."""

    owner: str
    collateral: tuple[CollateralEntry, ...] = ()
    debts: tuple[DebtEntry, ...] = ()
    reputation: Reputation = field(default_factory=Reputation)

    @property
    def has_collateral(self) -> bool:
        return any(c.amount > 0 for c in self.collateral)

    @property
    def has_debt(self) -> bool:
        return any(d.total > 0 for d in self.debts)

    @property
    def assets(self) -> tuple[str, ...]:
        seen = [c.asset for c in self.collateral]
        seen += [d.asset for d in self.debts if d.asset not in seen]
        return tuple(seen)

    def collateral_amount(self, asset: str) -> int:
        for entry in self.collateral:
            if entry.asset == asset:
                return entry.amount
        return 0

    def debt_entry(self, asset: str) -> DebtEntry | None:
        for entry in self.debts:
            if entry.asset == asset:
                return entry
        return None

    def with_collateral(self, asset: str, delta: int) -> Position:
        """Merge ``delta`` into the asset's entry. Raises on a negative result."""
        entries: list[CollateralEntry] = []
        found = False
        for entry in self.collateral:
            if entry.asset == asset:
                entry = CollateralEntry(asset, entry.amount + delta)
                found = True
            entries.append(entry)
        if not found:
            entries.append(CollateralEntry(asset, delta))
        if any(e.amount < 0 for e in entries):
            raise ValueError(f"Collateral for {asset} would go negative")
        return replace(self, collateral=tuple(e for e in entries if e.amount > 0))

    def with_debt(self, asset: str, principal_delta: int, interest_delta: int = 0) -> Position:
        """Merge a debt change into the asset's entry; new assets go last."""
        entries: list[DebtEntry] = []
        found = False
        for entry in self.debts:
            if entry.asset == asset:
                entry = DebtEntry(
                    asset,
                    entry.principal + principal_delta,
                    entry.accrued_interest + interest_delta,
                )
                found = True
            entries.append(entry)
        if not found:
            entries.append(DebtEntry(asset, principal_delta, interest_delta))
        if any(e.principal < 0 or e.accrued_interest < 0 for e in entries):
            raise ValueError(f"Debt for {asset} would go negative")
        return replace(self, debts=tuple(e for e in entries if e.total > 0))


# ---------------------------------------------------------------------------
# Derived health
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HealthStatus:
    """Computed from a position + prices on every query. Values in micro-USD."""

    ltv: Decimal
    health_factor: Decimal
    liquidation_price: Decimal | None
    collateral_value: int
    debt_value: int
    available_to_borrow: int
    is_healthy: bool
    gad_active: bool = False


# ---------------------------------------------------------------------------
# Controller state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AgentConfig:
    """Daily budgets for autonomous borrowing and x402 payments (micro-USD)."""

    daily_borrow_limit: int = 0
    daily_borrow_used: int = 0
    period_day: int = 0
    auto_repay_enabled: bool = False
    auto_repay_threshold_bps: int = 8000
    x402_enabled: bool = False
    x402_daily_limit: int = 0
    x402_daily_used: int = 0
    alert_threshold_bps: int = 7500

    def reset_if_new_day(self, now: float) -> AgentConfig:
        """Zero the used counters once the calendar day changes."""
        today = day_index(now)
        if today == self.period_day:
            return self
        return replace(self, daily_borrow_used=0, x402_daily_used=0, period_day=today)

    @property
    def borrow_remaining(self) -> int:
        return max(0, self.daily_borrow_limit - self.daily_borrow_used)

    @property
    def x402_remaining(self) -> int:
        return max(0, self.x402_daily_limit - self.x402_daily_used)

    def to_params(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GadConfig:
    enabled: bool = False
    start_threshold_bps: int = 8000
    step_size_bps: int = 500
    min_interval_seconds: int = 3600
    last_execution_time: int = 0
    total_steps_executed: int = 0
    total_deleveraged: int = 0

    def next_step_at(self) -> int:
        return self.last_execution_time + self.min_interval_seconds

    def to_params(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DailyBudget:
    borrow_remaining: int
    payment_remaining: int
    period_day: int


@dataclass(frozen=True)
class PaymentResult:
    """An x402 payment; ``borrowed`` is the shortfall drawn as debt (micro-USD)."""

    amount: int
    borrowed: int = 0
    signature: str = ""


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


class AlertType(str, Enum):
    LTV_WARNING = "ltv_warning"
    GAD_TRIGGERED = "gad_triggered"
    DAILY_LIMIT_REACHED = "daily_limit_reached"
    AUTO_REPAY = "auto_repay"


@dataclass(frozen=True)
class Alert:
    type: AlertType
    owner: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    data: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Ledger actions
# ---------------------------------------------------------------------------


class ActionKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"
    CONFIGURE_AGENT = "configure_agent"
    CONFIGURE_GAD = "configure_gad"
    EXECUTE_GAD_STEP = "execute_gad_step"
    AGENT_BORROW = "agent_borrow"
    RECORD_PAYMENT = "record_payment"


@dataclass(frozen=True)
class LedgerAction:
    """A discrete write. ``amount`` is in the asset's base units."""

    kind: ActionKind
    owner: str
    asset: str = ""
    amount: int = 0
    params: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe payload; integers travel as decimal strings."""
        return {
            "kind": self.kind.value,
            "owner": self.owner,
            "asset": self.asset,
            "amount": str(self.amount),
            "params": _stringify_ints(self.params),
        }


@dataclass(frozen=True)
class ActionResult:
    success: bool
    signature: str = ""
    message: str = ""


def _stringify_ints(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, dict):
        return {k: _stringify_ints(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_stringify_ints(v) for v in value]
    return value
