"""Pure parsing functions for ledger RPC payloads: no I/O.

Integers arrive either as JSON numbers or as decimal strings; both are
accepted. Duplicate asset keys are merged into one entry.
"""
from __future__ import annotations

from typing import Any

from ..models import (
    ActionResult,
    AgentConfig,
    CollateralEntry,
    DebtEntry,
    GadConfig,
    Position,
    Reputation,
)


def _int(value: Any) -> int:
    if value is None or value == "":
        return 0
    return int(value)


_TRUE = {"true", "1"}
_FALSE = {"false", "0", ""}


def _bool(value: Any, default: bool = False) -> bool:
    """Booleans arrive as JSON bools, 0/1 or "true"/"false"; anything else is an error."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    raise ValueError(f"Invalid boolean: {value!r}")


def get_asset_symbol(raw: str) -> str:
    """Normalize an asset identifier.

    Examples:
        "usdc" → "USDC"
        "0x2::sui::SUI" → "SUI"
    """
    if "::" in raw:
        raw = raw.split("::")[-1]
    return raw.upper()


def parse_reputation(raw: dict[str, Any]) -> Reputation:
    return Reputation(
        successful_repayments=_int(raw.get("successful_repayments")),
        total_repaid=_int(raw.get("total_repaid")),
        gad_events=_int(raw.get("gad_events")),
        account_age_days=_int(raw.get("account_age_days")),
    )


def parse_position(raw: dict[str, Any], owner: str) -> Position:
    """Parse a position account. An empty payload is a fresh position."""
    position = Position(
        owner=raw.get("owner") or owner,
        reputation=parse_reputation(raw.get("reputation") or {}),
    )
    for entry in raw.get("collateral") or []:
        amount = _int(entry.get("amount"))
        if amount:
            position = position.with_collateral(get_asset_symbol(entry.get("asset", "")), amount)
    for entry in raw.get("debts") or []:
        principal = _int(entry.get("principal"))
        interest = _int(entry.get("accrued_interest"))
        if principal or interest:
            position = position.with_debt(
                get_asset_symbol(entry.get("asset", "")), principal, interest
            )
    return position


def parse_prices(raw: dict[str, Any]) -> dict[str, int]:
    """Parse ``{"prices": [{"asset": "SOL", "price": "150000000"}]}``.

    Prices are micro-USD per whole token. Non-positive prices are dropped.
    """
    prices: dict[str, int] = {}
    for item in raw.get("prices") or []:
        price = _int(item.get("price"))
        if price > 0:
            prices[get_asset_symbol(item.get("asset", ""))] = price
    return prices


def parse_agent_config(raw: dict[str, Any] | None) -> AgentConfig | None:
    if not raw:
        return None
    return AgentConfig(
        daily_borrow_limit=_int(raw.get("daily_borrow_limit")),
        daily_borrow_used=_int(raw.get("daily_borrow_used")),
        period_day=_int(raw.get("period_day")),
        auto_repay_enabled=_bool(raw.get("auto_repay_enabled")),
        auto_repay_threshold_bps=_int(raw.get("auto_repay_threshold_bps", 8000)),
        x402_enabled=_bool(raw.get("x402_enabled")),
        x402_daily_limit=_int(raw.get("x402_daily_limit")),
        x402_daily_used=_int(raw.get("x402_daily_used")),
        alert_threshold_bps=_int(raw.get("alert_threshold_bps", 7500)),
    )


def parse_gad_config(raw: dict[str, Any] | None) -> GadConfig | None:
    if not raw:
        return None
    return GadConfig(
        enabled=_bool(raw.get("enabled")),
        start_threshold_bps=_int(raw.get("start_threshold_bps", 8000)),
        step_size_bps=_int(raw.get("step_size_bps", 500)),
        min_interval_seconds=_int(raw.get("min_interval_seconds", 3600)),
        last_execution_time=_int(raw.get("last_execution_time")),
        total_steps_executed=_int(raw.get("total_steps_executed")),
        total_deleveraged=_int(raw.get("total_deleveraged")),
    )


def parse_action_result(raw: dict[str, Any]) -> ActionResult:
    return ActionResult(
        success=_bool(raw.get("success")),
        signature=raw.get("signature", ""),
        message=raw.get("error") or raw.get("message", ""),
    )
