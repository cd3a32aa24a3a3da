"""Human-readable alert text (display only)."""
from __future__ import annotations

from ..models import Alert, AlertType

_HEADERS = {
    AlertType.LTV_WARNING: "⚠️ LTV WARNING",
    AlertType.GAD_TRIGGERED: "🛡️ GAD ACTIVE",
    AlertType.DAILY_LIMIT_REACHED: "⛔ DAILY LIMIT",
    AlertType.AUTO_REPAY: "🔁 AUTO-REPAY",
}


def format_owner(owner: str) -> str:
    if len(owner) > 16:
        return f"{owner[:10]}...{owner[-6:]}"
    return owner


def alert_subject(alert: Alert) -> str:
    return f"{_HEADERS.get(alert.type, alert.type.value)}: {format_owner(alert.owner)}"


def format_alert(alert: Alert) -> str:
    return (
        f"{_HEADERS.get(alert.type, alert.type.value)}\n"
        f"\n"
        f"{alert.message}\n"
        f"\n"
        f"Position: {format_owner(alert.owner)}\n"
        f"{alert.timestamp.strftime('%Y-%m-%d %H:%M:%S')} UTC"
    )
