"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .errors import ValidationError

logger = logging.getLogger(__name__)

GAD_THRESHOLD_BOUNDS = (5000, 9500)
GAD_STEP_BOUNDS = (100, 2000)
GAD_INTERVAL_BOUNDS = (300, 86400)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MonitorConfig:
    interval_seconds: int = 60


@dataclass(frozen=True)
class RiskConfig:
    max_ltv_bps: int = 7500
    liquidation_threshold_bps: int = 8500
    auto_repay_buffer_bps: int = 500
    min_repay_usd: Decimal = Decimal("1")


@dataclass(frozen=True)
class AssetConfig:
    decimals: int = 9


@dataclass(frozen=True)
class LedgerConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: float = 10.0
    max_attempts: int = 3
    backoff_seconds: float = 1.0


@dataclass(frozen=True)
class AgentSettings:
    daily_borrow_limit_usd: Decimal = Decimal("0")
    auto_repay_enabled: bool = False
    auto_repay_threshold_bps: int = 8000
    x402_enabled: bool = False
    # None means a tenth of the borrow limit
    x402_daily_limit_usd: Decimal | None = None
    alert_threshold_bps: int = 7500


@dataclass(frozen=True)
class GadSettings:
    enabled: bool = False
    start_threshold_bps: int = 8000
    step_size_bps: int = 500
    min_interval_seconds: int = 3600


@dataclass(frozen=True)
class PositionConfig:
    label: str = ""
    owner: str = ""
    agent: AgentSettings | None = None
    gad: GadSettings | None = None


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class EmailConfig:
    enabled: bool = False
    alert_email: str = ""
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    sender_email: str = ""
    sender_password: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    email: EmailConfig = field(default_factory=EmailConfig)


@dataclass(frozen=True)
class AppConfig:
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    assets: dict[str, AssetConfig] = field(default_factory=dict)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    positions: tuple[PositionConfig, ...] = ()
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)

    def decimals(self, asset: str) -> int:
        return self.assets.get(asset, AssetConfig()).decimals


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _decimal(value: Any, default: str = "0") -> Decimal:
    if value is None or value == "":
        return Decimal(default)
    return Decimal(str(value))


def _flag(value: Any, default: bool = False) -> bool:
    """YAML bools, or "true"/"false" strings left by env interpolation."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "yes", "on", "1"):
        return True
    if text in ("false", "no", "off", "0"):
        return False
    raise ValueError(f"Invalid boolean: {value!r}")


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_monitor(raw: dict[str, Any]) -> MonitorConfig:
    return MonitorConfig(interval_seconds=int(raw.get("interval_seconds", 60)))


def _build_risk(raw: dict[str, Any]) -> RiskConfig:
    return RiskConfig(
        max_ltv_bps=int(raw.get("max_ltv_bps", 7500)),
        liquidation_threshold_bps=int(raw.get("liquidation_threshold_bps", 8500)),
        auto_repay_buffer_bps=int(raw.get("auto_repay_buffer_bps", 500)),
        min_repay_usd=_decimal(raw.get("min_repay_usd"), "1"),
    )


def _build_assets(raw: dict[str, Any]) -> dict[str, AssetConfig]:
    return {
        symbol.upper(): AssetConfig(decimals=int((cfg or {}).get("decimals", 9)))
        for symbol, cfg in raw.items()
    }


def _build_ledger(raw: dict[str, Any]) -> LedgerConfig:
    return LedgerConfig(
        rpc_endpoints=tuple(raw.get("rpc_endpoints", [])),
        rpc_timeout=float(raw.get("rpc_timeout", 10)),
        max_attempts=int(raw.get("max_attempts", 3)),
        backoff_seconds=float(raw.get("backoff_seconds", 1.0)),
    )


def _build_agent(raw: dict[str, Any] | None) -> AgentSettings | None:
    if raw is None:
        return None
    x402_limit = raw.get("x402_daily_limit_usd")
    return AgentSettings(
        daily_borrow_limit_usd=_decimal(raw.get("daily_borrow_limit_usd")),
        auto_repay_enabled=_flag(raw.get("auto_repay_enabled")),
        auto_repay_threshold_bps=int(raw.get("auto_repay_threshold_bps", 8000)),
        x402_enabled=_flag(raw.get("x402_enabled")),
        x402_daily_limit_usd=None if x402_limit is None else _decimal(x402_limit),
        alert_threshold_bps=int(raw.get("alert_threshold_bps", 7500)),
    )


def _build_gad(raw: dict[str, Any] | None) -> GadSettings | None:
    if raw is None:
        return None
    return GadSettings(
        enabled=_flag(raw.get("enabled")),
        start_threshold_bps=int(raw.get("start_threshold_bps", 8000)),
        step_size_bps=int(raw.get("step_size_bps", 500)),
        min_interval_seconds=int(raw.get("min_interval_seconds", 3600)),
    )


def _build_positions(raw: list[dict[str, Any]]) -> tuple[PositionConfig, ...]:
    positions: list[PositionConfig] = []
    for p in raw:
        positions.append(
            PositionConfig(
                label=p.get("label", ""),
                owner=p.get("owner", ""),
                agent=_build_agent(p.get("agent")),
                gad=_build_gad(p.get("gad")),
            )
        )
    return tuple(positions)


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    em = raw.get("email", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=_flag(tg.get("enabled")),
            bot_token=tg.get("bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
        email=EmailConfig(
            enabled=_flag(em.get("enabled")),
            alert_email=em.get("alert_email", ""),
            smtp_server=em.get("smtp_server", "smtp.gmail.com"),
            smtp_port=int(em.get("smtp_port", 587)),
            sender_email=em.get("sender_email", ""),
            sender_password=em.get("sender_password", ""),
        ),
    )


# ---------------------------------------------------------------------------
# Settings validation (shared with the controllers)
# ---------------------------------------------------------------------------


def _check_range(name: str, value: int, bounds: tuple[int, int]) -> None:
    low, high = bounds
    if not low <= value <= high:
        raise ValidationError(f"{name} must be within {low}-{high}, got {value}")


def validate_gad_settings(settings: GadSettings) -> None:
    """Raise ValidationError for out-of-range GAD settings."""
    _check_range("start_threshold_bps", settings.start_threshold_bps, GAD_THRESHOLD_BOUNDS)
    _check_range("step_size_bps", settings.step_size_bps, GAD_STEP_BOUNDS)
    _check_range(
        "min_interval_seconds", settings.min_interval_seconds, GAD_INTERVAL_BOUNDS
    )


def validate_agent_settings(settings: AgentSettings) -> None:
    """Raise ValidationError for negative limits or thresholds outside 0-100%."""
    if settings.daily_borrow_limit_usd < 0:
        raise ValidationError("daily_borrow_limit_usd must not be negative")
    if settings.x402_daily_limit_usd is not None and settings.x402_daily_limit_usd < 0:
        raise ValidationError("x402_daily_limit_usd must not be negative")
    _check_range("auto_repay_threshold_bps", settings.auto_repay_threshold_bps, (0, 10000))
    _check_range("alert_threshold_bps", settings.alert_threshold_bps, (0, 10000))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        monitor=_build_monitor(raw.get("monitor", {})),
        risk=_build_risk(raw.get("risk", {})),
        assets=_build_assets(raw.get("assets", {})),
        ledger=_build_ledger(raw.get("ledger", {})),
        positions=_build_positions(raw.get("positions", [])),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.positions:
        raise ValueError("At least one position must be configured")

    if cfg.monitor.interval_seconds <= 0:
        raise ValueError("monitor.interval_seconds must be positive")

    if cfg.ledger.max_attempts < 1:
        raise ValueError("ledger.max_attempts must be at least 1")

    if cfg.risk.max_ltv_bps > cfg.risk.liquidation_threshold_bps:
        raise ValueError("risk.max_ltv_bps must not exceed the liquidation threshold")

    for position in cfg.positions:
        if not position.owner:
            raise ValueError(f"Position '{position.label}' has no owner")
        if position.agent is not None:
            validate_agent_settings(position.agent)
        if position.gad is not None:
            validate_gad_settings(position.gad)
