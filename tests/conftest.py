"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from decimal import Decimal
from pathlib import Path

import pytest

from credit_guard.config import (
    AgentSettings,
    AppConfig,
    AssetConfig,
    GadSettings,
    LedgerConfig,
    MonitorConfig,
    PositionConfig,
    RiskConfig,
)
from credit_guard.ledger import PaperLedger
from credit_guard.models import CollateralEntry, DebtEntry, Position
from credit_guard.services import (
    AgentController,
    AlertBus,
    GadController,
    PositionLocks,
    PositionService,
)

OWNER = "0xAGENT0000000000000000000000000001"

SOL = 10**9
USDC = 10**6

# Midday on 2024-10-05 UTC
NOW = 20_001 * 86_400 + 12 * 3600


class FakeClock:
    """Callable clock that tests move by hand."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_assets() -> dict[str, AssetConfig]:
    return {"SOL": AssetConfig(decimals=9), "USDC": AssetConfig(decimals=6)}


@pytest.fixture()
def sample_agent_settings() -> AgentSettings:
    return AgentSettings(
        daily_borrow_limit_usd=Decimal("1000"),
        auto_repay_enabled=True,
        auto_repay_threshold_bps=8000,
        x402_enabled=True,
        x402_daily_limit_usd=Decimal("100"),
        alert_threshold_bps=7500,
    )


@pytest.fixture()
def sample_gad_settings() -> GadSettings:
    return GadSettings(
        enabled=True, start_threshold_bps=8000, step_size_bps=500, min_interval_seconds=3600
    )


@pytest.fixture()
def sample_app_config(
    sample_assets: dict[str, AssetConfig],
    sample_agent_settings: AgentSettings,
    sample_gad_settings: GadSettings,
) -> AppConfig:
    return AppConfig(
        monitor=MonitorConfig(interval_seconds=60),
        risk=RiskConfig(),
        assets=sample_assets,
        ledger=LedgerConfig(
            rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
            rpc_timeout=5,
            backoff_seconds=0,
        ),
        positions=(
            PositionConfig(
                label="test-agent",
                owner=OWNER,
                agent=sample_agent_settings,
                gad=sample_gad_settings,
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_position() -> Position:
    """100 SOL ($10,000) against 1,000 USDC: LTV 10%."""
    return Position(
        owner=OWNER,
        collateral=(CollateralEntry("SOL", 100 * SOL),),
        debts=(DebtEntry("USDC", 1000 * USDC),),
    )


@pytest.fixture()
def risky_position() -> Position:
    """100 SOL ($10,000) against 8,200 USDC: LTV 82%, still healthy."""
    return Position(
        owner=OWNER,
        collateral=(CollateralEntry("SOL", 100 * SOL),),
        debts=(DebtEntry("USDC", 8200 * USDC),),
    )


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def paper_ledger(sample_assets: dict[str, AssetConfig]) -> PaperLedger:
    return PaperLedger(
        assets=sample_assets,
        prices={"SOL": 100 * USDC, "USDC": 1 * USDC},
    )


@pytest.fixture()
def locks() -> PositionLocks:
    return PositionLocks()


@pytest.fixture()
def bus() -> AlertBus:
    return AlertBus()


@pytest.fixture()
def position_service(paper_ledger: PaperLedger, sample_app_config: AppConfig) -> PositionService:
    return PositionService(paper_ledger, sample_app_config)


@pytest.fixture()
def agent_controller(
    paper_ledger: PaperLedger,
    position_service: PositionService,
    bus: AlertBus,
    locks: PositionLocks,
    sample_app_config: AppConfig,
    fake_clock: FakeClock,
) -> AgentController:
    return AgentController(
        paper_ledger, position_service, bus, locks, sample_app_config, clock=fake_clock
    )


@pytest.fixture()
def gad_controller(
    paper_ledger: PaperLedger,
    position_service: PositionService,
    locks: PositionLocks,
    sample_assets: dict[str, AssetConfig],
    fake_clock: FakeClock,
) -> GadController:
    return GadController(
        paper_ledger, position_service, locks, sample_assets, clock=fake_clock
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    monitor:
      interval_seconds: 30
    risk:
      max_ltv_bps: 7500
      liquidation_threshold_bps: 8500
      min_repay_usd: "2.5"
    assets:
      sol: {decimals: 9}
      USDC: {decimals: 6}
    ledger:
      rpc_endpoints: ["https://rpc.example.com"]
      rpc_timeout: 10
      max_attempts: 4
    positions:
      - label: test-agent
        owner: "0xOWNER"
        agent:
          daily_borrow_limit_usd: "1000"
          auto_repay_enabled: true
        gad:
          enabled: true
          step_size_bps: 300
    notifications:
      telegram:
        enabled: true
        bot_token: "tok1"
        chat_id: 999
      email:
        enabled: false
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
