"""Monitoring loop: polls every configured position and reacts to its health."""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from ..config import AppConfig
from ..health import ltv_exceeds
from ..interfaces.ledger import Ledger
from ..models import ActionResult, AgentConfig, Alert, AlertType, HealthStatus
from ..notifications import build_notifiers
from ..units import format_usd
from .agent import AUTO, AgentController
from .alerts import AlertBus
from .gad import CrankResult, GadController, GadState, gad_state
from .locks import PositionLocks
from .position_service import PositionService

logger = logging.getLogger(__name__)


class Monitor:
    """Wires the controllers together and drives one loop per position.

    Ticks of one position never overlap: the loop awaits each tick before
    sleeping, and direct ``tick`` calls queue behind a per-position lock.
    """

    def __init__(
        self,
        config: AppConfig,
        ledger: Ledger,
        bus: AlertBus | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._ledger = ledger
        self.bus = bus or AlertBus()
        self.locks = PositionLocks()
        self.positions = PositionService(ledger, config)
        self.agent = AgentController(
            ledger, self.positions, self.bus, self.locks, config, clock=clock
        )
        self.gad = GadController(
            ledger, self.positions, self.locks, config.assets, clock=clock
        )

        for notifier in build_notifiers(config.notifications):
            self.bus.subscribe(notifier.send_alert)

        self._labels = {p.owner: p.label or p.owner for p in config.positions}
        self._tick_locks: dict[str, asyncio.Lock] = {}
        self._tasks: list[asyncio.Task[None]] = []
        self._stopped = asyncio.Event()

    @property
    def owners(self) -> list[str]:
        return [p.owner for p in self._config.positions]

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    # ------------------------------------------------------------------
    # Formatting helpers
    # ------------------------------------------------------------------

    def _get_status(self, health: HealthStatus) -> str:
        if not health.is_healthy:
            return "🚨 UNHEALTHY"
        if health.gad_active:
            return "🛡️ DELEVERAGING"
        return "✅ Healthy"

    def _build_log_message(self, owner: str, health: HealthStatus) -> str:
        return (
            f"{self._labels.get(owner, owner)} · {self._get_status(health)} · "
            f"Collateral {format_usd(health.collateral_value)} · "
            f"Debt {format_usd(health.debt_value)} · "
            f"LTV {health.ltv:.2f}% · HF {health.health_factor:.2f}"
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    async def apply_settings(self) -> list[ActionResult]:
        """Push configured agent and GAD settings to the ledger."""
        results: list[ActionResult] = []
        for position in self._config.positions:
            if position.agent is not None:
                results.append(await self.agent.configure(position.owner, position.agent))
            if position.gad is not None:
                results.append(await self.gad.configure(position.owner, position.gad))
        return results

    # ------------------------------------------------------------------
    # Core workflows
    # ------------------------------------------------------------------

    async def tick(self, owner: str) -> HealthStatus:
        """Check one position, raise alerts, and auto-repay when needed."""
        lock = self._tick_locks.setdefault(owner, asyncio.Lock())
        async with lock:
            return await self._tick(owner)

    async def _tick(self, owner: str) -> HealthStatus:
        gad_config = await self.gad.get_config(owner)
        health = await self.positions.health(owner, gad_config)
        agent_config = await self.agent.get_config(owner)

        logger.info("%s", self._build_log_message(owner, health))

        coll, debt = health.collateral_value, health.debt_value
        alert_bps = (agent_config or AgentConfig()).alert_threshold_bps
        if ltv_exceeds(coll, debt, alert_bps):
            await self.bus.publish(
                Alert(
                    type=AlertType.LTV_WARNING,
                    owner=owner,
                    message=f"LTV warning: {health.ltv:.1f}% (threshold: {alert_bps / 100}%)",
                    data={"health": health},
                )
            )

        if gad_state(gad_config, health) is GadState.ACTIVE:
            await self.bus.publish(
                Alert(
                    type=AlertType.GAD_TRIGGERED,
                    owner=owner,
                    message=f"GAD protection active. LTV: {health.ltv:.1f}%",
                    data={"health": health},
                )
            )

        if (
            agent_config is not None
            and agent_config.auto_repay_enabled
            and ltv_exceeds(coll, debt, agent_config.auto_repay_threshold_bps)
        ):
            await self.agent.autonomous_repay(owner, AUTO)

        return health

    async def check_all(self) -> dict[str, HealthStatus]:
        """One tick for every position; a failing position does not stop the rest."""
        results: dict[str, HealthStatus] = {}
        for owner in self.owners:
            try:
                results[owner] = await self.tick(owner)
            except Exception as e:
                logger.error("Check failed for %s: %s", self._labels.get(owner, owner), e)
        return results

    async def crank_all(self, keeper: str | None = None) -> dict[str, CrankResult]:
        """Keeper duty: crank GAD once for every position."""
        results: dict[str, CrankResult] = {}
        for owner in self.owners:
            try:
                results[owner] = await self.gad.crank(owner, keeper)
            except Exception as e:
                logger.error("GAD crank failed for %s: %s", self._labels.get(owner, owner), e)
        return results

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def _run_position(self, owner: str, interval: float) -> None:
        while not self._stopped.is_set():
            try:
                await self.tick(owner)
            except Exception as e:
                logger.error("Error in monitoring loop for %s: %s", owner, e)
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    def start(self, interval_seconds: float | None = None) -> None:
        """Start one loop per position; the first tick runs immediately."""
        if self.running:
            return
        interval = interval_seconds or self._config.monitor.interval_seconds
        self._stopped.clear()
        logger.info(
            "Starting monitoring of %d position(s) every %s seconds",
            len(self.owners),
            interval,
        )
        self._tasks = [
            asyncio.create_task(self._run_position(owner, interval), name=f"monitor:{owner}")
            for owner in self.owners
        ]

    async def stop(self) -> None:
        """Cancel the next scheduled tick of every loop; loops do not resume."""
        self._stopped.set()
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Monitoring stopped")

    async def run_continuous(self, interval_seconds: float | None = None) -> None:
        """Run the loops until cancelled or stopped."""
        self.start(interval_seconds)
        try:
            await self._stopped.wait()
        finally:
            await self.stop()
