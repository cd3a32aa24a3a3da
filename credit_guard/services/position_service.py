"""Ledger reads combined into a health snapshot."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from ..config import AppConfig
from ..errors import LedgerError
from ..health import compute_health
from ..interfaces.ledger import Ledger
from ..models import GadConfig, HealthStatus, Position

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionSnapshot:
    position: Position
    prices: dict[str, int]
    health: HealthStatus


class PositionService:
    """Fetch a position and its prices, then run the health calculator."""

    def __init__(self, ledger: Ledger, config: AppConfig) -> None:
        self._ledger = ledger
        self._config = config

    async def snapshot(
        self,
        owner: str,
        gad_config: GadConfig | None = None,
        extra_assets: Iterable[str] = (),
    ) -> PositionSnapshot:
        """Read the position and price every asset it (or the caller) needs.

        Raises:
            LedgerError: a read failed or the ledger has no price for an asset.
        """
        position = await self._ledger.get_position(owner)
        assets = set(position.assets) | set(extra_assets)
        prices = await self._ledger.get_prices(assets) if assets else {}

        missing = sorted(a for a in assets if a not in prices)
        if missing:
            raise LedgerError(f"No price for {', '.join(missing)}")

        health = compute_health(
            position, prices, self._config.assets, self._config.risk, gad_config
        )
        logger.debug(
            "Health %s · LTV %.2f%% · HF %s", owner, health.ltv, health.health_factor
        )
        return PositionSnapshot(position=position, prices=prices, health=health)

    async def health(self, owner: str, gad_config: GadConfig | None = None) -> HealthStatus:
        return (await self.snapshot(owner, gad_config)).health
