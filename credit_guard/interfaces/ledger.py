"""Ledger protocol: source of truth for balances, prices and actions."""
from collections.abc import Iterable
from typing import Optional, Protocol

from ..models import ActionResult, AgentConfig, GadConfig, LedgerAction, Position


class Ledger(Protocol):
    """Read/write interface to the lending ledger.

    Writes either fully succeed or fully fail; a refused write comes back as
    ``ActionResult(success=False)`` and a transport failure raises
    ``LedgerError``.
    """

    async def get_position(self, owner: str) -> Position: ...

    async def get_prices(self, assets: Iterable[str]) -> dict[str, int]: ...

    async def get_agent_config(self, owner: str) -> Optional[AgentConfig]: ...

    async def get_gad_config(self, owner: str) -> Optional[GadConfig]: ...

    async def submit(self, action: LedgerAction) -> ActionResult: ...
