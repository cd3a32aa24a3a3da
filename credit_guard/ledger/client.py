"""Ledger JSON-RPC client with endpoint fallback and bounded retries."""
from __future__ import annotations

import asyncio
import logging
import ssl
import uuid
from collections.abc import Iterable
from typing import Any

import aiohttp
import certifi

from ..config import LedgerConfig
from ..errors import LedgerError
from ..models import ActionResult, AgentConfig, GadConfig, LedgerAction, Position
from . import parser
from .addressing import agent_config_address, gad_config_address, position_address

logger = logging.getLogger(__name__)


class RpcRejected(LedgerError):
    """The node answered with a JSON-RPC error. Not retried."""


class LedgerClient:
    """Ledger RPC client.

    Each call makes at most ``max_attempts`` attempts, rotating through the
    configured endpoints. Every attempt is capped by ``rpc_timeout`` and
    attempts are separated by exponential backoff
    (``backoff_seconds * 2**attempt``). Exhaustion raises ``LedgerError``.
    """

    def __init__(self, config: LedgerConfig) -> None:
        if not config.rpc_endpoints:
            raise ValueError("LedgerClient needs at least one RPC endpoint")
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.max_attempts = config.max_attempts
        self.backoff_seconds = config.backoff_seconds
        self.current_rpc_index = 0

    async def _post(self, rpc_url: str, payload: dict[str, Any]) -> dict[str, Any]:
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)
        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(rpc_url, json=payload) as response:
                return await response.json()

    async def rpc_call(self, method: str, params: list[Any]) -> Any:
        """Make an RPC call with retries, backoff and endpoint fallback."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}

        last_error: Exception | None = None
        for attempt in range(self.max_attempts):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                result = await asyncio.wait_for(
                    self._post(rpc_url, payload), timeout=self.timeout
                )
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
                last_error = e
                logger.warning(
                    "RPC %s via %s failed (attempt %d/%d): %s",
                    method, rpc_url, attempt + 1, self.max_attempts, e or type(e).__name__,
                )
                if attempt < self.max_attempts - 1:
                    await asyncio.sleep(self.backoff_seconds * 2**attempt)
                continue

            if "error" in result:
                raise RpcRejected(f"RPC error from {method}: {result['error']}")

            if rpc_index != self.current_rpc_index:
                logger.info("Switched to RPC endpoint: %s", rpc_url)
                self.current_rpc_index = rpc_index

            return result.get("result", {})

        raise LedgerError(
            f"{method} failed after {self.max_attempts} attempts. Last error: {last_error!r}"
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_position(self, owner: str) -> Position:
        raw = await self.rpc_call("ledger_getAccount", [position_address(owner)])
        return parser.parse_position(raw or {}, owner)

    async def get_prices(self, assets: Iterable[str]) -> dict[str, int]:
        raw = await self.rpc_call("ledger_getPrices", [sorted(set(assets))])
        return parser.parse_prices(raw or {})

    async def get_agent_config(self, owner: str) -> AgentConfig | None:
        raw = await self.rpc_call("ledger_getAccount", [agent_config_address(owner)])
        return parser.parse_agent_config(raw)

    async def get_gad_config(self, owner: str) -> GadConfig | None:
        raw = await self.rpc_call("ledger_getAccount", [gad_config_address(owner)])
        return parser.parse_gad_config(raw)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def submit(self, action: LedgerAction) -> ActionResult:
        """Submit one action and wait for the ledger's verdict.

        The request id is generated once and reused across retries so the
        ledger can drop a duplicate delivery of the same action.
        """
        payload = action.to_payload()
        payload["request_id"] = uuid.uuid4().hex
        payload["account"] = position_address(action.owner)
        raw = await self.rpc_call("ledger_submitAction", [payload])
        result = parser.parse_action_result(raw or {})
        logger.info(
            "Ledger %s for %s: %s %s",
            action.kind.value,
            action.owner,
            "confirmed" if result.success else "refused",
            result.signature or result.message,
        )
        return result
