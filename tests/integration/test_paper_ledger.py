"""Integration tests for the in-memory paper ledger."""
from __future__ import annotations

import pytest

from credit_guard.ledger import PaperLedger
from credit_guard.models import (
    ActionKind,
    AgentConfig,
    CollateralEntry,
    DebtEntry,
    GadConfig,
    LedgerAction,
    Position,
)

from credit_guard.units import day_index

from conftest import NOW, OWNER, SOL, USDC


class TestReads:
    @pytest.mark.asyncio
    async def test_unknown_owner_gets_empty_position(self, paper_ledger: PaperLedger) -> None:
        position = await paper_ledger.get_position(OWNER)
        assert position == Position(owner=OWNER)

    @pytest.mark.asyncio
    async def test_prices_only_for_known_assets(self, paper_ledger: PaperLedger) -> None:
        prices = await paper_ledger.get_prices(["SOL", "BTC"])
        assert prices == {"SOL": 100 * USDC}


class TestActions:
    @pytest.mark.asyncio
    async def test_deposit_borrow_repay_withdraw(self, paper_ledger: PaperLedger) -> None:
        for action in (
            LedgerAction(ActionKind.DEPOSIT, OWNER, "SOL", 10 * SOL),
            LedgerAction(ActionKind.BORROW, OWNER, "USDC", 300 * USDC),
            LedgerAction(ActionKind.REPAY, OWNER, "USDC", 100 * USDC),
            LedgerAction(ActionKind.WITHDRAW, OWNER, "SOL", 2 * SOL),
        ):
            result = await paper_ledger.submit(action)
            assert result.success, result.message

        position = paper_ledger.positions[OWNER]
        assert position.collateral == (CollateralEntry("SOL", 8 * SOL),)
        assert position.debts == (DebtEntry("USDC", 200 * USDC),)
        assert position.reputation.successful_repayments == 1
        assert position.reputation.total_repaid == 100 * USDC
        assert len(paper_ledger.history) == 4

    @pytest.mark.asyncio
    async def test_signatures_are_unique(self, paper_ledger: PaperLedger) -> None:
        first = await paper_ledger.submit(LedgerAction(ActionKind.DEPOSIT, OWNER, "SOL", 1))
        second = await paper_ledger.submit(LedgerAction(ActionKind.DEPOSIT, OWNER, "SOL", 1))
        assert first.signature != second.signature

    @pytest.mark.asyncio
    async def test_refused_action_changes_nothing(
        self, paper_ledger: PaperLedger, sample_position: Position
    ) -> None:
        paper_ledger.put_position(sample_position)

        result = await paper_ledger.submit(
            LedgerAction(ActionKind.WITHDRAW, OWNER, "SOL", 101 * SOL)
        )

        assert result.success is False
        assert "negative" in result.message
        assert paper_ledger.positions[OWNER] == sample_position
        assert paper_ledger.history == []

    @pytest.mark.asyncio
    async def test_repay_more_than_debt_refused(
        self, paper_ledger: PaperLedger, sample_position: Position
    ) -> None:
        paper_ledger.put_position(sample_position)
        result = await paper_ledger.submit(
            LedgerAction(ActionKind.REPAY, OWNER, "USDC", 1001 * USDC)
        )
        assert result.success is False

    @pytest.mark.asyncio
    async def test_non_positive_amount_refused(self, paper_ledger: PaperLedger) -> None:
        result = await paper_ledger.submit(LedgerAction(ActionKind.DEPOSIT, OWNER, "SOL", 0))
        assert result.success is False

    @pytest.mark.asyncio
    async def test_repay_takes_interest_first(self, paper_ledger: PaperLedger) -> None:
        paper_ledger.put_position(
            Position(owner=OWNER, debts=(DebtEntry("USDC", 100 * USDC, 10 * USDC),))
        )
        await paper_ledger.submit(LedgerAction(ActionKind.REPAY, OWNER, "USDC", 15 * USDC))
        assert paper_ledger.positions[OWNER].debts == (DebtEntry("USDC", 95 * USDC, 0),)


class TestConfigs:
    @pytest.mark.asyncio
    async def test_configure_actions_store_configs(self, paper_ledger: PaperLedger) -> None:
        agent = AgentConfig(daily_borrow_limit=1000 * USDC)
        gad = GadConfig(enabled=True)
        await paper_ledger.submit(
            LedgerAction(ActionKind.CONFIGURE_AGENT, OWNER, params=agent.to_params())
        )
        await paper_ledger.submit(
            LedgerAction(ActionKind.CONFIGURE_GAD, OWNER, params=gad.to_params())
        )

        assert await paper_ledger.get_agent_config(OWNER) == agent
        assert await paper_ledger.get_gad_config(OWNER) == gad

    @pytest.mark.asyncio
    async def test_gad_step_updates_position_and_config(
        self, paper_ledger: PaperLedger, risky_position: Position
    ) -> None:
        paper_ledger.put_position(risky_position)
        paper_ledger.gad_configs[OWNER] = GadConfig(enabled=True)

        result = await paper_ledger.submit(
            LedgerAction(
                ActionKind.EXECUTE_GAD_STEP,
                OWNER,
                params={
                    "collateral_sold": [{"asset": "SOL", "amount": 5 * SOL}],
                    "debt_repaid": [
                        {"asset": "USDC", "principal": 500 * USDC, "accrued_interest": 0}
                    ],
                    "value": 500 * USDC,
                    "executed_at": 1_700_000_000,
                },
            )
        )

        assert result.success
        position = paper_ledger.positions[OWNER]
        assert position.collateral_amount("SOL") == 95 * SOL
        assert position.debt_entry("USDC").principal == 7700 * USDC
        assert position.reputation.gad_events == 1
        config = paper_ledger.gad_configs[OWNER]
        assert config.total_steps_executed == 1
        assert config.total_deleveraged == 500 * USDC
        assert config.last_execution_time == 1_700_000_000
    @pytest.mark.asyncio
    async def test_gad_step_inside_interval_refused(
        self, paper_ledger: PaperLedger, risky_position: Position
    ) -> None:
        paper_ledger.put_position(risky_position)
        paper_ledger.gad_configs[OWNER] = GadConfig(
            enabled=True, last_execution_time=1_700_000_000, total_steps_executed=1
        )

        result = await paper_ledger.submit(
            LedgerAction(
                ActionKind.EXECUTE_GAD_STEP,
                OWNER,
                params={
                    "collateral_sold": [{"asset": "SOL", "amount": 5 * SOL}],
                    "debt_repaid": [],
                    "value": 500 * USDC,
                    "executed_at": 1_700_000_001,
                },
            )
        )

        assert result.success is False
        assert paper_ledger.positions[OWNER] == risky_position
        assert paper_ledger.gad_configs[OWNER].total_steps_executed == 1
        assert paper_ledger.history == []

    @pytest.mark.asyncio
    async def test_keeper_reward_credited(
        self, paper_ledger: PaperLedger, risky_position: Position
    ) -> None:
        paper_ledger.put_position(risky_position)

        await paper_ledger.submit(
            LedgerAction(
                ActionKind.EXECUTE_GAD_STEP,
                OWNER,
                params={
                    "collateral_sold": [{"asset": "SOL", "amount": 5 * SOL}],
                    "debt_repaid": [],
                    "value": 500 * USDC,
                    "executed_at": 1_700_000_000,
                    "keeper": "0xKEEPER",
                    "keeper_reward": [{"asset": "SOL", "amount": 25_000_000}],
                },
            )
        )

        assert paper_ledger.keeper_rewards == {"0xKEEPER": {"SOL": 25_000_000}}
        assert paper_ledger.positions[OWNER].collateral_amount("SOL") == 95 * SOL - 25_000_000


class TestAgentBudget:
    @staticmethod
    def _agent(**overrides) -> AgentConfig:
        values = dict(
            daily_borrow_limit=1000 * USDC,
            period_day=day_index(NOW),
            x402_enabled=True,
            x402_daily_limit=100 * USDC,
        )
        values.update(overrides)
        return AgentConfig(**values)

    @pytest.mark.asyncio
    async def test_agent_borrow_debits_budget_with_debt(
        self, paper_ledger: PaperLedger, sample_position: Position
    ) -> None:
        paper_ledger.put_position(sample_position)
        paper_ledger.agent_configs[OWNER] = self._agent()

        result = await paper_ledger.submit(
            LedgerAction(
                ActionKind.AGENT_BORROW,
                OWNER,
                "USDC",
                200 * USDC,
                params={"value": 200 * USDC, "now": NOW},
            )
        )

        assert result.success
        assert paper_ledger.positions[OWNER].debt_entry("USDC").principal == 1200 * USDC
        assert paper_ledger.agent_configs[OWNER].daily_borrow_used == 200 * USDC

    @pytest.mark.asyncio
    async def test_agent_borrow_over_budget_refused(
        self, paper_ledger: PaperLedger, sample_position: Position
    ) -> None:
        paper_ledger.put_position(sample_position)
        paper_ledger.agent_configs[OWNER] = self._agent(daily_borrow_used=900 * USDC)

        result = await paper_ledger.submit(
            LedgerAction(
                ActionKind.AGENT_BORROW,
                OWNER,
                "USDC",
                200 * USDC,
                params={"value": 200 * USDC, "now": NOW},
            )
        )

        assert result.success is False
        assert paper_ledger.positions[OWNER] == sample_position
        assert paper_ledger.agent_configs[OWNER].daily_borrow_used == 900 * USDC

    @pytest.mark.asyncio
    async def test_agent_borrow_resets_stale_day(
        self, paper_ledger: PaperLedger, sample_position: Position
    ) -> None:
        paper_ledger.put_position(sample_position)
        paper_ledger.agent_configs[OWNER] = self._agent(
            daily_borrow_used=1000 * USDC, period_day=day_index(NOW) - 1
        )

        result = await paper_ledger.submit(
            LedgerAction(
                ActionKind.AGENT_BORROW,
                OWNER,
                "USDC",
                10 * USDC,
                params={"value": 10 * USDC, "now": NOW},
            )
        )

        assert result.success
        stored = paper_ledger.agent_configs[OWNER]
        assert stored.daily_borrow_used == 10 * USDC
        assert stored.period_day == day_index(NOW)

    @pytest.mark.asyncio
    async def test_record_payment(self, paper_ledger: PaperLedger) -> None:
        paper_ledger.agent_configs[OWNER] = self._agent()
        action = LedgerAction(
            ActionKind.RECORD_PAYMENT, OWNER, params={"value": 60 * USDC, "now": NOW}
        )

        assert (await paper_ledger.submit(action)).success
        assert (await paper_ledger.submit(action)).success is False
        assert paper_ledger.agent_configs[OWNER].x402_daily_used == 60 * USDC

    @pytest.mark.asyncio
    async def test_budget_actions_need_agent_config(self, paper_ledger: PaperLedger) -> None:
        result = await paper_ledger.submit(
            LedgerAction(
                ActionKind.RECORD_PAYMENT, OWNER, params={"value": USDC, "now": NOW}
            )
        )
        assert result.success is False
        assert OWNER not in paper_ledger.agent_configs
