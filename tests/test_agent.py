"""
Tests for launcher/agent.py

Tools return payloads or {"error": ...}; periodic tasks never raise.
Includes the full deploy -> treasury -> cooldown scenario.
"""

import pytest

from launcher.constitution import DeployMethod
from launcher.positions import Position

from conftest import T0, launch_params


class TestEndToEnd:

    async def test_deploy_then_cooldown(self, build_agent, ledger, clock):
        """Cost 1.0 against balance 2.0 and reserve 0.5, then an immediate second request."""
        agent = build_agent(overhead=0.0)
        ledger.native = 2.0

        first = await agent.deploy(launch_params("ONE", method="direct_mint", initial_buy=0.5, liquidity=0.5))
        assert first["success"] is True

        treasury = await agent.check_treasury()
        assert treasury["native_balance"] == 1.0
        assert treasury["available_for_deploy"] == 0.5
        assert treasury["total_invested"] == 1.0
        assert treasury["net_pnl"] == -1.0

        # cheap enough to clear solvency, still inside the cooldown
        second = await agent.deploy(launch_params("TWO", initial_buy=0.25, liquidity=0.25))
        assert second["gate"] == "cooldown"
        assert second["error"].startswith("Cooldown active.")
        assert agent.registry.counts()["total"] == 1


class TestTools:

    async def test_deploy_invalid_params(self, agent):
        result = await agent.deploy({"ticker": "NONAME"})
        assert "error" in result
        assert agent.registry.all() == []

    @pytest.mark.parametrize("overrides", [
        {"initial_buy": float("nan"), "liquidity": 0},
        {"initial_buy": -5},
        {"liquidity": float("inf")},
    ])
    async def test_deploy_rejects_unusable_amounts(self, agent, ledger, deployer, overrides):
        """Neither a NaN nor a negative spend may slip past the solvency gate."""
        ledger.native = 0.1

        result = await agent.deploy(launch_params(**overrides))

        assert "invalid deploy request" in result["error"]
        assert result["gate"] == "request"
        assert agent.registry.all() == []
        assert agent.treasury.total_invested == 0.0
        assert deployer.deployed == []

    async def test_deploy_unknown_method(self, agent):
        result = await agent.deploy(launch_params(method="airdrop"))
        assert "invalid deploy request" in result["error"]

    async def test_harvest_tool_reports_settlement(self, agent, pool_manager):
        agent.registry.add(Position(
            ref="mint-a", name="A", ticker="A", method=DeployMethod.DIRECT_MINT,
            created_at=T0, initial_supply=1e9, retained_supply=5e7, pool_ref="pool-a",
        ))
        pool_manager.accrue("pool-a", 0.5)

        result = await agent.harvest()

        assert result["total_harvested"] == 0.5
        assert result["settlement"]["recorded"] == 0.5
        assert result["settlement"]["payout_amount"] == pytest.approx(0.05)

    async def test_check_treasury_error(self, agent, ledger):
        ledger.fail_next("balance", "rpc down")
        assert await agent.check_treasury() == {"error": "rpc down"}

    async def test_check_survival(self, agent, credits):
        credits.balance = 5.0
        result = await agent.check_survival()
        assert result["tier"] == "low_compute"
        assert result["estimated_runway_hours"] == 50.0

    async def test_check_portfolio(self, agent):
        await agent.deploy(launch_params())
        result = await agent.check_portfolio()
        assert result["total_positions"] == 1
        assert result["active_positions"] == 1

    async def test_swap_to_stable(self, agent, ledger):
        result = await agent.swap_to_stable(1.0)
        assert result["output_amount"] == 150.0
        assert ledger.native == 9.0
        assert ledger.stable == 150.0

    async def test_swap_rejects_bad_amount(self, agent):
        assert "error" in await agent.swap_to_stable(0)
        assert "error" in await agent.swap_to_stable(-2.0)

    async def test_swap_failure_verbatim(self, agent, ledger):
        ledger.fail_next("swap", "slippage exceeded")
        assert await agent.swap_to_stable(1.0) == {"error": "slippage exceeded"}

    def test_launch_timing_uses_clock(self, agent):
        result = agent.launch_timing()
        assert result["should_launch"] is True
        assert result["confidence"] == 70


class TestPeriodicTasks:

    def test_task_table(self, agent, config):
        tasks = agent.periodic_tasks()
        assert set(tasks) == {"portfolio_check", "fee_harvest", "treasury_rebalance", "strategy_review"}
        assert tasks["fee_harvest"][1] == config.fee_harvest_interval

    async def test_rebalance_parks_half_the_excess(self, agent, ledger):
        # excess = 10 - 0.5 reserve - 0.5 headroom = 9.0 -> swap 4.5
        await agent.treasury_rebalance()
        assert ledger.native == pytest.approx(5.5)
        assert ledger.stable == pytest.approx(675.0)
        assert agent.survival.last_status.tier.value == "normal"

    async def test_rebalance_skips_small_excess(self, agent, ledger):
        ledger.native = 1.05
        await agent.treasury_rebalance()
        assert ledger.native == 1.05
        assert ledger.stable == 0.0

    async def test_rebalance_bridges_when_low(self, agent, ledger, credits):
        credits.balance = 5.0
        await agent.treasury_rebalance()
        status = agent.survival.last_status
        assert status.tier.value == "low_compute"
        assert status.bridge_amount == 50.0
        assert credits.balance == 55.0

    async def test_tasks_swallow_collaborator_failures(self, agent, ledger, market_data):
        await agent.deploy(launch_params())
        ledger.fail_next("balance", "rpc down")
        ledger.fail_next("history", "rpc down")
        market_data.fail_next("stats", "429")

        await agent.treasury_rebalance()
        await agent.fee_harvest()
        await agent.portfolio_check()

    async def test_strategy_review_keeps_thirty(self, agent, clock):
        for _ in range(35):
            await agent.strategy_review()
            clock.advance(86400)

        history = agent.performance_history()
        assert len(history) == 30
        assert history[-1]["total_positions"] == 0
        assert history[-1]["best_performer"] is None
        assert history[0]["date"].startswith("2026-03-09")

    async def test_strategy_review_best_performer(self, agent):
        agent.registry.add(Position(
            ref="mint-a", name="A", ticker="AAA", method=DeployMethod.BONDING_CURVE,
            created_at=T0, initial_supply=1e9, retained_supply=5e7, fees_earned=0.3,
        ))
        await agent.strategy_review()
        record = agent.performance_history()[-1]
        assert record["best_performer"]["ticker"] == "AAA"
