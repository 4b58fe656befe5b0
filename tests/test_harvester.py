"""
Tests for launcher/harvester.py

Tests cover:
- Fan-out with one failing position (others unaffected, failing one at zero)
- Scope: all active vs a single position; inactive positions skipped
- Creator-fee detection (distributor, attribution, fee-shaped amounts, no double count)
- Settlement: total_earned exactness whether or not the creator payout succeeds
- Pending payout carried to the next settlement
"""

import asyncio

import pytest

from launcher.constitution import DeployMethod, PositionStatus
from launcher.errors import CollaboratorFailure
from launcher.harvester import FeeHarvester, HARVEST_ALL, is_real_reference
from launcher.positions import Position
from launcher.adapters.paper import PaperPoolManager

from conftest import T0, CREATOR, DISTRIBUTOR


def _pool_position(ref: str, pool_ref: str, status=PositionStatus.ACTIVE) -> Position:
    return Position(
        ref=ref, name=ref, ticker=ref.upper(), method=DeployMethod.DIRECT_MINT,
        created_at=T0, initial_supply=1e9, retained_supply=5e7, pool_ref=pool_ref, status=status,
    )


def _curve_position(ref: str) -> Position:
    return Position(
        ref=ref, name=ref, ticker=ref.upper(), method=DeployMethod.BONDING_CURVE,
        created_at=T0, initial_supply=1e9, retained_supply=5e7,
    )


class FlakyPools(PaperPoolManager):
    """Fails collection for one pool."""

    def __init__(self, ledger, broken: str):
        super().__init__(ledger)
        self.broken = broken

    async def collect_fees(self, pool_ref: str):
        if pool_ref == self.broken:
            raise CollaboratorFailure("pool_manager", f"{pool_ref} unreachable")
        return await super().collect_fees(pool_ref)


@pytest.fixture
def three_pools(agent, ledger):
    pools = FlakyPools(ledger, broken="pool-b")
    for ref, pool, amount in (("mint-a", "pool-a", 0.25), ("mint-b", "pool-b", 0.5), ("mint-c", "pool-c", 0.5)):
        agent.registry.add(_pool_position(ref, pool))
        pools.accrue(pool, amount)
    agent.harvester.pool_manager = pools
    return pools


class TestHarvestFanOut:

    async def test_one_failure_does_not_sink_the_batch(self, agent, three_pools):
        result = await agent.harvester.harvest(HARVEST_ALL, agent.registry.all())

        by_ref = {b.position_ref: b for b in result.breakdown}
        assert set(by_ref) == {"mint-a", "mint-b", "mint-c"}
        assert by_ref["mint-a"].pool_fees == 0.25
        assert by_ref["mint-c"].pool_fees == 0.5
        assert by_ref["mint-b"].total == 0.0
        assert by_ref["mint-b"].errors
        assert "pool-b unreachable" in by_ref["mint-b"].errors[0]
        assert result.total == 0.75
        assert result.failures == 1

    async def test_single_scope(self, agent, three_pools):
        result = await agent.harvester.harvest("mint-c", agent.registry.all())
        assert [b.position_ref for b in result.breakdown] == ["mint-c"]
        assert result.total == 0.5

    async def test_inactive_positions_skipped(self, agent, pool_manager):
        agent.registry.add(_pool_position("mint-dead", "pool-x", status=PositionStatus.DEAD))
        pool_manager.accrue("pool-x", 1.0)

        result = await agent.harvester.harvest(HARVEST_ALL, agent.registry.all())
        assert result.breakdown == []
        assert result.total == 0.0

    async def test_placeholder_references_dropped(self, agent, pool_manager):
        agent.registry.add(_pool_position("mint-a", "pool-a"))
        pool_manager.accrue("pool-a", 0.0)

        result = await agent.harvester.harvest(HARVEST_ALL, agent.registry.all())
        assert result.total == 0.0
        assert result.references == []

    def test_is_real_reference(self):
        assert is_real_reference("5xq...sig")
        assert not is_real_reference("PLACEHOLDER_TX")
        assert not is_real_reference("")
        assert not is_real_reference(None)


class TestCreatorFees:

    async def test_only_fee_shaped_distributor_transfers_count(self, agent, ledger):
        agent.registry.add(_curve_position("mint-a"))
        ledger.receive(0.05, DISTRIBUTOR, "mint-a")
        ledger.receive(0.5, DISTRIBUTOR, "mint-a")          # deposit-sized
        ledger.receive(0.03, "SomeoneElse111", "mint-a")     # wrong sender
        ledger.receive(0.02, DISTRIBUTOR, "mint-b")          # other position

        result = await agent.harvester.harvest(HARVEST_ALL, agent.registry.all())

        assert result.total == pytest.approx(0.05)
        assert result.breakdown[0].creator_fees == pytest.approx(0.05)
        assert len(result.references) == 1

    async def test_settled_transfers_not_counted_twice(self, agent, ledger):
        agent.registry.add(_curve_position("mint-a"))
        ledger.receive(0.05, DISTRIBUTOR, "mint-a")

        first = await agent.harvester.harvest(HARVEST_ALL, agent.registry.all())
        await agent.settler.settle(first, pay_creator=False)
        second = await agent.harvester.harvest(HARVEST_ALL, agent.registry.all())

        assert first.total == pytest.approx(0.05)
        assert second.total == 0.0

    async def test_history_failure_recorded_on_position(self, agent, ledger):
        agent.registry.add(_curve_position("mint-a"))
        ledger.fail_next("history", "signature scan failed")

        result = await agent.harvester.harvest(HARVEST_ALL, agent.registry.all())

        assert result.total == 0.0
        assert "signature scan failed" in result.breakdown[0].errors[0]

    async def test_no_detector_means_no_creator_stream(self, agent):
        agent.registry.add(_curve_position("mint-a"))
        harvester = FeeHarvester(pool_manager=None, detector=None)
        result = await harvester.harvest(HARVEST_ALL, agent.registry.all())
        assert result.total == 0.0
        assert result.breakdown[0].errors == []


class TestSettlement:

    async def test_earned_grows_by_exact_total_and_creator_paid(self, agent, three_pools, ledger):
        result = await agent.harvester.harvest(HARVEST_ALL, agent.registry.all())
        before = agent.treasury.total_earned

        report = await agent.settler.settle(result)

        assert agent.treasury.total_earned == before + sum(b.total for b in result.breakdown)
        assert agent.registry.get("mint-a").fees_earned == 0.25
        assert agent.registry.get("mint-b").fees_earned == 0.0
        assert report.payout_amount == pytest.approx(0.075)
        assert ledger.sent[-1][0] == CREATOR
        assert report.pending_payout == 0.0

    async def test_payout_failure_does_not_touch_earnings(self, agent, three_pools, ledger, store):
        result = await agent.harvester.harvest(HARVEST_ALL, agent.registry.all())
        ledger.fail_next("transfer", "blockhash expired")

        report = await agent.settler.settle(result)

        assert agent.treasury.total_earned == 0.75
        assert report.payout_error == "blockhash expired"
        assert report.pending_payout == pytest.approx(0.075)
        assert store.get("pending_payout") == pytest.approx(0.075)
        assert ledger.sent == []

    async def test_pending_payout_added_to_next_settlement(self, agent, three_pools, ledger):
        result = await agent.harvester.harvest(HARVEST_ALL, agent.registry.all())
        ledger.fail_next("transfer", "blockhash expired")
        await agent.settler.settle(result)

        three_pools.accrue("pool-a", 0.25)
        second = await agent.harvester.harvest(HARVEST_ALL, agent.registry.all())
        report = await agent.settler.settle(second)

        assert agent.treasury.total_earned == 1.0
        assert report.payout_amount == pytest.approx(0.025 + 0.075)
        assert report.payout_error is None
        assert agent.settler.pending_payout == 0.0

    async def test_no_payout_without_creator_address(self, agent, three_pools, ledger, config):
        config.creator_address = ""
        result = await agent.harvester.harvest(HARVEST_ALL, agent.registry.all())
        report = await agent.settler.settle(result)
        assert report.payout_amount == 0.0
        assert ledger.sent == []
        assert agent.treasury.total_earned == 0.75

    async def test_empty_harvest_records_nothing(self, agent):
        result = await agent.harvester.harvest(HARVEST_ALL, agent.registry.all())
        report = await agent.settler.settle(result)
        assert report.recorded == 0.0
        assert agent.treasury.total_earned == 0.0


class TestConcurrentHarvests:

    async def test_tool_and_heartbeat_harvest_count_a_transfer_once(self, agent, ledger):
        agent.registry.add(_curve_position("mint-a"))
        ledger.receive(0.05, DISTRIBUTOR, "mint-a")

        await asyncio.gather(agent.harvest(), agent.fee_harvest())

        assert agent.treasury.total_earned == pytest.approx(0.05)
        assert agent.registry.get("mint-a").fees_earned == pytest.approx(0.05)
        assert len(ledger.sent) == 1
        assert ledger.sent[0][1] == pytest.approx(0.005)

    async def test_two_tool_harvests_count_a_transfer_once(self, agent, ledger):
        agent.registry.add(_curve_position("mint-a"))
        ledger.receive(0.05, DISTRIBUTOR, "mint-a")

        first, second = await asyncio.gather(agent.harvest("mint-a"), agent.harvest())

        assert sorted([first["total_harvested"], second["total_harvested"]]) == [0.0, pytest.approx(0.05)]
        assert agent.treasury.total_earned == pytest.approx(0.05)
