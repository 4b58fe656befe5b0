"""
launchling test configuration

Shared fixtures: a hand-driven clock, a state store in a temp directory,
and a full set of paper collaborators wired into a LaunchAgent.
"""

import pytest

from launcher.agent import assemble_agent
from launcher.collaborators import Clock
from launcher.config import LauncherConfig
from launcher.state import StateStore
from launcher.adapters.paper import (
    PaperLedger, PaperDeployer, PaperPoolManager, PaperCredits, PaperBridge, PaperMarketData,
)

# Wednesday 2026-03-04 15:00:00 UTC (peak hour, weekday)
T0 = 1772636400.0

CREATOR = "CreatorWallet1111111111111111111111111111111"
DISTRIBUTOR = "FeeDistributor111111111111111111111111111111"


class FakeClock(Clock):
    def __init__(self, start: float = T0):
        self.t = start

    def now(self) -> float:
        return self.t

    def advance(self, seconds: float):
        self.t += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / "launcher_state.json"


@pytest.fixture
def store(state_path):
    return StateStore(str(state_path))


@pytest.fixture
def config(state_path):
    return LauncherConfig(
        creator_address=CREATOR,
        creator_fee_split=10.0,
        fee_distributor=DISTRIBUTOR,
        survival_reserve=0.5,
        max_concurrent_positions=5,
        deploy_cooldown_seconds=3600.0,
        state_path=str(state_path),
    )


@pytest.fixture
def ledger():
    return PaperLedger(native=10.0, stable=0.0, address="AgentWallet1111111111111111111111111111111")


@pytest.fixture
def deployer(ledger):
    return PaperDeployer(ledger)


@pytest.fixture
def pool_manager(ledger):
    return PaperPoolManager(ledger)


@pytest.fixture
def credits():
    return PaperCredits(balance=20.0)


@pytest.fixture
def bridge(ledger, credits):
    return PaperBridge(ledger, credits)


@pytest.fixture
def market_data():
    return PaperMarketData()


@pytest.fixture
def build_agent(config, store, ledger, deployer, pool_manager, bridge, credits, market_data, clock):
    """Factory so a test can rebuild the agent (e.g. after a restart) or tweak overhead."""
    def _build(overhead: float = 0.05, store_override: StateStore = None, config_override=None):
        return assemble_agent(
            config=config_override or config,
            store=store_override or store,
            ledger_client=ledger,
            deployer=deployer,
            pool_manager=pool_manager,
            bridge=bridge,
            credit_source=credits,
            market_data=market_data,
            clock=clock,
            overhead=overhead,
        )
    return _build


@pytest.fixture
def agent(build_agent):
    return build_agent()


def launch_params(ticker: str = "TEST", **overrides) -> dict:
    params = {"name": f"{ticker} Token", "ticker": ticker, "description": "test launch"}
    params.update(overrides)
    return params
