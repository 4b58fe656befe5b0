"""
Paper collaborators - in-memory stand-ins for the chain.

Lets the whole agent run (admission, harvest, survival, monitor, HTTP
surface) without signing anything. Balances move the way the real
operations would move them, so the treasury loop behaves realistically:
launches cost native, pool fees accrue and get collected, bridging turns
stable into compute credits.

Failures can be injected per operation with fail_next(op, message).
"""

import time
import uuid
import logging
from typing import Optional

from launcher.collaborators import (
    LedgerClient, Deployer, PoolManager, Bridge, CreditSource, MarketDataSource,
    DeployOutcome, PoolFees, SwapOutcome, IncomingTransfer, BridgeReceipt,
    TopUpReceipt, MarketStats,
)
from launcher.errors import CollaboratorFailure

logger = logging.getLogger("launcher.adapter.paper")

NATIVE = "native"
STABLE = "stable"

BRIDGE_ARRIVAL_SECONDS = 15 * 60
DEFAULT_SUPPLY = 1_000_000_000.0
DEFAULT_RETAINED_RATIO = 0.05


def _ref(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


class _FailureInjector:
    """Shared fail_next() support."""

    def __init__(self, name: str):
        self._name = name
        self._failures: dict[str, list[str]] = {}

    def fail_next(self, op: str, message: str = "simulated failure"):
        self._failures.setdefault(op, []).append(message)

    def _maybe_fail(self, op: str):
        queue = self._failures.get(op)
        if queue:
            raise CollaboratorFailure(self._name, queue.pop(0))


class PaperLedger(LedgerClient, _FailureInjector):

    def __init__(self, native: float = 0.0, stable: float = 0.0,
                 native_price: float = 150.0, address: str = ""):
        _FailureInjector.__init__(self, "ledger")
        self.native = native
        self.stable = stable
        self.native_price = native_price      # stable units per native unit
        self._address = address or _ref("paper-wallet")
        self.incoming: list[IncomingTransfer] = []
        self.sent: list[tuple[str, float, str]] = []

    @property
    def address(self) -> str:
        return self._address

    async def get_native_balance(self) -> float:
        self._maybe_fail("balance")
        return self.native

    async def get_stable_balance(self) -> float:
        self._maybe_fail("balance")
        return self.stable

    def debit(self, amount: float, what: str):
        if amount > self.native:
            raise CollaboratorFailure(
                "ledger", f"insufficient native for {what}: need {amount:.6f}, have {self.native:.6f}"
            )
        self.native -= amount

    async def transfer(self, to: str, amount: float) -> str:
        self._maybe_fail("transfer")
        if amount <= 0:
            raise CollaboratorFailure("ledger", f"invalid transfer amount {amount}")
        self.debit(amount, f"transfer to {to}")
        reference = _ref("paper-tx")
        self.sent.append((to, amount, reference))
        logger.info(f"[paper] transfer {amount:.6f} -> {to[:10]}... ({reference})")
        return reference

    async def swap(self, from_asset: str, to_asset: str, amount: float) -> SwapOutcome:
        self._maybe_fail("swap")
        if amount <= 0:
            raise CollaboratorFailure("ledger", f"invalid swap amount {amount}")
        if (from_asset, to_asset) == (NATIVE, STABLE):
            self.debit(amount, "swap")
            output = amount * self.native_price
            self.stable += output
        elif (from_asset, to_asset) == (STABLE, NATIVE):
            if amount > self.stable:
                raise CollaboratorFailure("ledger", f"insufficient stable for swap: {self.stable:.2f}")
            self.stable -= amount
            output = amount / self.native_price
            self.native += output
        else:
            raise CollaboratorFailure("ledger", f"unsupported swap {from_asset} -> {to_asset}")
        return SwapOutcome(output_amount=output, reference=_ref("paper-swap"))

    async def recent_incoming_transfers(self, limit: int = 50) -> list[IncomingTransfer]:
        self._maybe_fail("history")
        return list(reversed(self.incoming))[:limit]

    def receive(self, amount: float, source: str, asset_ref: str = "") -> IncomingTransfer:
        """Simulate an incoming transfer (e.g. a creator-fee distribution)."""
        transfer = IncomingTransfer(
            reference=_ref("paper-in"),
            amount=amount,
            source=source,
            asset_ref=asset_ref,
            timestamp=time.time(),
        )
        self.native += amount
        self.incoming.append(transfer)
        return transfer


class PaperDeployer(Deployer, _FailureInjector):
    """Mints a position and pays the initial buy from the paper ledger."""

    def __init__(self, ledger: PaperLedger, retained_ratio: float = DEFAULT_RETAINED_RATIO):
        _FailureInjector.__init__(self, "deployer")
        self.ledger = ledger
        self.retained_ratio = retained_ratio
        self.deployed: list[DeployOutcome] = []

    async def deploy(self, params: dict, method: str) -> DeployOutcome:
        self._maybe_fail("deploy")
        initial_buy = float(params.get("initial_buy", 0.0) or 0.0)
        if initial_buy > 0:
            self.ledger.debit(initial_buy, "initial buy")
        supply = float(params.get("supply") or DEFAULT_SUPPLY)
        outcome = DeployOutcome(
            position_ref=_ref("paper-mint"),
            supply=supply,
            retained_amount=supply * self.retained_ratio,
            reference=_ref("paper-deploy"),
        )
        self.deployed.append(outcome)
        logger.info(f"[paper] deployed {params.get('ticker', '?')} via {method}: {outcome.position_ref}")
        return outcome


class PaperPoolManager(PoolManager, _FailureInjector):

    def __init__(self, ledger: PaperLedger):
        _FailureInjector.__init__(self, "pool_manager")
        self.ledger = ledger
        self.pools: dict[str, dict] = {}

    async def create_pool(self, position_ref: str, seed_amount: float) -> str:
        self._maybe_fail("create_pool")
        self.ledger.debit(seed_amount, "pool seed")
        pool_ref = _ref("paper-pool")
        self.pools[pool_ref] = {"position_ref": position_ref, "seed": seed_amount, "accrued": 0.0}
        return pool_ref

    def accrue(self, pool_ref: str, amount: float):
        """Simulate trading fees building up in a pool."""
        self.pools.setdefault(pool_ref, {"position_ref": "", "seed": 0.0, "accrued": 0.0})
        self.pools[pool_ref]["accrued"] += amount

    async def collect_fees(self, pool_ref: str) -> PoolFees:
        self._maybe_fail("collect_fees")
        pool = self.pools.get(pool_ref)
        if pool is None:
            raise CollaboratorFailure("pool_manager", f"unknown pool {pool_ref}")
        amount = pool["accrued"]
        pool["accrued"] = 0.0
        if amount <= 0:
            return PoolFees(native_fees=0.0, reference="PLACEHOLDER_TX")
        self.ledger.native += amount
        return PoolFees(native_fees=amount, reference=_ref("paper-collect"))


class PaperCredits(CreditSource, _FailureInjector):

    def __init__(self, balance: float = 0.0):
        _FailureInjector.__init__(self, "credits")
        self.balance = balance

    async def get_credit_balance(self) -> float:
        self._maybe_fail("balance")
        return self.balance


class PaperBridge(Bridge, _FailureInjector):
    """Stable -> other chain -> compute credits, 1:1."""

    def __init__(self, ledger: PaperLedger, credits: PaperCredits):
        _FailureInjector.__init__(self, "bridge")
        self.ledger = ledger
        self.credits = credits
        self.in_flight: float = 0.0

    async def convert_across_chain(self, amount: float) -> BridgeReceipt:
        self._maybe_fail("convert")
        if amount > self.ledger.stable:
            raise CollaboratorFailure("bridge", f"insufficient stable to bridge: {self.ledger.stable:.2f}")
        self.ledger.stable -= amount
        self.in_flight += amount
        return BridgeReceipt(reference=_ref("paper-bridge"), estimated_arrival=time.time() + BRIDGE_ARRIVAL_SECONDS)

    async def top_up_credits(self, amount: float) -> TopUpReceipt:
        self._maybe_fail("top_up")
        if amount > self.in_flight:
            raise CollaboratorFailure("bridge", f"only {self.in_flight:.2f} bridged, cannot top up {amount:.2f}")
        self.in_flight -= amount
        self.credits.balance += amount
        return TopUpReceipt(credits_added=amount, new_balance=self.credits.balance)


def paper_bridge(ledger: PaperLedger, credits: PaperCredits, live_credits: bool) -> Optional[PaperBridge]:
    """
    The paper bridge only tops up paper credits. Against a live credit
    source it would report top-ups the real balance never sees, so
    auto-bridge is switched off instead.
    """
    if live_credits:
        logger.warning("Auto-bridge disabled: compute credits are live but the only bridge is paper")
        return None
    return PaperBridge(ledger, credits)


class PaperMarketData(MarketDataSource, _FailureInjector):
    """Stats set by hand; unknown refs report an untraded token."""

    def __init__(self, stats: Optional[dict[str, MarketStats]] = None):
        _FailureInjector.__init__(self, "market_data")
        self.stats: dict[str, MarketStats] = dict(stats or {})

    def set(self, position_ref: str, **values):
        self.stats[position_ref] = MarketStats(**values)

    async def get_stats(self, position_ref: str) -> MarketStats:
        self._maybe_fail("stats")
        return self.stats.get(position_ref, MarketStats())
