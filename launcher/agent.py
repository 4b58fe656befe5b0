"""
LaunchAgent - the surface the host scheduler and HTTP server call.

On-demand tools (return a dict payload, or {"error": message}):
  deploy, harvest, check_treasury, check_portfolio, check_survival,
  swap_to_stable, launch_timing, performance_history

Periodic tasks (log failures, never raise):
  portfolio_check     lifecycle sweep (stale -> dead, graduated)
  fee_harvest         harvest active positions, settle, pay creator split
  treasury_rebalance  park excess native in stable, run the survival mapper
  strategy_review     append a daily performance record (rolling 30)

Nothing here is allowed to raise past the boundary.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from .admission import DeploymentAdmissionController, DeploymentRequest
from .collaborators import (
    Clock, LedgerClient, Deployer, PoolManager, Bridge, CreditSource, MarketDataSource,
)
from .config import LauncherConfig
from .constitution import SURVIVAL_LAWS, DeployMethod
from .errors import CollaboratorFailure
from .harvester import FeeHarvester, HarvestSettler, TransferFeeDetector, HARVEST_ALL
from .monitor import PositionMonitor
from .positions import PositionRegistry
from .state import StateStore
from .survival import SurvivalMapper
from .timing import TimingAdvisor
from .treasury import TreasuryLedger

logger = logging.getLogger("launcher.agent")

NATIVE = "native"
STABLE = "stable"


def _error(e: Exception) -> dict:
    if isinstance(e, CollaboratorFailure):
        return {"error": e.message}
    return {"error": str(e) or type(e).__name__}


class LaunchAgent:

    def __init__(
        self,
        config: LauncherConfig,
        store: StateStore,
        registry: PositionRegistry,
        treasury: TreasuryLedger,
        admission: DeploymentAdmissionController,
        harvester: FeeHarvester,
        settler: HarvestSettler,
        survival: SurvivalMapper,
        monitor: PositionMonitor,
        ledger_client: LedgerClient,
        clock: Clock,
        timing: Optional[TimingAdvisor] = None,
    ):
        self.config = config
        self.store = store
        self.registry = registry
        self.treasury = treasury
        self.admission = admission
        self.harvester = harvester
        self.settler = settler
        self.survival = survival
        self.monitor = monitor
        self.ledger_client = ledger_client
        self.clock = clock
        self.timing = timing or TimingAdvisor()
        self._harvest_lock: Optional[asyncio.Lock] = None

    async def _harvest_and_settle(self, scope: str):
        """
        One harvest at a time, from scan through settlement. A transfer is
        only marked credited when its harvest settles, so a second scan
        running in between would count it again.
        """
        if self._harvest_lock is None:
            self._harvest_lock = asyncio.Lock()
        async with self._harvest_lock:
            result = await self.harvester.harvest(scope, self.registry.all())
            report = await self.settler.settle(result)
        return result, report

    # ============================================================
    # TOOLS
    # ============================================================

    async def deploy(self, params: dict) -> dict:
        try:
            request = DeploymentRequest.from_params(params)
        except (KeyError, ValueError, TypeError) as e:
            return {"error": f"invalid deploy request: {e}", "gate": "request"}
        try:
            decision = await self.admission.request_deployment(request)
        except Exception as e:
            logger.error(f"Deploy tool failed unexpectedly: {e}")
            return _error(e)
        return decision.to_dict()

    async def harvest(self, position_ref: Optional[str] = None) -> dict:
        scope = position_ref or HARVEST_ALL
        try:
            result, report = await self._harvest_and_settle(scope)
        except Exception as e:
            logger.warning(f"Harvest tool failed: {e}")
            return _error(e)
        payload = result.to_dict()
        payload["settlement"] = report.to_dict()
        return payload

    async def check_treasury(self) -> dict:
        try:
            snapshot = await self.treasury.current_state()
        except Exception as e:
            logger.warning(f"Treasury check failed: {e}")
            return _error(e)
        counts = self.registry.counts()
        payload = snapshot.to_dict()
        payload.update({
            "position_count": counts["total"],
            "active_positions": counts["active"],
            "pending_payout": self.settler.pending_payout,
            "available_for_deploy": snapshot.native_balance - self.config.survival_reserve,
            "cooldown_remaining_seconds": round(self.admission.cooldown_remaining(), 1),
        })
        if self.survival.last_status is not None:
            payload["survival_tier"] = self.survival.last_status.tier.value
        return payload

    async def check_portfolio(self) -> dict:
        try:
            return (await self.monitor.portfolio()).to_dict()
        except Exception as e:
            logger.warning(f"Portfolio check failed: {e}")
            return _error(e)

    async def check_survival(self) -> dict:
        try:
            snapshot = await self.treasury.current_state()
            status = await self.survival.check_status(snapshot)
        except Exception as e:
            logger.warning(f"Survival check failed: {e}")
            return _error(e)
        return status.to_dict()

    async def swap_to_stable(self, amount: float) -> dict:
        if not isinstance(amount, (int, float)) or amount <= 0:
            return {"error": f"invalid swap amount: {amount!r}"}
        try:
            outcome = await self.ledger_client.swap(NATIVE, STABLE, amount)
        except Exception as e:
            logger.warning(f"Swap of {amount} native failed: {e}")
            return _error(e)
        return {
            "input_amount": amount,
            "output_amount": outcome.output_amount,
            "reference": outcome.reference,
        }

    def launch_timing(self) -> dict:
        return self.timing.evaluate(self.clock.now()).to_dict()

    def performance_history(self) -> list[dict]:
        return list(self.store.get("performance_history", []) or [])

    # ============================================================
    # PERIODIC TASKS
    # ============================================================

    async def portfolio_check(self):
        if not self.registry.all():
            return
        try:
            report = await self.monitor.sweep()
        except Exception as e:
            logger.warning(f"Heartbeat: portfolio check failed: {e}")
            return
        counts = self.registry.counts()
        logger.info(
            f"Heartbeat: portfolio {counts['active']} active, {counts['dead']} dead, "
            f"{counts['graduated']} graduated ({report.checked} checked)"
        )

    async def fee_harvest(self):
        if self.registry.active_count() == 0:
            return
        try:
            result, report = await self._harvest_and_settle(HARVEST_ALL)
        except Exception as e:
            logger.warning(f"Heartbeat: fee harvest failed: {e}")
            return
        if result.total > 0:
            logger.info(f"Heartbeat: harvested {result.total:.6f} in fees")
        if report.payout_error:
            logger.warning(f"Heartbeat: creator payout pending {report.pending_payout:.6f}")

    async def treasury_rebalance(self):
        try:
            snapshot = await self.treasury.current_state()
        except Exception as e:
            logger.warning(f"Heartbeat: treasury read failed: {e}")
            return
        logger.info(
            f"Heartbeat: treasury {snapshot.native_balance:.4f} native, "
            f"{snapshot.stable_balance:.2f} stable, {snapshot.compute_credits:.2f} credits"
        )

        excess = snapshot.native_balance - self.config.survival_reserve - SURVIVAL_LAWS.DEPLOY_HEADROOM
        if excess > SURVIVAL_LAWS.MIN_REBALANCE_SWAP:
            swap_amount = excess * SURVIVAL_LAWS.REBALANCE_SWAP_RATIO
            try:
                outcome = await self.ledger_client.swap(NATIVE, STABLE, swap_amount)
                snapshot.native_balance -= swap_amount
                snapshot.stable_balance += outcome.output_amount
                logger.info(f"Heartbeat: swapped {swap_amount:.4f} native -> {outcome.output_amount:.2f} stable")
            except Exception as e:
                logger.warning(f"Heartbeat: stable swap failed: {e}")

        status = await self.survival.check_status(snapshot)
        if status.tier.value != "normal":
            logger.warning(f"Heartbeat: survival tier {status.tier.value} - {status.action}")

    async def strategy_review(self):
        counts = self.registry.counts()
        best = self.registry.best_performer()
        record = {
            "date": datetime.fromtimestamp(self.clock.now(), tz=timezone.utc).isoformat(),
            "total_positions": counts["total"],
            "active_positions": counts["active"],
            "dead_positions": counts["dead"],
            "graduated_positions": counts["graduated"],
            "total_invested": self.treasury.total_invested,
            "total_earned": self.treasury.total_earned,
            "net_pnl": self.treasury.net_pnl,
            "best_performer": (
                {"ref": best.ref, "ticker": best.ticker, "fees_earned": best.fees_earned}
                if best else None
            ),
        }
        history = self.performance_history()
        history.append(record)
        self.store.set("performance_history", history[-SURVIVAL_LAWS.PERFORMANCE_HISTORY_DAYS:])
        logger.info(
            f"Heartbeat: daily review - {counts['total']} positions, "
            f"P&L {self.treasury.net_pnl:.4f}"
        )

    def periodic_tasks(self) -> dict[str, tuple[Callable[[], Awaitable[None]], int]]:
        """Task name -> (coroutine function, interval seconds)."""
        return {
            "portfolio_check": (self.portfolio_check, self.config.portfolio_check_interval),
            "fee_harvest": (self.fee_harvest, self.config.fee_harvest_interval),
            "treasury_rebalance": (self.treasury_rebalance, self.config.treasury_rebalance_interval),
            "strategy_review": (self.strategy_review, self.config.strategy_review_interval),
        }

    def get_status(self) -> dict:
        return {
            "config": self.config.describe(),
            "admission": self.admission.get_status(),
            "ledger": self.treasury.get_status(),
            "positions": self.registry.counts(),
            "survival_tier": self.survival.last_status.tier.value if self.survival.last_status else None,
        }


def assemble_agent(
    config: LauncherConfig,
    store: StateStore,
    ledger_client: LedgerClient,
    deployer: Deployer,
    pool_manager: Optional[PoolManager],
    bridge: Optional[Bridge],
    credit_source: Optional[CreditSource],
    market_data: MarketDataSource,
    clock: Clock,
    overhead: float = SURVIVAL_LAWS.DEPLOY_OVERHEAD,
) -> LaunchAgent:
    """Build every component around one set of collaborators and one state store."""
    registry = PositionRegistry(store)
    treasury = TreasuryLedger(store, ledger_client, credit_source)
    deployers = {method: deployer for method in DeployMethod}
    admission = DeploymentAdmissionController(
        config, registry, treasury, store, deployers, clock,
        pool_manager=pool_manager, overhead=overhead,
    )
    detector = TransferFeeDetector(ledger_client, store, config.fee_distributor)
    harvester = FeeHarvester(pool_manager, detector)
    settler = HarvestSettler(config, treasury, registry, store, ledger_client, detector)
    return LaunchAgent(
        config=config,
        store=store,
        registry=registry,
        treasury=treasury,
        admission=admission,
        harvester=harvester,
        settler=settler,
        survival=SurvivalMapper(bridge),
        monitor=PositionMonitor(registry, market_data, clock),
        ledger_client=ledger_client,
        clock=clock,
    )
