"""
Deployment Admission Controller - the gate in front of every launch.

Three hard gates, checked in order, each rejecting with its own reason and
no side effects:

  1. Concurrency - active positions must be below the configured maximum
  2. Solvency    - balance minus projected spend must stay >= survival reserve
  3. Cooldown    - enough time since the last accepted launch

Projected spend = initial buy + liquidity allocation + fixed overhead.
Amounts must be finite and non-negative. Solvency is compared in integer
base units so a balance landing exactly on the reserve is accepted.

Only after the deployer (and pool manager, when a pool is seeded) succeed
does anything change: the position is registered, the cooldown timestamp
advances, and the spend is recorded as invested. A collaborator failure
leaves all state untouched and is surfaced verbatim. No automatic retry;
the caller re-requests.

Any gate can be switched off with a configuration extreme
(max concurrency = inf, reserve = -inf, cooldown = 0).
"""

import math
import logging
from dataclasses import dataclass
from typing import Any, Optional

from .collaborators import Clock, Deployer, PoolManager, DeployOutcome
from .config import LauncherConfig
from .constitution import SURVIVAL_LAWS, DeployMethod, PositionStatus
from .errors import AdmissionRejected, CollaboratorFailure
from .positions import Position, PositionRegistry
from .state import StateStore
from .treasury import TreasuryLedger

logger = logging.getLogger("launcher.admission")


def _amount(params: dict, key: str, default: float) -> float:
    raw = params.get(key)
    if raw is None:
        return default
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        raise ValueError(f"{key} must be a number, got {raw!r}")
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}")
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise ValueError(f"{key} must be a finite non-negative amount, got {raw!r}")
    return value


def _to_units(amount: float) -> int:
    return round(amount * SURVIVAL_LAWS.NATIVE_BASE_UNITS)


@dataclass
class DeploymentRequest:
    name: str
    ticker: str
    description: str = ""
    method: Optional[DeployMethod] = None
    initial_buy: float = SURVIVAL_LAWS.DEFAULT_INITIAL_BUY
    liquidity: float = SURVIVAL_LAWS.DEFAULT_LIQUIDITY
    supply: Optional[float] = None
    image_prompt: Optional[str] = None

    @classmethod
    def from_params(cls, params: dict) -> "DeploymentRequest":
        """Build from a loose tool-call payload."""
        method_raw = params.get("method")
        method = DeployMethod(method_raw) if method_raw else None
        supply = params.get("supply")
        if supply is not None:
            supply = _amount(params, "supply", 0.0)
            if supply == 0:
                raise ValueError("supply must be positive")
        return cls(
            name=params["name"],
            ticker=params.get("ticker") or params["symbol"],
            description=params.get("description", ""),
            method=method,
            initial_buy=_amount(params, "initial_buy", SURVIVAL_LAWS.DEFAULT_INITIAL_BUY),
            liquidity=_amount(params, "liquidity", SURVIVAL_LAWS.DEFAULT_LIQUIDITY),
            supply=supply,
            image_prompt=params.get("image_prompt"),
        )

    def deployer_params(self) -> dict:
        params: dict[str, Any] = {
            "name": self.name,
            "ticker": self.ticker,
            "description": self.description,
            "initial_buy": self.initial_buy,
        }
        if self.supply is not None:
            params["supply"] = self.supply
        if self.image_prompt:
            params["image_prompt"] = self.image_prompt
        return params


@dataclass
class AdmissionDecision:
    accepted: bool
    reason: Optional[str] = None
    result: Optional[dict] = None
    gate: Optional[str] = None            # which gate rejected, if any

    def to_dict(self) -> dict:
        if self.accepted:
            return {"success": True, **(self.result or {})}
        return {"error": self.reason, "gate": self.gate}


class DeploymentAdmissionController:
    """
    Depends on a balance query (via the treasury ledger), the deployers,
    an optional pool manager, and a clock. Registry and ledger are injected
    by reference.
    """

    def __init__(
        self,
        config: LauncherConfig,
        registry: PositionRegistry,
        treasury: TreasuryLedger,
        store: StateStore,
        deployers: dict[DeployMethod, Deployer],
        clock: Clock,
        pool_manager: Optional[PoolManager] = None,
        overhead: float = SURVIVAL_LAWS.DEPLOY_OVERHEAD,
    ):
        self.config = config
        self.registry = registry
        self.treasury = treasury
        self.store = store
        self.deployers = deployers
        self.clock = clock
        self.pool_manager = pool_manager
        self.overhead = overhead
        self.last_deploy_at: float = float(store.get("last_deploy_at", 0.0) or 0.0)

    def projected_spend(self, request: DeploymentRequest) -> float:
        return request.initial_buy + request.liquidity + self.overhead

    # ============================================================
    # GATES
    # ============================================================

    def _check_concurrency(self):
        active = self.registry.active_count()
        limit = self.config.max_concurrent_positions
        if active >= limit:
            raise AdmissionRejected(
                "concurrency",
                f"Max concurrent positions ({limit:g}) reached with {active} active. "
                f"Harvest or retire positions first.",
            )

    async def _check_solvency(self, spend: float) -> float:
        balance = await self.treasury.native_balance()
        reserve = self.config.survival_reserve
        if math.isfinite(reserve) and math.isfinite(balance):
            insolvent = _to_units(balance) - _to_units(spend) < _to_units(reserve)
        else:
            insolvent = balance - spend < reserve
        if insolvent:
            available = balance - reserve
            shortfall = spend - available
            raise AdmissionRejected(
                "solvency",
                f"Insufficient native balance. Need {spend:.4f} but only {available:.4f} "
                f"available after survival reserve {reserve:.4f} (short {shortfall:.4f}).",
            )
        return balance

    def _check_cooldown(self, now: float):
        elapsed = now - self.last_deploy_at
        cooldown = self.config.deploy_cooldown_seconds
        if elapsed < cooldown:
            wait_min = math.ceil((cooldown - elapsed) / 60)
            raise AdmissionRejected(
                "cooldown",
                f"Cooldown active. Wait {wait_min} more minutes.",
            )

    def cooldown_remaining(self, now: Optional[float] = None) -> float:
        now = self.clock.now() if now is None else now
        return max(0.0, self.config.deploy_cooldown_seconds - (now - self.last_deploy_at))

    # ============================================================
    # DELEGATION
    # ============================================================

    def _resolve_method(self, request: DeploymentRequest) -> DeployMethod:
        method = request.method or self.config.default_method
        if method == DeployMethod.BONDING_CURVE and not self.config.bonding_curve_enabled:
            logger.info("Bonding-curve launches disabled - falling back to direct mint")
            method = DeployMethod.DIRECT_MINT
        return method

    async def _delegate(self, request: DeploymentRequest, method: DeployMethod) -> DeployOutcome:
        deployer = self.deployers.get(method)
        if deployer is None:
            raise CollaboratorFailure("deployer", f"No deployer configured for method {method.value}")

        try:
            outcome = await deployer.deploy(request.deployer_params(), method.value)
        except CollaboratorFailure:
            raise
        except Exception as e:
            raise CollaboratorFailure("deployer", str(e)) from e

        seeds_pool = (
            method != DeployMethod.BONDING_CURVE
            and self.config.pools_enabled
            and request.liquidity > 0
            and not outcome.pool_ref
        )
        if seeds_pool:
            if self.pool_manager is None:
                raise CollaboratorFailure("pool_manager", "Pool seeding requested but no pool manager configured")
            try:
                outcome.pool_ref = await self.pool_manager.create_pool(
                    outcome.position_ref, request.liquidity
                )
            except CollaboratorFailure:
                raise
            except Exception as e:
                raise CollaboratorFailure("pool_manager", str(e)) from e

        return outcome

    # ============================================================
    # ENTRY POINT
    # ============================================================

    async def request_deployment(self, request: DeploymentRequest) -> AdmissionDecision:
        """
        Gate, delegate, commit. Never raises for rejections or collaborator
        failures; both come back as a non-accepted decision.
        """
        spend = self.projected_spend(request)
        if not math.isfinite(spend) or spend < 0:
            reason = f"Invalid projected spend {spend!r} for {request.ticker}"
            logger.warning(f"DEPLOY REJECTED [request] {reason}")
            return AdmissionDecision(accepted=False, reason=reason, gate="request")

        async with self.registry.get_lock():
            try:
                self._check_concurrency()
                await self._check_solvency(spend)
                now = self.clock.now()
                self._check_cooldown(now)
            except AdmissionRejected as rej:
                logger.info(f"DEPLOY REJECTED [{rej.gate}] {request.ticker}: {rej.reason}")
                return AdmissionDecision(accepted=False, reason=rej.reason, gate=rej.gate)
            except CollaboratorFailure as e:
                logger.warning(f"Deploy pre-check failed for {request.ticker}: {e.message}")
                return AdmissionDecision(accepted=False, reason=e.message, gate="collaborator")

            method = self._resolve_method(request)
            try:
                outcome = await self._delegate(request, method)
            except CollaboratorFailure as e:
                logger.warning(f"Deploy failed for {request.ticker} [{e.collaborator}]: {e.message}")
                return AdmissionDecision(accepted=False, reason=e.message, gate="collaborator")

            committed_at = self.clock.now()
            position = Position(
                ref=outcome.position_ref,
                name=request.name,
                ticker=request.ticker,
                method=method,
                created_at=committed_at,
                initial_supply=outcome.supply,
                retained_supply=outcome.retained_amount,
                pool_ref=outcome.pool_ref,
                fees_earned=0.0,
                status=PositionStatus.ACTIVE,
                spend=spend,
                reference=outcome.reference,
            )
            self.registry.add(position)
            self.last_deploy_at = committed_at
            self.store.set("last_deploy_at", committed_at)
            self.treasury.record_spend(spend)

        logger.info(f"Deployed {request.ticker}: {outcome.position_ref} via {method.value} (spend {spend:.4f})")
        return AdmissionDecision(
            accepted=True,
            result={
                "position_ref": outcome.position_ref,
                "name": request.name,
                "ticker": request.ticker,
                "method": method.value,
                "supply": outcome.supply,
                "retained_amount": outcome.retained_amount,
                "pool_ref": outcome.pool_ref,
                "reference": outcome.reference,
                "spend": spend,
            },
        )

    def get_status(self) -> dict:
        limit = self.config.max_concurrent_positions
        return {
            "active_positions": self.registry.active_count(),
            "max_concurrent_positions": None if math.isinf(limit) else limit,
            "survival_reserve": self.config.survival_reserve,
            "last_deploy_at": self.last_deploy_at or None,
            "cooldown_remaining_seconds": round(self.cooldown_remaining(), 1),
        }
