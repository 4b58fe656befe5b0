"""
Survival Mapper - turns the compute-credit balance into an operating tier.

  normal       credits > 24h at 0.5/h
  low_compute  credits > 12h at 0.1/h
  critical     credits > 0
  dead         otherwise

The tier is a pure function of the current credit balance, re-evaluated on
every call. There is no hysteresis: a balance sitting on a threshold flips
tier (and the auto-bridge side effect) from one evaluation to the next.

When the tier is low_compute or critical and the stable balance is above
the minimum, a bounded slice of it is bridged across and topped up as
compute credits. The attempt is always reported in the action text.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Optional

from .collaborators import Bridge
from .constitution import (
    SURVIVAL_LAWS, SurvivalTier, TIER_RULES, DEAD_ACTION, BRIDGE_TIERS,
)
from .treasury import TreasurySnapshot

logger = logging.getLogger("launcher.survival")


@dataclass
class SurvivalStatus:
    tier: SurvivalTier
    compute_credits: float
    estimated_runway_hours: float
    native_balance: float
    stable_balance: float
    action: str
    bridge_amount: float = 0.0
    bridge_error: Optional[str] = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d["tier"] = self.tier.value
        return d


def classify(credits: float) -> tuple[SurvivalTier, float, str]:
    """Tier, burn rate and base action for a credit balance."""
    for rule in TIER_RULES:
        if credits > rule.threshold:
            return rule.tier, rule.burn_rate, rule.action
    return SurvivalTier.DEAD, 0.0, DEAD_ACTION


def runway_hours(credits: float, burn_rate: float) -> float:
    if burn_rate <= 0:
        return 0.0
    return round(credits / burn_rate, 1)


def bridge_amount(stable_balance: float) -> float:
    return min(stable_balance * SURVIVAL_LAWS.BRIDGE_RATIO, SURVIVAL_LAWS.BRIDGE_CAP)


class SurvivalMapper:

    def __init__(self, bridge: Optional[Bridge]):
        self.bridge = bridge
        self.last_status: Optional[SurvivalStatus] = None

    async def check_status(self, treasury: TreasurySnapshot) -> SurvivalStatus:
        """Classify, maybe bridge, report. Never raises."""
        credits = treasury.compute_credits
        tier, burn_rate, action = classify(credits)

        status = SurvivalStatus(
            tier=tier,
            compute_credits=credits,
            estimated_runway_hours=runway_hours(credits, burn_rate),
            native_balance=treasury.native_balance,
            stable_balance=treasury.stable_balance,
            action=action,
        )

        if tier in BRIDGE_TIERS and treasury.stable_balance > SURVIVAL_LAWS.BRIDGE_MIN_STABLE:
            await self._auto_bridge(status, treasury.stable_balance)

        if tier != SurvivalTier.NORMAL:
            logger.warning(
                f"Survival tier {tier.value}: {credits:.2f} credits, "
                f"{status.estimated_runway_hours}h runway"
            )
        self.last_status = status
        return status

    async def _auto_bridge(self, status: SurvivalStatus, stable_balance: float):
        amount = bridge_amount(stable_balance)
        status.bridge_amount = amount
        if self.bridge is None:
            status.bridge_error = "no bridge configured"
            status.action += f" Bridge attempt of {amount:g} failed: {status.bridge_error}"
            return
        try:
            await self.bridge.convert_across_chain(amount)
            await self.bridge.top_up_credits(amount)
            status.action += f" Auto-bridging {amount:g} stable to compute credits."
            logger.info(f"Auto-bridged {amount:g} stable to compute credits")
        except Exception as e:
            status.bridge_error = str(e)
            status.action += f" Bridge attempt of {amount:g} failed: {e}"
            logger.warning(f"Auto-bridge of {amount:g} failed: {e}")
