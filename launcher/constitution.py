"""
LAUNCHER CONSTITUTION - Fixed operating rules

Numbers the agent cannot tune at runtime: survival tier burn rates,
auto-bridge bounds, deployment overhead, staleness window.
Anything an operator is expected to change lives in config.py instead.

Designed for: autonomous token-launch agent
"""

from dataclasses import dataclass
from enum import Enum
from typing import Final, Tuple


class DeployMethod(str, Enum):
    """How a position was launched."""
    BONDING_CURVE = "bonding_curve"   # launchpad curve, creator fees paid by a distributor
    DIRECT_MINT = "direct_mint"       # plain mint, optionally seeded into a pool
    UTILITY = "utility"               # fixed-supply utility token


class PositionStatus(str, Enum):
    ACTIVE = "active"
    DEAD = "dead"
    GRADUATED = "graduated"


class SurvivalTier(str, Enum):
    NORMAL = "normal"
    LOW_COMPUTE = "low_compute"
    CRITICAL = "critical"
    DEAD = "dead"


# ============================================================
# SURVIVAL LAWS
# ============================================================

@dataclass(frozen=True)
class SurvivalLaws:
    """Frozen dataclass = immutable at runtime."""

    # --- COMPUTE BURN (credits per hour) ---
    BURN_RATE_NORMAL: Final[float] = 0.5          # frontier model
    BURN_RATE_LOW: Final[float] = 0.1             # cheap model
    BURN_RATE_CRITICAL: Final[float] = 0.02       # minimal inference

    # --- TIER THRESHOLDS (hours of runway at that tier's burn rate) ---
    NORMAL_RUNWAY_HOURS: Final[float] = 24.0
    LOW_COMPUTE_RUNWAY_HOURS: Final[float] = 12.0

    # --- AUTO-BRIDGE ---
    BRIDGE_MIN_STABLE: Final[float] = 1.0          # need more than this to bother
    BRIDGE_RATIO: Final[float] = 0.8               # fraction of stable balance moved
    BRIDGE_CAP: Final[float] = 50.0                # never more than this per evaluation

    # --- DEPLOYMENT ---
    DEFAULT_INITIAL_BUY: Final[float] = 0.5
    DEFAULT_LIQUIDITY: Final[float] = 1.0
    DEPLOY_OVERHEAD: Final[float] = 0.05           # rent + gas
    NATIVE_BASE_UNITS: Final[int] = 10**9          # solvency compared in integer base units

    # --- REBALANCE ---
    DEPLOY_HEADROOM: Final[float] = 0.5            # kept above reserve for the next launch
    MIN_REBALANCE_SWAP: Final[float] = 0.1
    REBALANCE_SWAP_RATIO: Final[float] = 0.5

    # --- MONITOR ---
    STALENESS_WINDOW_SECONDS: Final[int] = 86400

    # --- FEE DETECTION ---
    FEE_SCAN_LIMIT: Final[int] = 50
    FEE_SHAPED_CEILING: Final[float] = 0.1         # larger incoming transfers are not fees
    CREDITED_TRANSFERS_KEPT: Final[int] = 500

    # --- HISTORY ---
    PERFORMANCE_HISTORY_DAYS: Final[int] = 30


SURVIVAL_LAWS = SurvivalLaws()


# Tier table, best first. A tier applies when credits exceed
# runway_hours * burn_rate of that row; the last row is the floor.
@dataclass(frozen=True)
class TierRule:
    tier: SurvivalTier
    threshold: float       # credits must be strictly greater
    burn_rate: float
    action: str


TIER_RULES: Final[Tuple[TierRule, ...]] = (
    TierRule(
        tier=SurvivalTier.NORMAL,
        threshold=SURVIVAL_LAWS.NORMAL_RUNWAY_HOURS * SURVIVAL_LAWS.BURN_RATE_NORMAL,
        burn_rate=SURVIVAL_LAWS.BURN_RATE_NORMAL,
        action="Operating normally. Continue deploying tokens.",
    ),
    TierRule(
        tier=SurvivalTier.LOW_COMPUTE,
        threshold=SURVIVAL_LAWS.LOW_COMPUTE_RUNWAY_HOURS * SURVIVAL_LAWS.BURN_RATE_LOW,
        burn_rate=SURVIVAL_LAWS.BURN_RATE_LOW,
        action="Low credits. Switch to cheaper model. Prioritize fee harvesting.",
    ),
    TierRule(
        tier=SurvivalTier.CRITICAL,
        threshold=0.0,
        burn_rate=SURVIVAL_LAWS.BURN_RATE_CRITICAL,
        action="CRITICAL. Harvest all fees immediately. Bridge stable funds. Stop new deployments.",
    ),
)

DEAD_ACTION: Final[str] = "No credits remaining. Agent will stop."

# Tiers that trigger the stable -> compute credit top-up
BRIDGE_TIERS: Final[Tuple[SurvivalTier, ...]] = (SurvivalTier.LOW_COMPUTE, SurvivalTier.CRITICAL)

# References collaborators hand back when nothing actually landed on chain
PLACEHOLDER_REFERENCES: Final[frozenset] = frozenset({"", "PLACEHOLDER", "PLACEHOLDER_TX"})
