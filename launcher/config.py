"""
Launcher configuration from environment variables.

main.py calls load_dotenv() first, so a .env file works the same as
exported variables.
"""

import os
import math
import logging
from dataclasses import dataclass
from typing import Optional

from .constitution import DeployMethod

logger = logging.getLogger("launcher.config")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default


@dataclass
class LauncherConfig:
    # Identity / payouts
    creator_address: str = ""
    creator_fee_split: float = 10.0         # percent of harvested fees paid to creator
    network: str = "mainnet-beta"

    # Launch methods
    bonding_curve_enabled: bool = True
    pools_enabled: bool = True
    default_method: DeployMethod = DeployMethod.BONDING_CURVE

    # Admission gates (math.inf disables the concurrency gate)
    survival_reserve: float = 0.5
    max_concurrent_positions: float = 5
    deploy_cooldown_seconds: float = 3600.0

    # Fee detection
    fee_distributor: str = ""

    # Storage
    state_path: str = "data/launcher_state.json"

    # Wallet
    wallet_private_key: str = ""
    wallet_secret: str = ""

    # External services
    conway_api_url: str = ""
    conway_api_key: str = ""
    market_data: str = "paper"              # "paper" | "dexscreener"

    # Paper mode starting balances
    paper_native_balance: float = 5.0
    paper_stable_balance: float = 0.0
    paper_credits: float = 20.0

    # Heartbeat cadence (seconds)
    portfolio_check_interval: int = 900
    fee_harvest_interval: int = 3600
    treasury_rebalance_interval: int = 1800
    strategy_review_interval: int = 86400

    # HTTP surface
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @classmethod
    def from_env(cls) -> "LauncherConfig":
        """Build config from os.environ, falling back to defaults."""
        method_raw = os.getenv("DEFAULT_METHOD", DeployMethod.BONDING_CURVE.value)
        try:
            default_method = DeployMethod(method_raw)
        except ValueError:
            logger.warning(f"Unknown DEFAULT_METHOD={method_raw!r}, using bonding_curve")
            default_method = DeployMethod.BONDING_CURVE

        max_raw = os.getenv("MAX_CONCURRENT_POSITIONS", "")
        if max_raw.strip().lower() in ("inf", "unlimited", "none"):
            max_concurrent: float = math.inf
        else:
            max_concurrent = _env_int("MAX_CONCURRENT_POSITIONS", 5)

        return cls(
            creator_address=os.getenv("CREATOR_ADDRESS", ""),
            creator_fee_split=_env_float("CREATOR_FEE_SPLIT", 10.0),
            network=os.getenv("NETWORK", "mainnet-beta"),
            bonding_curve_enabled=_env_bool("BONDING_CURVE_ENABLED", True),
            pools_enabled=_env_bool("POOLS_ENABLED", True),
            default_method=default_method,
            survival_reserve=_env_float("SURVIVAL_RESERVE", 0.5),
            max_concurrent_positions=max_concurrent,
            deploy_cooldown_seconds=_env_float("DEPLOY_COOLDOWN_MINUTES", 60.0) * 60,
            fee_distributor=os.getenv("FEE_DISTRIBUTOR", ""),
            state_path=os.getenv("STATE_PATH", "data/launcher_state.json"),
            wallet_private_key=os.getenv("WALLET_PRIVATE_KEY", ""),
            wallet_secret=os.getenv("WALLET_SECRET", ""),
            conway_api_url=os.getenv("CONWAY_API_URL", ""),
            conway_api_key=os.getenv("CONWAY_API_KEY", ""),
            market_data=os.getenv("MARKET_DATA", "paper").lower(),
            paper_native_balance=_env_float("PAPER_NATIVE_BALANCE", 5.0),
            paper_stable_balance=_env_float("PAPER_STABLE_BALANCE", 0.0),
            paper_credits=_env_float("PAPER_CREDITS", 20.0),
            portfolio_check_interval=_env_int("HEARTBEAT_PORTFOLIO_SECONDS", 900),
            fee_harvest_interval=_env_int("HEARTBEAT_HARVEST_SECONDS", 3600),
            treasury_rebalance_interval=_env_int("HEARTBEAT_REBALANCE_SECONDS", 1800),
            strategy_review_interval=_env_int("HEARTBEAT_REVIEW_SECONDS", 86400),
            api_host=os.getenv("API_HOST", "0.0.0.0"),
            api_port=_env_int("API_PORT", 8000),
        )

    def describe(self) -> dict:
        """Config for logs and /health. Secrets omitted."""
        return {
            "network": self.network,
            "creator_address": self.creator_address,
            "creator_fee_split": self.creator_fee_split,
            "bonding_curve_enabled": self.bonding_curve_enabled,
            "pools_enabled": self.pools_enabled,
            "default_method": self.default_method.value,
            "survival_reserve": self.survival_reserve,
            "max_concurrent_positions": (
                None if math.isinf(self.max_concurrent_positions)
                else int(self.max_concurrent_positions)
            ),
            "deploy_cooldown_minutes": round(self.deploy_cooldown_seconds / 60, 2),
            "market_data": self.market_data,
        }

    @property
    def credits_api_configured(self) -> bool:
        return bool(self.conway_api_url and self.conway_api_key)

    @property
    def payout_address(self) -> Optional[str]:
        return self.creator_address or None
