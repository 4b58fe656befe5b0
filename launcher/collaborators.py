"""
Collaborator interfaces - the narrow capabilities the decision core consumes.

Each consumer depends only on what it calls:
  - DeploymentAdmissionController: LedgerClient (balances), Deployer, PoolManager, Clock
  - TreasuryLedger:                LedgerClient (balances), CreditSource
  - FeeHarvester:                  PoolManager (collect_fees), FeeIncomeDetector
  - SurvivalMapper:                Bridge
  - PositionMonitor:               MarketDataSource, Clock

Chain-specific transaction building and signing stays behind these
interfaces. Implementations live in launcher/adapters/.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


# ============================================================
# RESULT TYPES
# ============================================================

@dataclass
class DeployOutcome:
    position_ref: str
    supply: float
    retained_amount: float
    pool_ref: Optional[str] = None
    reference: str = ""               # deploy transaction reference


@dataclass
class PoolFees:
    native_fees: float
    token_fees: float = 0.0
    reference: str = ""


@dataclass
class SwapOutcome:
    output_amount: float
    reference: str = ""


@dataclass
class IncomingTransfer:
    reference: str
    amount: float                     # native units
    source: str                       # sending address
    asset_ref: str = ""               # position the distribution relates to, if known
    timestamp: float = 0.0


@dataclass
class BridgeReceipt:
    reference: str
    estimated_arrival: float          # epoch seconds


@dataclass
class TopUpReceipt:
    credits_added: float
    new_balance: float


@dataclass
class MarketStats:
    price: float = 0.0
    volume_24h: float = 0.0
    holders: int = 0
    graduated: bool = False


# ============================================================
# INTERFACES
# ============================================================

class Clock(ABC):
    @abstractmethod
    def now(self) -> float:
        """Epoch seconds."""


class SystemClock(Clock):
    def now(self) -> float:
        return time.time()


class LedgerClient(ABC):
    """Balances and value movement for the agent's own wallet."""

    @property
    @abstractmethod
    def address(self) -> str:
        ...

    @abstractmethod
    async def get_native_balance(self) -> float:
        ...

    @abstractmethod
    async def get_stable_balance(self) -> float:
        ...

    @abstractmethod
    async def transfer(self, to: str, amount: float) -> str:
        """Send native asset. Returns the transaction reference."""

    @abstractmethod
    async def swap(self, from_asset: str, to_asset: str, amount: float) -> SwapOutcome:
        ...

    @abstractmethod
    async def recent_incoming_transfers(self, limit: int = 50) -> list[IncomingTransfer]:
        ...


class Deployer(ABC):
    @abstractmethod
    async def deploy(self, params: dict, method: str) -> DeployOutcome:
        """Launch an asset. Raises on failure with a descriptive message."""


class PoolManager(ABC):
    @abstractmethod
    async def create_pool(self, position_ref: str, seed_amount: float) -> str:
        """Returns the pool reference."""

    @abstractmethod
    async def collect_fees(self, pool_ref: str) -> PoolFees:
        ...


class Bridge(ABC):
    @abstractmethod
    async def convert_across_chain(self, amount: float) -> BridgeReceipt:
        ...

    @abstractmethod
    async def top_up_credits(self, amount: float) -> TopUpReceipt:
        ...


class CreditSource(ABC):
    @abstractmethod
    async def get_credit_balance(self) -> float:
        ...


class MarketDataSource(ABC):
    @abstractmethod
    async def get_stats(self, position_ref: str) -> MarketStats:
        ...
