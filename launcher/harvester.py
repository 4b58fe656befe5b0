"""
Fee Harvester - collects earnings from every revenue stream of every position.

Streams per position:
  - pool fees     (if the position has a pool reference) via the PoolManager
  - creator fees  (bonding-curve launches) via a FeeIncomeDetector that scans
                  recent incoming transfers for small, fee-shaped amounts
                  from the known distributor

Both streams of all in-scope positions run as independent tasks joined with
asyncio.gather. A failing stream contributes zero, its error is recorded on
that position's breakdown entry, and the rest of the batch is unaffected.

harvest() only reads. HarvestSettler.settle() turns a result into ledger
state: earnings first, position fee totals second, creator payout last.
The payout can fail without touching what was already recorded.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from .collaborators import LedgerClient, PoolManager
from .config import LauncherConfig
from .constitution import SURVIVAL_LAWS, DeployMethod, PLACEHOLDER_REFERENCES
from .errors import CollaboratorFailure, PartialHarvestFailure
from .positions import Position, PositionRegistry
from .state import StateStore
from .treasury import TreasuryLedger

logger = logging.getLogger("launcher.harvester")

HARVEST_ALL = "all"


@dataclass
class FeeReading:
    amount: float
    references: list[str] = field(default_factory=list)


@dataclass
class PositionHarvest:
    position_ref: str
    ticker: str
    pool_fees: float = 0.0
    creator_fees: float = 0.0
    errors: list[str] = field(default_factory=list)

    @property
    def total(self) -> float:
        return self.pool_fees + self.creator_fees

    def to_dict(self) -> dict:
        return {
            "position_ref": self.position_ref,
            "ticker": self.ticker,
            "pool_fees": self.pool_fees,
            "creator_fees": self.creator_fees,
            "total": self.total,
            "errors": list(self.errors),
        }


@dataclass
class HarvestResult:
    total: float = 0.0
    breakdown: list[PositionHarvest] = field(default_factory=list)
    references: list[str] = field(default_factory=list)

    @property
    def failures(self) -> int:
        return sum(1 for b in self.breakdown if b.errors)

    def to_dict(self) -> dict:
        return {
            "total_harvested": self.total,
            "breakdown": [b.to_dict() for b in self.breakdown],
            "references": list(self.references),
            "failed_streams": sum(len(b.errors) for b in self.breakdown),
        }


def is_real_reference(reference: Optional[str]) -> bool:
    return bool(reference) and reference not in PLACEHOLDER_REFERENCES


# ============================================================
# CREATOR FEE DETECTION
# ============================================================

class FeeIncomeDetector(ABC):
    """Finds creator-fee income for one position."""

    @abstractmethod
    async def detect(self, position: Position) -> FeeReading:
        ...


class TransferFeeDetector(FeeIncomeDetector):
    """
    Counts incoming transfers that look like creator-fee distributions:
    sent by the configured distributor, attributed to the position, and
    strictly between 0 and the fee-shaped ceiling. Larger transfers are
    deposits, not fees.

    A transfer is only counted once. References credited by a settled
    harvest are remembered in the state store (bounded list).
    """

    def __init__(self, ledger_client: LedgerClient, store: StateStore, distributor: str,
                 scan_limit: int = SURVIVAL_LAWS.FEE_SCAN_LIMIT,
                 ceiling: float = SURVIVAL_LAWS.FEE_SHAPED_CEILING):
        self._client = ledger_client
        self._store = store
        self.distributor = distributor
        self.scan_limit = scan_limit
        self.ceiling = ceiling

    def credited(self) -> set[str]:
        return set(self._store.get("credited_transfers", []) or [])

    def mark_credited(self, references: list[str]):
        if not references:
            return
        kept = list(self._store.get("credited_transfers", []) or [])
        seen = set(kept)
        for ref in references:
            if ref not in seen:
                kept.append(ref)
                seen.add(ref)
        self._store.set("credited_transfers", kept[-SURVIVAL_LAWS.CREDITED_TRANSFERS_KEPT:])

    async def detect(self, position: Position) -> FeeReading:
        if not self.distributor:
            return FeeReading(amount=0.0)
        transfers = await self._client.recent_incoming_transfers(limit=self.scan_limit)
        already = self.credited()
        reading = FeeReading(amount=0.0)
        for t in transfers:
            if t.source != self.distributor:
                continue
            if t.asset_ref != position.ref:
                continue
            if t.reference in already or t.reference in reading.references:
                continue
            if 0 < t.amount < self.ceiling:
                reading.amount += t.amount
                reading.references.append(t.reference)
        return reading


# ============================================================
# HARVESTER
# ============================================================

class FeeHarvester:

    def __init__(self, pool_manager: Optional[PoolManager], detector: Optional[FeeIncomeDetector]):
        self.pool_manager = pool_manager
        self.detector = detector

    def in_scope(self, scope: str, positions: list[Position]) -> list[Position]:
        if scope == HARVEST_ALL:
            return [p for p in positions if p.is_active]
        return [p for p in positions if p.ref == scope and p.is_active]

    async def _pool_stream(self, position: Position) -> FeeReading:
        if not position.pool_ref or self.pool_manager is None:
            return FeeReading(amount=0.0)
        try:
            fees = await self.pool_manager.collect_fees(position.pool_ref)
        except Exception as e:
            raise PartialHarvestFailure(position.ref, "pool", str(e)) from e
        refs = [fees.reference] if is_real_reference(fees.reference) else []
        return FeeReading(amount=max(0.0, fees.native_fees), references=refs)

    async def _creator_stream(self, position: Position) -> FeeReading:
        if position.method != DeployMethod.BONDING_CURVE or self.detector is None:
            return FeeReading(amount=0.0)
        try:
            return await self.detector.detect(position)
        except Exception as e:
            raise PartialHarvestFailure(position.ref, "creator", str(e)) from e

    async def _harvest_position(self, position: Position) -> tuple[PositionHarvest, list[str]]:
        entry = PositionHarvest(position_ref=position.ref, ticker=position.ticker)
        pool, creator = await asyncio.gather(
            self._pool_stream(position),
            self._creator_stream(position),
            return_exceptions=True,
        )

        references: list[str] = []
        if isinstance(pool, BaseException):
            entry.errors.append(str(pool))
            logger.warning(f"Pool fee collection failed for {position.ticker}: {pool}")
        else:
            entry.pool_fees = pool.amount
            references.extend(pool.references)

        if isinstance(creator, BaseException):
            entry.errors.append(str(creator))
            logger.warning(f"Creator fee check failed for {position.ticker}: {creator}")
        else:
            entry.creator_fees = creator.amount
            references.extend(r for r in creator.references if is_real_reference(r))

        return entry, references

    async def harvest(self, scope: str, positions: list[Position]) -> HarvestResult:
        """
        Harvest every in-scope (active) position concurrently.
        Never raises for per-position failures.
        """
        targets = self.in_scope(scope, positions)
        result = HarvestResult()
        if not targets:
            return result

        outcomes = await asyncio.gather(*(self._harvest_position(p) for p in targets))
        for entry, references in outcomes:
            result.breakdown.append(entry)
            result.references.extend(references)
        result.total = sum(b.total for b in result.breakdown)

        logger.info(
            f"Harvest [{scope}]: {result.total:.6f} across {len(targets)} positions "
            f"({result.failures} with failures)"
        )
        return result


# ============================================================
# SETTLEMENT
# ============================================================

@dataclass
class SettlementReport:
    recorded: float
    payout_amount: float = 0.0
    payout_reference: Optional[str] = None
    payout_error: Optional[str] = None
    pending_payout: float = 0.0

    def to_dict(self) -> dict:
        return {
            "recorded": self.recorded,
            "payout_amount": self.payout_amount,
            "payout_reference": self.payout_reference,
            "payout_error": self.payout_error,
            "pending_payout": self.pending_payout,
        }


class HarvestSettler:
    """
    Accepts a HarvestResult into the ledger, then pays the creator split.

    total_earned grows by exactly result.total whatever the payout does.
    A failed payout is carried in pending_payout and added to the next
    successful settlement's payout.
    """

    def __init__(self, config: LauncherConfig, treasury: TreasuryLedger, registry: PositionRegistry,
                 store: StateStore, ledger_client: LedgerClient,
                 detector: Optional[TransferFeeDetector] = None):
        self.config = config
        self.treasury = treasury
        self.registry = registry
        self.store = store
        self.ledger_client = ledger_client
        self.detector = detector

    @property
    def pending_payout(self) -> float:
        return float(self.store.get("pending_payout", 0.0) or 0.0)

    async def settle(self, result: HarvestResult, pay_creator: bool = True) -> SettlementReport:
        async with self.registry.get_lock():
            self.treasury.record_earning(result.total)
            for entry in result.breakdown:
                self.registry.credit_fees(entry.position_ref, entry.total, save=False)
            self.registry.save()
            if self.detector is not None:
                self.detector.mark_credited(result.references)

        report = SettlementReport(recorded=result.total, pending_payout=self.pending_payout)
        if pay_creator:
            await self._pay_creator(result.total, report)
        return report

    async def _pay_creator(self, harvested: float, report: SettlementReport):
        split = self.config.creator_fee_split
        address = self.config.payout_address
        if split <= 0 or not address:
            return

        share = harvested * (split / 100.0) if harvested > 0 else 0.0
        amount = share + self.pending_payout
        if amount <= 0:
            return

        report.payout_amount = amount
        try:
            reference = await self.ledger_client.transfer(address, amount)
        except Exception as e:
            message = e.message if isinstance(e, CollaboratorFailure) else str(e)
            report.payout_error = message
            report.pending_payout = amount
            self.store.set("pending_payout", amount)
            logger.warning(f"Creator payout of {amount:.6f} failed, retrying next cycle: {message}")
            return

        report.payout_reference = reference
        report.pending_payout = 0.0
        self.store.set("pending_payout", 0.0)
        logger.info(f"Sent {amount:.6f} to creator {address[:10]}... ({reference})")
