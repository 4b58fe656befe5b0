"""
Position Registry - every asset the agent has launched, with lifecycle status.

Positions are created only by the admission controller, get fee totals from
harvest settlement, and get status changes from the position monitor.
Nothing is ever deleted: dead and graduated positions stay for audit.

Mutations are append-or-replace-by-ref, and callers that read-then-write
hold get_lock() so a heartbeat harvest and a tool-triggered deploy cannot
lose each other's updates.
"""

import math
import asyncio
import logging
import threading
from dataclasses import dataclass, asdict
from typing import Optional

from .constitution import DeployMethod, PositionStatus
from .state import StateStore

logger = logging.getLogger("launcher.positions")


@dataclass
class Position:
    ref: str                              # mint / address, immutable
    name: str
    ticker: str
    method: DeployMethod
    created_at: float
    initial_supply: float
    retained_supply: float
    pool_ref: Optional[str] = None
    fees_earned: float = 0.0
    status: PositionStatus = PositionStatus.ACTIVE
    spend: float = 0.0                    # native spent launching it
    reference: str = ""                   # deploy tx reference

    @property
    def is_active(self) -> bool:
        return self.status == PositionStatus.ACTIVE

    def age_seconds(self, now: float) -> float:
        return max(0.0, now - self.created_at)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["method"] = self.method.value
        d["status"] = self.status.value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "Position":
        return cls(
            ref=d["ref"],
            name=d.get("name", ""),
            ticker=d.get("ticker", ""),
            method=DeployMethod(d.get("method", DeployMethod.DIRECT_MINT.value)),
            created_at=float(d.get("created_at", 0.0)),
            initial_supply=float(d.get("initial_supply", 0.0)),
            retained_supply=float(d.get("retained_supply", 0.0)),
            pool_ref=d.get("pool_ref"),
            fees_earned=float(d.get("fees_earned", 0.0)),
            status=PositionStatus(d.get("status", PositionStatus.ACTIVE.value)),
            spend=float(d.get("spend", 0.0)),
            reference=d.get("reference", ""),
        )


class PositionRegistry:

    def __init__(self, store: StateStore):
        self._store = store
        self._positions: list[Position] = []
        self._lock: Optional[asyncio.Lock] = None
        self._lock_init_guard = threading.Lock()
        self._load()

    def _load(self):
        raw = self._store.get("positions", []) or []
        loaded = []
        for item in raw:
            try:
                loaded.append(Position.from_dict(item))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable position record {item!r}: {e}")
        self._positions = loaded
        if loaded:
            logger.info(
                f"Loaded {len(loaded)} positions ({self.active_count()} active)"
            )

    def _persist(self):
        self._store.set("positions", [p.to_dict() for p in self._positions])

    def get_lock(self) -> asyncio.Lock:
        """
        Single-writer lock for read-modify-write sequences on the registry
        and the treasury counters. Created lazily because __init__ may run
        outside an event loop.
        """
        if self._lock is None:
            with self._lock_init_guard:
                if self._lock is None:
                    self._lock = asyncio.Lock()
        return self._lock

    # ============================================================
    # QUERIES
    # ============================================================

    def all(self) -> list[Position]:
        return list(self._positions)

    def get(self, ref: str) -> Optional[Position]:
        for p in self._positions:
            if p.ref == ref:
                return p
        return None

    def active(self) -> list[Position]:
        return [p for p in self._positions if p.is_active]

    def active_count(self) -> int:
        return sum(1 for p in self._positions if p.is_active)

    def counts(self) -> dict[str, int]:
        counts = {s.value: 0 for s in PositionStatus}
        for p in self._positions:
            counts[p.status.value] += 1
        counts["total"] = len(self._positions)
        return counts

    def best_performer(self) -> Optional[Position]:
        best = None
        for p in self._positions:
            if p.fees_earned > (best.fees_earned if best else 0.0):
                best = p
        return best

    # ============================================================
    # MUTATIONS
    # ============================================================

    def add(self, position: Position):
        """Append, or replace the existing record with the same ref."""
        for i, existing in enumerate(self._positions):
            if existing.ref == position.ref:
                self._positions[i] = position
                logger.warning(f"Position {position.ref} already registered - replaced")
                self._persist()
                return
        self._positions.append(position)
        self._persist()
        logger.info(f"Position registered: {position.ticker} {position.ref} [{position.method.value}]")

    def credit_fees(self, ref: str, amount: float, save: bool = True) -> bool:
        """Add harvested fees to a position's running total."""
        if not isinstance(amount, (int, float)) or math.isnan(amount) or math.isinf(amount) or amount <= 0:
            return False
        p = self.get(ref)
        if p is None:
            logger.warning(f"Fee credit for unknown position {ref} ignored")
            return False
        p.fees_earned += amount
        if save:
            self._persist()
        return True

    def save(self):
        self._persist()

    def mark_dead(self, ref: str) -> bool:
        """active -> dead. Returns True only if the status changed."""
        return self._transition(ref, PositionStatus.DEAD)

    def mark_graduated(self, ref: str) -> bool:
        """active -> graduated. Returns True only if the status changed."""
        return self._transition(ref, PositionStatus.GRADUATED)

    def _transition(self, ref: str, status: PositionStatus) -> bool:
        p = self.get(ref)
        if p is None or not p.is_active:
            return False
        p.status = status
        self._persist()
        logger.info(f"Position {p.ticker} {p.ref}: active -> {status.value}")
        return True
