"""
Treasury Ledger - who put money in, what came back out.

Two kinds of numbers live here and they are handled differently:

- Balances (native, stable, compute credits) are read live from the
  collaborators on every current_state() call and never cached. They move
  for reasons outside the agent's control (top-ups, manual withdrawals).
- Attribution counters (total_invested, total_earned) cannot be derived
  from balances, so they are recorded at the moment of action. They only
  ever grow, and only after the underlying transfer is confirmed. There is
  no rollback primitive.

Net P&L is always recomputed from the two counters, never stored.
"""

import math
import logging
from dataclasses import dataclass, asdict
from typing import Optional

from .collaborators import LedgerClient, CreditSource
from .errors import CollaboratorFailure
from .state import StateStore

logger = logging.getLogger("launcher.treasury")


@dataclass
class TreasurySnapshot:
    native_balance: float
    stable_balance: float
    compute_credits: float
    total_invested: float
    total_earned: float
    wallet_address: str = ""

    @property
    def net_pnl(self) -> float:
        return self.total_earned - self.total_invested

    def to_dict(self) -> dict:
        d = asdict(self)
        d["net_pnl"] = self.net_pnl
        return d


def _valid_amount(amount) -> bool:
    return (
        isinstance(amount, (int, float))
        and not math.isnan(amount)
        and not math.isinf(amount)
        and amount > 0
    )


class TreasuryLedger:
    """
    Injected by reference into the admission controller, the harvest
    settler and the agent. Loads its counters from the state store on
    construction and saves on every mutation.
    """

    def __init__(self, store: StateStore, ledger_client: LedgerClient,
                 credit_source: Optional[CreditSource] = None):
        self._store = store
        self._client = ledger_client
        self._credits = credit_source
        self.total_invested: float = float(store.get("total_invested", 0.0) or 0.0)
        self.total_earned: float = float(store.get("total_earned", 0.0) or 0.0)

    @property
    def net_pnl(self) -> float:
        return self.total_earned - self.total_invested

    # ============================================================
    # LIVE QUERIES
    # ============================================================

    async def native_balance(self) -> float:
        try:
            return await self._client.get_native_balance()
        except CollaboratorFailure:
            raise
        except Exception as e:
            raise CollaboratorFailure("ledger", f"native balance query failed: {e}") from e

    async def current_state(self) -> TreasurySnapshot:
        """
        Query balances live and combine with the running counters.
        A ledger failure raises CollaboratorFailure; a compute-credit
        failure degrades credits to 0 and is logged.
        """
        try:
            native = await self._client.get_native_balance()
            stable = await self._client.get_stable_balance()
        except CollaboratorFailure:
            raise
        except Exception as e:
            raise CollaboratorFailure("ledger", f"balance query failed: {e}") from e

        credits = 0.0
        if self._credits is not None:
            try:
                credits = await self._credits.get_credit_balance()
            except Exception as e:
                logger.warning(f"Compute credit balance unavailable: {e}")

        return TreasurySnapshot(
            native_balance=native,
            stable_balance=stable,
            compute_credits=credits,
            total_invested=self.total_invested,
            total_earned=self.total_earned,
            wallet_address=self._client.address,
        )

    # ============================================================
    # ATTRIBUTION (call only after the external operation confirmed)
    # ============================================================

    def record_spend(self, amount: float) -> bool:
        if not _valid_amount(amount):
            logger.warning(f"RECORD_SPEND REJECTED: invalid amount {amount!r}")
            return False
        self.total_invested += amount
        self._store.set("total_invested", self.total_invested)
        logger.info(f"INVESTED {amount:.6f} | total invested {self.total_invested:.6f}")
        return True

    def record_earning(self, amount: float) -> bool:
        if not _valid_amount(amount):
            if amount != 0:
                logger.warning(f"RECORD_EARNING REJECTED: invalid amount {amount!r}")
            return False
        self.total_earned += amount
        self._store.set("total_earned", self.total_earned)
        logger.info(f"EARNED {amount:.6f} | total earned {self.total_earned:.6f}")
        return True

    def get_status(self) -> dict:
        return {
            "total_invested": round(self.total_invested, 9),
            "total_earned": round(self.total_earned, 9),
            "net_pnl": round(self.net_pnl, 9),
        }
