"""
DexScreener market data - price, 24h volume and graduation for a position.

Free public API, no key. A token DexScreener has never seen comes back with
no pairs, which reads as an untraded token (zero volume).

Graduation: bonding-curve tokens trade on the curve's own dex id until they
migrate. Once pairs exist and none of them is on a curve dex, the token has
graduated.
"""

import logging
from typing import Optional

import aiohttp

from launcher.collaborators import MarketDataSource, MarketStats
from launcher.errors import CollaboratorFailure

logger = logging.getLogger("launcher.adapter.dexscreener")

_DEXSCREENER_API_BASE = "https://api.dexscreener.com/latest/dex/tokens"
CURVE_DEX_IDS = ("pumpfun", "moonshot")


def _as_float(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def stats_from_pairs(pairs: list[dict], curve_dex_ids=CURVE_DEX_IDS) -> MarketStats:
    if not pairs:
        return MarketStats()

    best = max(pairs, key=lambda p: _as_float((p.get("liquidity") or {}).get("usd")))
    volume = sum(_as_float((p.get("volume") or {}).get("h24")) for p in pairs)
    on_curve = any(p.get("dexId", "") in curve_dex_ids for p in pairs)
    return MarketStats(
        price=_as_float(best.get("priceUsd")),
        volume_24h=volume,
        holders=0,
        graduated=not on_curve,
    )


class DexScreenerMarketData(MarketDataSource):

    def __init__(self, base_url: str = _DEXSCREENER_API_BASE, timeout_seconds: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def get_stats(self, position_ref: str) -> MarketStats:
        url = f"{self.base_url}/{position_ref}"
        session = await self._get_session()
        try:
            async with session.get(url) as resp:
                if resp.status != 200:
                    raise CollaboratorFailure("market_data", f"DexScreener HTTP {resp.status} for {position_ref}")
                data = await resp.json()
        except aiohttp.ClientError as e:
            raise CollaboratorFailure("market_data", f"DexScreener request failed: {e}") from e

        return stats_from_pairs((data or {}).get("pairs") or [])

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
