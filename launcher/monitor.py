"""
Position Monitor - periodic lifecycle sweep and portfolio view.

sweep():
  - active bonding-curve launch + market data
    says graduated                                -> graduated
  - active + 24h volume exactly 0 + older than the
    staleness window (default 24h)                -> dead
  One-way and idempotent. A failed market-data lookup leaves the position
  untouched: unknown volume is not zero volume.

portfolio():
  Per-position performance plus totals, for the check_portfolio tool.
"""

import asyncio
import logging
from dataclasses import dataclass, field, asdict
from typing import Optional

from .collaborators import Clock, MarketDataSource, MarketStats
from .constitution import SURVIVAL_LAWS, DeployMethod, PositionStatus
from .positions import Position, PositionRegistry

logger = logging.getLogger("launcher.monitor")


@dataclass
class PositionPerformance:
    ref: str
    ticker: str
    name: str
    status: str
    created_at: float
    age_hours: float
    price: float
    volume_24h: float
    holders: int
    fees_earned: float
    retained_value: float
    stats_error: Optional[str] = None


@dataclass
class PortfolioSummary:
    total_positions: int = 0
    active_positions: int = 0
    dead_positions: int = 0
    graduated_positions: int = 0
    total_retained_value: float = 0.0
    total_fees_earned: float = 0.0
    positions: list[PositionPerformance] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SweepReport:
    checked: int = 0
    marked_dead: list[str] = field(default_factory=list)
    marked_graduated: list[str] = field(default_factory=list)
    lookup_failures: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class PositionMonitor:

    def __init__(self, registry: PositionRegistry, market_data: MarketDataSource, clock: Clock,
                 staleness_seconds: float = SURVIVAL_LAWS.STALENESS_WINDOW_SECONDS):
        self.registry = registry
        self.market_data = market_data
        self.clock = clock
        self.staleness_seconds = staleness_seconds

    async def _lookup(self, position: Position) -> tuple[Position, Optional[MarketStats], Optional[str]]:
        try:
            return position, await self.market_data.get_stats(position.ref), None
        except Exception as e:
            return position, None, str(e)

    async def _lookup_all(self, positions: list[Position]):
        return await asyncio.gather(*(self._lookup(p) for p in positions))

    def is_stale(self, position: Position, stats: MarketStats, now: float) -> bool:
        return stats.volume_24h == 0 and position.age_seconds(now) > self.staleness_seconds

    async def sweep(self) -> SweepReport:
        """Apply lifecycle transitions to every active position."""
        report = SweepReport()
        active = self.registry.active()
        if not active:
            return report

        lookups = await self._lookup_all(active)
        now = self.clock.now()

        async with self.registry.get_lock():
            for position, stats, error in lookups:
                report.checked += 1
                if stats is None:
                    report.lookup_failures.append(position.ref)
                    logger.warning(f"Market data unavailable for {position.ticker}: {error}")
                    continue
                if stats.graduated and position.method == DeployMethod.BONDING_CURVE:
                    if self.registry.mark_graduated(position.ref):
                        report.marked_graduated.append(position.ref)
                elif self.is_stale(position, stats, now):
                    if self.registry.mark_dead(position.ref):
                        report.marked_dead.append(position.ref)

        if report.marked_dead or report.marked_graduated:
            logger.info(
                f"Sweep: {len(report.marked_dead)} dead, "
                f"{len(report.marked_graduated)} graduated of {report.checked} checked"
            )
        return report

    async def portfolio(self) -> PortfolioSummary:
        positions = self.registry.all()
        summary = PortfolioSummary(total_positions=len(positions))
        if not positions:
            return summary

        now = self.clock.now()
        for position, stats, error in await self._lookup_all(positions):
            stats_ok = stats is not None
            stats = stats or MarketStats()
            retained_value = position.retained_supply * stats.price
            summary.positions.append(PositionPerformance(
                ref=position.ref,
                ticker=position.ticker,
                name=position.name,
                status=position.status.value,
                created_at=position.created_at,
                age_hours=round(position.age_seconds(now) / 3600, 1),
                price=stats.price,
                volume_24h=stats.volume_24h,
                holders=stats.holders,
                fees_earned=position.fees_earned,
                retained_value=retained_value,
                stats_error=None if stats_ok else error,
            ))
            summary.total_retained_value += retained_value
            summary.total_fees_earned += position.fees_earned
            if position.status == PositionStatus.ACTIVE:
                summary.active_positions += 1
            elif position.status == PositionStatus.DEAD:
                summary.dead_positions += 1
            else:
                summary.graduated_positions += 1
        return summary
