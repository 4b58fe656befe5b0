"""
Launch timing advisor.

Heuristic only: peak memecoin hours are US session (14:00-22:00 UTC) and
Asia session (00:00-08:00 UTC); weekends are slightly quieter. Advisory,
never one of the admission gates.
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Optional

BASE_CONFIDENCE = 50
PEAK_BONUS = 20
OFF_PEAK_PENALTY = 10
WEEKEND_PENALTY = 5
PEAK_RESUMES_HOUR = 14


@dataclass
class TimingRecommendation:
    should_launch: bool
    confidence: int
    reason: str
    suggested_wait_minutes: Optional[int]
    volume_condition: str          # "high" | "normal"

    def to_dict(self) -> dict:
        return asdict(self)


def is_peak_hour(hour: int) -> bool:
    return 14 <= hour <= 22 or 0 <= hour <= 8


class TimingAdvisor:

    def evaluate(self, now: Optional[float] = None) -> TimingRecommendation:
        moment = datetime.fromtimestamp(now, tz=timezone.utc) if now is not None else datetime.now(timezone.utc)
        hour = moment.hour
        peak = is_peak_hour(hour)
        weekend = moment.weekday() >= 5

        confidence = BASE_CONFIDENCE
        if peak:
            confidence += PEAK_BONUS
            reason = "Peak trading hours - higher visibility and volume"
        else:
            confidence -= OFF_PEAK_PENALTY
            reason = "Off-peak hours - lower volume but less competition"

        if weekend:
            confidence -= WEEKEND_PENALTY
            reason += " (weekend - slightly lower activity)"

        should_launch = confidence >= BASE_CONFIDENCE
        wait = None
        if not should_launch:
            wait = ((PEAK_RESUMES_HOUR - hour) % 24) * 60

        return TimingRecommendation(
            should_launch=should_launch,
            confidence=confidence,
            reason=reason,
            suggested_wait_minutes=wait,
            volume_condition="high" if peak else "normal",
        )
