"""
GROWTH CALCULATOR
Value growth attributable to an allocation

RULES:
❌ No state, no store access
❌ No rounding (formatting is a presentation concern)
✅ Percentages are 0-100, divided by 100 at the point of use
✅ Segmented growth is additive over version periods
"""

import bisect
from datetime import date, timedelta
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from goal_engine.domain.models import AllocationVersion, GoalAllocation, GrowthSegment


def allocation_growth(percentage: float, value_start: float, value_end: float) -> float:
    """
    growth = (value_end - value_start) * percentage / 100
    """
    return (value_end - value_start) * (percentage / 100.0)


def segmented_growth(segments: Iterable[Tuple[float, float, float]]) -> float:
    """
    Sum of allocation_growth over non-overlapping historical segments.

    Each segment is (percentage, value_start, value_end), one per
    AllocationVersion, so a mid-history percentage change weights each
    period at its own rate.
    """
    return sum(
        (allocation_growth(percentage, start, end) for percentage, start, end in segments),
        0.0,
    )


def current_value(allocation: GoalAllocation, accumulated_growth: float) -> float:
    """Allocation value = fixed initial amount + accumulated growth"""
    return allocation.versioned.init_amount + accumulated_growth


class ValuationSeries:
    """
    End-of-day account valuations keyed by date.

    value_on(day) is the latest valuation on or before day, or 0.0 when the
    series has nothing that early.
    """

    def __init__(self, valuations: Mapping[date, float]):
        ordered = sorted(valuations.items())
        self._dates = [d for d, _ in ordered]
        self._values = [v for _, v in ordered]

    def value_on(self, day: date) -> float:
        idx = bisect.bisect_right(self._dates, day)
        if idx == 0:
            return 0.0
        return self._values[idx - 1]


def build_segments(
    versions: Sequence[AllocationVersion],
    valuations: Mapping[date, float],
    as_of: date,
) -> List[GrowthSegment]:
    """
    Turn an allocation's version history into growth segments.

    Args:
        versions: Versions of one allocation (any order)
        valuations: Account value by date
        as_of: Last day growth is counted for

    Returns:
        One segment per version that started on or before as_of, in
        start-date order. A version covering [start, end] runs from the
        value on start to the value on end. A version that begins the day
        after the previous one ended starts from that version's end value,
        so back-to-back versions chain without gaps.
    """
    series = ValuationSeries(valuations)
    segments: List[GrowthSegment] = []
    previous_end: Optional[date] = None

    for version in sorted(versions, key=lambda v: v.version_start_date):
        if version.version_start_date > as_of:
            continue

        end = version.version_end_date or as_of
        if end > as_of:
            end = as_of

        if previous_end is not None and version.version_start_date == previous_end + timedelta(days=1):
            value_start = segments[-1].value_end
        else:
            value_start = series.value_on(version.version_start_date)

        segments.append(GrowthSegment(
            percentage=version.allocation_percentage,
            value_start=value_start,
            value_end=series.value_on(end),
        ))
        previous_end = end

    return segments
