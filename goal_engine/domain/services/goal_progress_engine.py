"""
GOAL PROGRESS ENGINE
Point-in-time progress of a goal from its allocations

RESPONSIBILITIES:
- Pick the goal's allocations active on a date
- Attribute each account's growth to the goal by allocation percent
- Value a single allocation from its version history

RULES:
❌ No writes
❌ No rounding
✅ Progress is accumulated growth only (init_value is always 0.0)
✅ Missing account values count as 0.0
"""

from datetime import date
from typing import List, Mapping

from goal_engine.domain.exceptions import GoalValidationError
from goal_engine.domain.models import (
    AllocationDetail,
    Goal,
    GoalAllocation,
    GoalProgressSnapshot,
)
from goal_engine.domain.services.goal_store import GoalStore
from goal_engine.domain.services.growth_calculator import (
    allocation_growth,
    build_segments,
    current_value,
    segmented_growth,
)


class GoalProgressEngine:
    """
    Goal Progress Engine
    Composes allocations and caller-supplied account values into snapshots
    """

    def __init__(self, store: GoalStore):
        self.store = store

    async def calculate_goal_progress_on_date(
        self,
        goal: Goal,
        account_values_at_goal_start: Mapping[str, float],
        current_account_values: Mapping[str, float],
        query_date: date,
    ) -> GoalProgressSnapshot:
        """
        Calculate goal progress on a specific date

        Args:
            goal: Goal to report on (must have a start_date)
            account_values_at_goal_start: account_id -> value at goal.start_date
            current_account_values: account_id -> value at query_date
            query_date: Date the snapshot is for

        Returns:
            GoalProgressSnapshot

        Raises:
            GoalValidationError: If the goal has no start_date
        """
        if goal.start_date is None:
            raise GoalValidationError("Goal must have a start_date")

        allocations = await self.store.get_allocations_for_goal(goal.id)
        active = [a for a in allocations if a.legacy.contains(query_date)]

        total_growth = 0.0
        details: List[AllocationDetail] = []

        for allocation in active:
            value_at_start = account_values_at_goal_start.get(allocation.account_id, 0.0)
            value_now = current_account_values.get(allocation.account_id, 0.0)

            percent = allocation.legacy.percent_allocation
            account_growth = value_now - value_at_start
            allocated_growth = allocation_growth(percent, value_at_start, value_now)

            total_growth += allocated_growth

            details.append(AllocationDetail(
                account_id=allocation.account_id,
                percent_allocation=percent,
                account_value_at_goal_start=value_at_start,
                account_current_value=value_now,
                account_growth=account_growth,
                allocated_growth=allocated_growth,
            ))

        return GoalProgressSnapshot(
            goal_id=goal.id,
            goal_title=goal.title,
            query_date=query_date,
            init_value=0.0,
            current_value=total_growth,
            growth=total_growth,
            allocation_details=details,
        )

    async def get_goal_allocations_on_date(
        self,
        goal_id: str,
        query_date: date,
    ) -> List[GoalAllocation]:
        """
        Active allocations of a non-achieved goal on a date.
        Allocations without both dates are never active.
        """
        allocations = await self.store.load_allocations_for_non_achieved_goals()

        return [
            a for a in allocations
            if a.goal_id == goal_id and a.legacy.contains(query_date)
        ]

    async def calculate_allocation_value(
        self,
        allocation_id: str,
        valuations: Mapping[date, float],
        as_of: date,
    ) -> float:
        """
        Current value of one allocation: init_amount plus growth summed
        across its version history.

        Args:
            allocation_id: Allocation to value
            valuations: End-of-day account values by date
            as_of: Valuation date

        Returns:
            Allocation value on as_of
        """
        allocation = await self.store.get_allocation_by_id(allocation_id)
        versions = await self.store.get_allocation_versions(allocation_id)

        growth = segmented_growth(build_segments(versions, valuations, as_of))
        return current_value(allocation, growth)
