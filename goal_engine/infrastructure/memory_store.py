"""
In-Memory Goal Store
Dict-backed GoalStore used by tests and local experiments.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import replace
from datetime import date
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from goal_engine.domain.exceptions import NotFoundError
from goal_engine.domain.models import AllocationVersion, Goal, GoalAllocation, NewGoal

T = TypeVar("T")


class InMemoryGoalStore:
    def __init__(self) -> None:
        self.goals: Dict[str, Goal] = {}
        self.allocations: Dict[str, GoalAllocation] = {}
        self.versions: Dict[str, AllocationVersion] = {}
        self._lock = asyncio.Lock()

    # Goals
    async def load_goals(self) -> List[Goal]:
        return list(self.goals.values())

    async def get_goal(self, goal_id: str) -> Optional[Goal]:
        return self.goals.get(goal_id)

    async def insert_new_goal(self, new_goal: NewGoal) -> Goal:
        goal = new_goal.with_id(str(uuid.uuid4()))
        self.goals[goal.id] = goal
        return goal

    async def update_goal(self, goal: Goal) -> Goal:
        if goal.id not in self.goals:
            raise NotFoundError("goal", goal.id)
        self.goals[goal.id] = goal
        return goal

    async def delete_goal(self, goal_id: str) -> int:
        if self.goals.pop(goal_id, None) is None:
            return 0
        for allocation_id in [a.id for a in self.allocations.values() if a.goal_id == goal_id]:
            await self.delete_allocation(allocation_id)
        return 1

    # Allocation reads
    async def load_allocations_for_non_achieved_goals(self) -> List[GoalAllocation]:
        return [
            a for a in self.allocations.values()
            if a.goal_id in self.goals and not self.goals[a.goal_id].is_achieved
        ]

    async def get_allocations_for_account_on_date(
        self,
        account_id: str,
        query_date: date,
    ) -> List[GoalAllocation]:
        return [
            a for a in self.allocations.values()
            if a.account_id == account_id and a.legacy.contains(query_date)
        ]

    async def get_allocations_for_goal(self, goal_id: str) -> List[GoalAllocation]:
        return [a for a in self.allocations.values() if a.goal_id == goal_id]

    async def get_allocations_for_account(self, account_id: str) -> List[GoalAllocation]:
        return [a for a in self.allocations.values() if a.account_id == account_id]

    async def get_allocation_by_id(self, allocation_id: str) -> GoalAllocation:
        allocation = self.allocations.get(allocation_id)
        if allocation is None:
            raise NotFoundError("allocation", allocation_id)
        return allocation

    # Allocation writes
    async def upsert_goal_allocations(self, allocations: List[GoalAllocation]) -> int:
        affected = 0
        for allocation in allocations:
            existing = self.allocations.get(allocation.id)
            if existing is not None:
                allocation = replace(
                    allocation,
                    versioned=replace(
                        allocation.versioned,
                        init_amount=existing.versioned.init_amount,
                    ),
                )
            self.allocations[allocation.id] = allocation
            affected += 1
        return affected

    async def update_allocation(self, allocation: GoalAllocation) -> GoalAllocation:
        if allocation.id not in self.allocations:
            raise NotFoundError("allocation", allocation.id)
        self.allocations[allocation.id] = allocation
        return allocation

    async def delete_allocation(self, allocation_id: str) -> int:
        if self.allocations.pop(allocation_id, None) is None:
            return 0
        for version_id in [v.id for v in self.versions.values() if v.allocation_id == allocation_id]:
            del self.versions[version_id]
        return 1

    # Versions
    async def get_allocation_versions(self, allocation_id: str) -> List[AllocationVersion]:
        return sorted(
            (v for v in self.versions.values() if v.allocation_id == allocation_id),
            key=lambda v: v.version_start_date,
        )

    async def insert_allocation_version(self, version: AllocationVersion) -> AllocationVersion:
        if version.allocation_id not in self.allocations:
            raise NotFoundError("allocation", version.allocation_id)
        self.versions[version.id] = version
        return version

    async def close_allocation_version(self, version_id: str, end_date: date) -> AllocationVersion:
        version = self.versions.get(version_id)
        if version is None:
            raise NotFoundError("allocation version", version_id)
        closed = replace(version, version_end_date=end_date)
        self.versions[version_id] = closed
        return closed

    async def delete_allocation_version(self, version_id: str) -> int:
        return 1 if self.versions.pop(version_id, None) is not None else 0

    # Serialization
    async def atomically(self, fn: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            return await fn()
