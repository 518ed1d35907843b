"""
GOAL STORE PROTOCOL
Data access contract the goal engines depend on

Implementations:
- SqlGoalStore (infrastructure.db.repositories.goal_repository)
- InMemoryGoalStore (infrastructure.memory_store)

RULES:
✅ All methods async
✅ Writes serialized by the implementation
✅ atomically() runs a block of reads + writes as one serialized unit
"""

from datetime import date
from typing import Awaitable, Callable, List, Optional, Protocol, TypeVar

from goal_engine.domain.models import AllocationVersion, Goal, GoalAllocation, NewGoal

T = TypeVar("T")


class GoalStore(Protocol):
    """Protocol for goal/allocation data access - ASYNC"""

    # Goals
    async def load_goals(self) -> List[Goal]:
        ...

    async def get_goal(self, goal_id: str) -> Optional[Goal]:
        ...

    async def insert_new_goal(self, new_goal: NewGoal) -> Goal:
        """Persist with a freshly generated identifier"""
        ...

    async def update_goal(self, goal: Goal) -> Goal:
        """Raises NotFoundError when the goal does not exist"""
        ...

    async def delete_goal(self, goal_id: str) -> int:
        """Number of rows removed (0 or 1)"""
        ...

    # Allocation reads
    async def load_allocations_for_non_achieved_goals(self) -> List[GoalAllocation]:
        ...

    async def get_allocations_for_account_on_date(
        self,
        account_id: str,
        query_date: date,
    ) -> List[GoalAllocation]:
        ...

    async def get_allocations_for_goal(self, goal_id: str) -> List[GoalAllocation]:
        ...

    async def get_allocations_for_account(self, account_id: str) -> List[GoalAllocation]:
        ...

    async def get_allocation_by_id(self, allocation_id: str) -> GoalAllocation:
        """Raises NotFoundError when the allocation does not exist"""
        ...

    # Allocation writes
    async def upsert_goal_allocations(self, allocations: List[GoalAllocation]) -> int:
        """Insert-or-update keyed by id; stored init_amount is never overwritten"""
        ...

    async def update_allocation(self, allocation: GoalAllocation) -> GoalAllocation:
        ...

    async def delete_allocation(self, allocation_id: str) -> int:
        ...

    # Versions
    async def get_allocation_versions(self, allocation_id: str) -> List[AllocationVersion]:
        """Ordered by version_start_date ascending"""
        ...

    async def insert_allocation_version(self, version: AllocationVersion) -> AllocationVersion:
        ...

    async def close_allocation_version(self, version_id: str, end_date: date) -> AllocationVersion:
        ...

    async def delete_allocation_version(self, version_id: str) -> int:
        ...

    # Serialization
    async def atomically(self, fn: Callable[[], Awaitable[T]]) -> T:
        ...
