"""
Goal Service
Single entry point the command layer talks to
"""

from datetime import date
from typing import List, Mapping, Optional

from goal_engine.domain.exceptions import NotFoundError
from goal_engine.domain.models import (
    AllocationVersion,
    Goal,
    GoalAllocation,
    GoalProgressSnapshot,
    NewGoal,
    ValidationResult,
)
from goal_engine.domain.services.allocation_lifecycle import AllocationLifecycleManager
from goal_engine.domain.services.allocation_validator import AllocationValidator
from goal_engine.domain.services.goal_progress_engine import GoalProgressEngine
from goal_engine.domain.services.goal_store import GoalStore


class GoalService:
    """Wires validator, progress engine and lifecycle manager over one store"""

    def __init__(self, store: GoalStore):
        self.store = store
        self.validator = AllocationValidator(store)
        self.progress = GoalProgressEngine(store)
        self.lifecycle = AllocationLifecycleManager(store, self.validator)

    # Goals
    async def get_goals(self) -> List[Goal]:
        return await self.lifecycle.get_goals()

    async def get_goal(self, goal_id: str) -> Goal:
        goal = await self.store.get_goal(goal_id)
        if goal is None:
            raise NotFoundError("goal", goal_id)
        return goal

    async def create_goal(self, new_goal: NewGoal) -> Goal:
        return await self.lifecycle.create_goal(new_goal)

    async def update_goal(self, goal: Goal) -> Goal:
        return await self.lifecycle.update_goal(goal)

    async def delete_goal(self, goal_id: str) -> int:
        return await self.lifecycle.delete_goal(goal_id)

    # Progress
    async def get_goal_progress(
        self,
        goal_id: str,
        account_values_at_goal_start: Mapping[str, float],
        current_account_values: Mapping[str, float],
        query_date: date,
    ) -> GoalProgressSnapshot:
        goal = await self.get_goal(goal_id)
        return await self.progress.calculate_goal_progress_on_date(
            goal,
            account_values_at_goal_start,
            current_account_values,
            query_date,
        )

    async def get_goal_allocations_on_date(self, goal_id: str, query_date: date) -> List[GoalAllocation]:
        return await self.progress.get_goal_allocations_on_date(goal_id, query_date)

    async def get_account_allocations_on_date(self, account_id: str, query_date: date) -> List[GoalAllocation]:
        """Allocations on the account whose legacy date range covers query_date"""
        return await self.store.get_allocations_for_account_on_date(account_id, query_date)

    async def get_allocation_value(
        self,
        allocation_id: str,
        valuations: Mapping[date, float],
        as_of: date,
    ) -> float:
        return await self.progress.calculate_allocation_value(allocation_id, valuations, as_of)

    # Allocations
    async def load_goals_allocations(self) -> List[GoalAllocation]:
        return await self.lifecycle.load_goals_allocations()

    async def get_goal_allocations(self, goal_id: str) -> List[GoalAllocation]:
        return await self.store.get_allocations_for_goal(goal_id)

    async def upsert_goal_allocations(self, allocations: List[GoalAllocation]) -> int:
        return await self.lifecycle.upsert_goal_allocations(allocations)

    async def create_allocation(
        self,
        goal_id: str,
        account_id: str,
        amount: float,
        allocation_percentage: float,
        allocation_date: date,
        current_account_value: float,
    ) -> GoalAllocation:
        return await self.lifecycle.create_allocation(
            goal_id,
            account_id,
            amount,
            allocation_percentage,
            allocation_date,
            current_account_value,
        )

    async def update_allocation_amount(
        self,
        allocation_id: str,
        new_amount: float,
        current_account_value: float,
    ) -> GoalAllocation:
        return await self.lifecycle.update_allocation_amount(allocation_id, new_amount, current_account_value)

    async def update_allocation_percentage(
        self,
        allocation_id: str,
        new_percentage: float,
        effective_date: date,
    ) -> GoalAllocation:
        return await self.lifecycle.update_allocation_percentage(allocation_id, new_percentage, effective_date)

    async def delete_allocation(self, allocation_id: str) -> int:
        return await self.lifecycle.delete_allocation(allocation_id)

    async def get_allocation_versions(self, allocation_id: str) -> List[AllocationVersion]:
        return await self.lifecycle.get_allocation_versions(allocation_id)

    # Validation
    async def validate_allocation_conflicts(
        self,
        account_id: str,
        start_date: date,
        end_date: date,
        percent_allocation: int,
        exclude_allocation_id: Optional[str] = None,
    ) -> ValidationResult:
        return await self.validator.validate_allocation_conflicts(
            account_id, start_date, end_date, percent_allocation, exclude_allocation_id,
        )

    async def validate_allocation_percentages(
        self,
        account_id: str,
        new_percentage: float,
        exclude_allocation_id: Optional[str] = None,
    ) -> ValidationResult:
        return await self.validator.validate_allocation_percentages(
            account_id, new_percentage, exclude_allocation_id,
        )

    async def get_unallocated_balance(self, account_id: str, current_account_value: float) -> float:
        return await self.validator.get_unallocated_balance(account_id, current_account_value)

    async def validate_unallocated_balance(
        self,
        account_id: str,
        allocation_amount: float,
        current_account_value: float,
        exclude_allocation_id: Optional[str] = None,
    ) -> ValidationResult:
        return await self.validator.validate_unallocated_balance(
            account_id, allocation_amount, current_account_value, exclude_allocation_id,
        )

    async def validate_historical_allocation(
        self,
        account_id: str,
        allocation_amount: float,
        allocation_date: date,
        account_value_at_allocation_date: float,
    ) -> ValidationResult:
        return await self.validator.validate_historical_allocation(
            account_id, allocation_amount, allocation_date, account_value_at_allocation_date,
        )
