"""
ALLOCATION LIFECYCLE MANAGER
Create / update / delete of goals, allocations and allocation versions

RESPONSIBILITIES:
- Goal CRUD pass-through
- Backfill allocation date ranges from the parent goal before upsert
- Guarded allocation changes: validate, then write, as one serialized unit
- Append allocation versions when the percentage changes

RULES:
❌ No retries (store failures propagate unchanged)
❌ Never changes init_amount after creation
✅ Validation failures raise before any write is issued
✅ Versions never overlap; at most one is open
"""

import logging
import uuid
from dataclasses import replace
from datetime import date, timedelta
from typing import Dict, List, Optional

from goal_engine.domain.exceptions import AllocationValidationError, NotFoundError
from goal_engine.domain.models import (
    AllocationVersion,
    Goal,
    GoalAllocation,
    LegacyRange,
    NewGoal,
    PercentageVersioned,
    ValidationResult,
)
from goal_engine.domain.services.allocation_validator import AllocationValidator
from goal_engine.domain.services.goal_store import GoalStore
from goal_engine.utils.time import now_utc_naive

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class AllocationLifecycleManager:
    """
    Allocation Lifecycle Manager
    Orchestrates every mutation the goal engine performs
    """

    def __init__(self, store: GoalStore, validator: AllocationValidator):
        self.store = store
        self.validator = validator

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    async def get_goals(self) -> List[Goal]:
        return await self.store.load_goals()

    async def create_goal(self, new_goal: NewGoal) -> Goal:
        goal = await self.store.insert_new_goal(new_goal)
        logger.info("Created goal %s (%s)", goal.id, goal.title)
        return goal

    async def update_goal(self, goal: Goal) -> Goal:
        updated = await self.store.update_goal(goal)
        logger.info("Updated goal %s", goal.id)
        return updated

    async def delete_goal(self, goal_id: str) -> int:
        """Deleting an unknown id removes nothing and is not an error"""
        deleted = await self.store.delete_goal(goal_id)
        logger.info("Deleted goal %s (rows=%d)", goal_id, deleted)
        return deleted

    # ------------------------------------------------------------------
    # Allocations (pass-through)
    # ------------------------------------------------------------------

    async def load_goals_allocations(self) -> List[GoalAllocation]:
        return await self.store.load_allocations_for_non_achieved_goals()

    async def upsert_goal_allocations(self, allocations: List[GoalAllocation]) -> int:
        """
        Backfill unset legacy dates from the parent goal, then upsert

        Allocations created without explicit dates inherit the goal's
        start_date/due_date so date-window queries can find them.

        Returns:
            Number of rows affected

        Raises:
            AllocationValidationError: If the batch would push an account's
                total percentage past 100%
        """
        async def _upsert() -> int:
            goals = await self.store.load_goals()
            goal_map: Dict[str, Goal] = {g.id: g for g in goals}

            prepared = [self._backfill_dates(a, goal_map.get(a.goal_id)) for a in allocations]

            self._require(await self.validator.validate_batch_percentages(prepared))
            return await self.store.upsert_goal_allocations(prepared)

        affected = await self.store.atomically(_upsert)
        logger.info("Upserted %d allocations (rows=%d)", len(allocations), affected)
        return affected

    async def update_allocation(self, allocation: GoalAllocation) -> GoalAllocation:
        """Pass-through update; init_amount is fixed at creation"""
        existing = await self.store.get_allocation_by_id(allocation.id)
        if existing.versioned.init_amount != allocation.versioned.init_amount:
            raise self._invalid(
                f"init_amount of allocation {allocation.id} cannot be changed"
            )
        return await self.store.update_allocation(allocation)

    async def delete_allocation(self, allocation_id: str) -> int:
        deleted = await self.store.delete_allocation(allocation_id)
        logger.info("Deleted allocation %s (rows=%d)", allocation_id, deleted)
        return deleted

    # ------------------------------------------------------------------
    # Versions (pass-through)
    # ------------------------------------------------------------------

    async def get_allocation_versions(self, allocation_id: str) -> List[AllocationVersion]:
        return await self.store.get_allocation_versions(allocation_id)

    async def insert_allocation_version(self, version: AllocationVersion) -> AllocationVersion:
        return await self.store.insert_allocation_version(version)

    async def close_allocation_version(self, version_id: str, end_date: date) -> AllocationVersion:
        return await self.store.close_allocation_version(version_id, end_date)

    async def delete_allocation_version(self, version_id: str) -> int:
        return await self.store.delete_allocation_version(version_id)

    # ------------------------------------------------------------------
    # Guarded allocation changes
    # ------------------------------------------------------------------

    async def create_allocation(
        self,
        goal_id: str,
        account_id: str,
        amount: float,
        allocation_percentage: float,
        allocation_date: date,
        current_account_value: float,
    ) -> GoalAllocation:
        """
        Create an allocation and its first version

        Balance and percentage checks run in the same serialized unit as
        the writes, so two concurrent creates cannot jointly pass the cap.

        Raises:
            NotFoundError: If the goal does not exist
            AllocationValidationError: If a rule would be broken
        """
        if amount < 0:
            raise self._invalid("Amount cannot be negative")
        if not 0.0 <= allocation_percentage <= 100.0:
            raise self._invalid("Percentage must be between 0 and 100")
        if amount == 0 and allocation_percentage == 0:
            raise self._invalid("Allocation must be greater than 0")

        async def _create() -> GoalAllocation:
            goal = await self.store.get_goal(goal_id)
            if goal is None:
                raise NotFoundError("goal", goal_id)

            self._require(await self.validator.validate_unallocated_balance(
                account_id, amount, current_account_value,
            ))
            self._require(await self.validator.validate_allocation_percentages(
                account_id, allocation_percentage,
            ))

            allocation = GoalAllocation(
                id=_new_id(),
                goal_id=goal_id,
                account_id=account_id,
                legacy=LegacyRange(
                    percent_allocation=int(round(allocation_percentage)),
                    start_date=goal.start_date,
                    end_date=goal.due_date,
                ),
                versioned=PercentageVersioned(
                    init_amount=amount,
                    allocation_amount=amount,
                    allocation_percentage=allocation_percentage,
                    allocation_date=allocation_date,
                ),
            )
            await self.store.upsert_goal_allocations([allocation])
            await self.store.insert_allocation_version(
                self._open_version(allocation, allocation_date)
            )
            return allocation

        allocation = await self.store.atomically(_create)
        logger.info(
            "Created allocation %s: goal=%s account=%s amount=%s pct=%s",
            allocation.id, goal_id, account_id, amount, allocation_percentage,
        )
        return allocation

    async def update_allocation_amount(
        self,
        allocation_id: str,
        new_amount: float,
        current_account_value: float,
    ) -> GoalAllocation:
        """
        Change allocation_amount; the allocation's own current amount is
        available to itself when checking the balance.
        """
        if new_amount < 0:
            raise self._invalid("Amount cannot be negative")

        async def _update() -> GoalAllocation:
            allocation = await self.store.get_allocation_by_id(allocation_id)

            self._require(await self.validator.validate_unallocated_balance(
                allocation.account_id,
                new_amount,
                current_account_value,
                exclude_allocation_id=allocation_id,
            ))

            updated = replace(
                allocation,
                versioned=replace(allocation.versioned, allocation_amount=new_amount),
            )
            return await self.store.update_allocation(updated)

        updated = await self.store.atomically(_update)
        logger.info("Allocation %s amount -> %s", allocation_id, new_amount)
        return updated

    async def update_allocation_percentage(
        self,
        allocation_id: str,
        new_percentage: float,
        effective_date: date,
    ) -> GoalAllocation:
        """
        Change allocation_percentage from effective_date onwards

        The open version is closed the day before effective_date and a new
        open version starts on effective_date.

        Raises:
            AllocationValidationError: If the cap would be exceeded or
                effective_date does not fall after the open version's start,
                or after the last closed version's end when none is open
        """
        if not 0.0 <= new_percentage <= 100.0:
            raise self._invalid("Percentage must be between 0 and 100")

        async def _update() -> GoalAllocation:
            allocation = await self.store.get_allocation_by_id(allocation_id)

            self._require(await self.validator.validate_allocation_percentages(
                allocation.account_id,
                new_percentage,
                exclude_allocation_id=allocation_id,
            ))

            versions = await self.store.get_allocation_versions(allocation_id)
            open_version = self._find_open_version(versions)
            floor = self._latest_covered_date(versions, open_version)

            if floor is not None and effective_date <= floor:
                raise self._invalid(
                    f"Percentage change must take effect after {floor.isoformat()}"
                )
            if open_version is not None:
                await self.store.close_allocation_version(
                    open_version.id,
                    effective_date - timedelta(days=1),
                )

            updated = replace(
                allocation,
                legacy=replace(allocation.legacy, percent_allocation=int(round(new_percentage))),
                versioned=replace(allocation.versioned, allocation_percentage=new_percentage),
            )
            updated = await self.store.update_allocation(updated)
            await self.store.insert_allocation_version(
                self._open_version(updated, effective_date)
            )
            return updated

        updated = await self.store.atomically(_update)
        logger.info(
            "Allocation %s percentage -> %s from %s",
            allocation_id, new_percentage, effective_date.isoformat(),
        )
        return updated

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _backfill_dates(allocation: GoalAllocation, goal: Optional[Goal]) -> GoalAllocation:
        if goal is None:
            return allocation

        legacy = allocation.legacy
        if legacy.start_date is None:
            legacy = replace(legacy, start_date=goal.start_date)
        if legacy.end_date is None:
            legacy = replace(legacy, end_date=goal.due_date)

        if legacy is allocation.legacy:
            return allocation
        return replace(allocation, legacy=legacy)

    @staticmethod
    def _find_open_version(versions: List[AllocationVersion]) -> Optional[AllocationVersion]:
        open_versions = [v for v in versions if v.is_open]
        if not open_versions:
            return None
        return max(open_versions, key=lambda v: v.version_start_date)

    @staticmethod
    def _latest_covered_date(
        versions: List[AllocationVersion],
        open_version: Optional[AllocationVersion],
    ) -> Optional[date]:
        """Last day a new version may not start on; None when there is no history"""
        if open_version is not None:
            return open_version.version_start_date
        closed_ends = [v.version_end_date for v in versions if v.version_end_date is not None]
        if not closed_ends:
            return None
        return max(closed_ends)

    @staticmethod
    def _open_version(allocation: GoalAllocation, start: date) -> AllocationVersion:
        return AllocationVersion(
            id=_new_id(),
            allocation_id=allocation.id,
            allocation_percentage=allocation.versioned.allocation_percentage,
            allocation_amount=allocation.versioned.allocation_amount,
            version_start_date=start,
            version_end_date=None,
            created_at=now_utc_naive(),
        )

    @staticmethod
    def _require(result: ValidationResult) -> None:
        if not result:
            logger.warning("Allocation change rejected: %s", result.message)
            raise AllocationValidationError(result)

    @staticmethod
    def _invalid(message: str) -> AllocationValidationError:
        logger.warning("Allocation change rejected: %s", message)
        return AllocationValidationError.from_message(message)
