"""
ALLOCATION VALIDATOR
Percentage and balance rules for goal allocations

RESPONSIBILITIES:
- Cap the percentage claimed on an account at 100%
- Keep allocated amounts within the account's value
- Report failures as ValidationResult, never raise for a rule breach

RULES:
❌ No writes
❌ No rounding of the checked totals
✅ Read-only store access
✅ Messages name the offending account / percentage / amount
"""

import logging
from datetime import date
from typing import Dict, Optional, Sequence

from goal_engine.domain.models import GoalAllocation, ValidationResult
from goal_engine.domain.services.goal_store import GoalStore

logger = logging.getLogger(__name__)

MAX_TOTAL_PERCENTAGE = 100.0


class AllocationValidator:
    """
    Allocation Validator
    Checks proposed allocation changes against an account's existing allocations
    """

    def __init__(self, store: GoalStore):
        self.store = store

    async def validate_allocation_conflicts(
        self,
        account_id: str,
        new_start_date: date,
        new_end_date: date,
        new_percent_allocation: int,
        exclude_allocation_id: Optional[str] = None,
    ) -> ValidationResult:
        """
        Legacy date-range check.

        Sums the new percent with every other allocation on the account
        whose dated range overlaps [new_start_date, new_end_date].
        Kept for callers still on the integer-percent scheme.

        Args:
            account_id: Account being allocated
            new_start_date: Start of the proposed range
            new_end_date: End of the proposed range
            new_percent_allocation: Proposed percent (0-100)
            exclude_allocation_id: Allocation being edited in place

        Returns:
            ValidationResult
        """
        allocations = await self.store.load_allocations_for_non_achieved_goals()

        conflicting_percent = float(new_percent_allocation)

        for allocation in allocations:
            if allocation.account_id != account_id:
                continue
            if exclude_allocation_id is not None and allocation.id == exclude_allocation_id:
                continue
            if allocation.legacy.overlaps(new_start_date, new_end_date):
                conflicting_percent += allocation.versioned.allocation_percentage

        if conflicting_percent > MAX_TOTAL_PERCENTAGE:
            return self._reject(
                f"Total allocation {conflicting_percent:.1f}% exceeds 100% "
                f"on account {account_id} during this period"
            )

        return ValidationResult.ok()

    async def validate_allocation_percentages(
        self,
        account_id: str,
        new_percentage: float,
        exclude_allocation_id: Optional[str] = None,
    ) -> ValidationResult:
        """
        Sum of allocation_percentage across all of the account's allocations,
        regardless of dates, must stay within 100%.
        """
        allocations = await self.store.get_allocations_for_account(account_id)

        total_percent = new_percentage
        for allocation in allocations:
            if exclude_allocation_id is not None and allocation.id == exclude_allocation_id:
                continue
            total_percent += allocation.versioned.allocation_percentage

        if total_percent > MAX_TOTAL_PERCENTAGE:
            return self._reject(
                f"Total allocation percentage {total_percent:.1f}% exceeds 100% "
                f"on account {account_id}"
            )

        return ValidationResult.ok()

    async def validate_batch_percentages(
        self,
        allocations: Sequence[GoalAllocation],
    ) -> ValidationResult:
        """
        Percentage cap for a batch upsert.

        Batch rows replace stored rows with the same id, so each touched
        account is totalled as its untouched allocations plus the batch rows
        on that account.
        """
        batch_ids = {a.id for a in allocations}
        batch_totals: Dict[str, float] = {}
        for allocation in allocations:
            batch_totals[allocation.account_id] = (
                batch_totals.get(allocation.account_id, 0.0)
                + allocation.versioned.allocation_percentage
            )

        for account_id, batch_percent in batch_totals.items():
            total_percent = batch_percent
            for existing in await self.store.get_allocations_for_account(account_id):
                if existing.id in batch_ids:
                    continue
                total_percent += existing.versioned.allocation_percentage

            if total_percent > MAX_TOTAL_PERCENTAGE:
                return self._reject(
                    f"Total allocation percentage {total_percent:.1f}% exceeds 100% "
                    f"on account {account_id}"
                )

        return ValidationResult.ok()

    async def get_unallocated_balance(
        self,
        account_id: str,
        current_account_value: float,
        exclude_allocation_id: Optional[str] = None,
    ) -> float:
        """
        Unallocated = account value - sum(allocation_amount), floored at 0
        """
        allocations = await self.store.get_allocations_for_account(account_id)

        total_allocated = sum(
            (
                a.versioned.allocation_amount
                for a in allocations
                if exclude_allocation_id is None or a.id != exclude_allocation_id
            ),
            0.0,
        )

        return max(0.0, current_account_value - total_allocated)

    async def validate_unallocated_balance(
        self,
        account_id: str,
        allocation_amount: float,
        current_account_value: float,
        exclude_allocation_id: Optional[str] = None,
    ) -> ValidationResult:
        """Proposed amount must fit inside the unallocated balance"""
        unallocated = await self.get_unallocated_balance(
            account_id,
            current_account_value,
            exclude_allocation_id=exclude_allocation_id,
        )

        if allocation_amount > unallocated:
            return self._reject(
                f"Allocation amount ${allocation_amount} exceeds available "
                f"unallocated balance ${unallocated:.2f}"
            )

        return ValidationResult.ok()

    async def validate_historical_allocation(
        self,
        account_id: str,
        allocation_amount: float,
        allocation_date: date,
        account_value_at_allocation_date: float,
    ) -> ValidationResult:
        """
        Check that an allocation made on allocation_date fit the account's
        value on that date.

        Every allocation dated on or before allocation_date counts as still
        active, since allocations carry no deactivation date. This can
        over-count but never under-counts.
        """
        allocations = await self.store.get_allocations_for_account(account_id)

        total_allocated_at_date = 0.0
        for allocation in allocations:
            started = allocation.versioned.allocation_date
            if started is not None and started <= allocation_date:
                total_allocated_at_date += allocation.versioned.init_amount

        total_allocated_at_date += allocation_amount

        if total_allocated_at_date > account_value_at_allocation_date:
            return self._reject(
                f"On {allocation_date.isoformat()}, total allocation "
                f"${total_allocated_at_date:.2f} would exceed account value "
                f"${account_value_at_allocation_date:.2f}"
            )

        return ValidationResult.ok()

    @staticmethod
    def _reject(message: str) -> ValidationResult:
        logger.debug("Allocation rejected: %s", message)
        return ValidationResult.failure(message)
