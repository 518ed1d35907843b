"""
Account API Routes
"""

from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query

from goal_engine.api.deps import get_goal_service
from goal_engine.api.routes.allocations import AllocationResponse
from goal_engine.domain.services.goal_service import GoalService

router = APIRouter()


@router.get("/{account_id}/unallocated")
async def unallocated_balance(
    account_id: str,
    current_account_value: float = Query(..., description="Current market value of the account"),
    service: GoalService = Depends(get_goal_service),
):
    balance = await service.get_unallocated_balance(account_id, current_account_value)
    return {
        "account_id": account_id,
        "current_account_value": current_account_value,
        "unallocated_balance": balance,
    }


@router.get("/{account_id}/allocations/on-date", response_model=List[AllocationResponse])
async def account_allocations_on_date(
    account_id: str,
    on: date = Query(..., alias="date"),
    service: GoalService = Depends(get_goal_service),
):
    allocations = await service.get_account_allocations_on_date(account_id, on)
    return [AllocationResponse.from_domain(a) for a in allocations]
