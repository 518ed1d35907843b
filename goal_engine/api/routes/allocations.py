"""
Allocation API Routes
Guarded allocation changes, version history and rule checks

Rule-check endpoints (/validate/*) always answer 200 with
{"valid": bool, "message": str}; only malformed input is rejected.
"""

import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from goal_engine.api.deps import domain_errors, get_goal_service
from goal_engine.domain.models import (
    AllocationVersion,
    GoalAllocation,
    LegacyRange,
    PercentageVersioned,
    ValidationResult,
)
from goal_engine.domain.services.goal_service import GoalService

logger = logging.getLogger(__name__)

router = APIRouter()


# -------------------------------------------------------------------
# Request / Response models
# -------------------------------------------------------------------

class AllocationResponse(BaseModel):
    id: str
    goal_id: str
    account_id: str
    percent_allocation: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    init_amount: float
    allocation_amount: float
    allocation_percentage: float
    allocation_date: Optional[date] = None

    @classmethod
    def from_domain(cls, allocation: GoalAllocation) -> "AllocationResponse":
        return cls(
            id=allocation.id,
            goal_id=allocation.goal_id,
            account_id=allocation.account_id,
            percent_allocation=allocation.legacy.percent_allocation,
            start_date=allocation.legacy.start_date,
            end_date=allocation.legacy.end_date,
            init_amount=allocation.versioned.init_amount,
            allocation_amount=allocation.versioned.allocation_amount,
            allocation_percentage=allocation.versioned.allocation_percentage,
            allocation_date=allocation.versioned.allocation_date,
        )


class AllocationUpsertItem(BaseModel):
    """Raw allocation row; unset dates are backfilled from the goal"""
    id: str = Field(..., min_length=1)
    goal_id: str = Field(..., min_length=1)
    account_id: str = Field(..., min_length=1)
    percent_allocation: int = Field(0, ge=0, le=100)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    init_amount: float = 0.0
    allocation_amount: float = 0.0
    allocation_percentage: float = Field(0.0, ge=0, le=100)
    allocation_date: Optional[date] = None

    def to_domain(self) -> GoalAllocation:
        return GoalAllocation(
            id=self.id,
            goal_id=self.goal_id,
            account_id=self.account_id,
            legacy=LegacyRange(
                percent_allocation=self.percent_allocation,
                start_date=self.start_date,
                end_date=self.end_date,
            ),
            versioned=PercentageVersioned(
                init_amount=self.init_amount,
                allocation_amount=self.allocation_amount,
                allocation_percentage=self.allocation_percentage,
                allocation_date=self.allocation_date,
            ),
        )


class CreateAllocationRequest(BaseModel):
    goal_id: str
    account_id: str
    amount: float
    allocation_percentage: float
    allocation_date: date
    current_account_value: float


class UpdateAmountRequest(BaseModel):
    amount: float
    current_account_value: float


class UpdatePercentageRequest(BaseModel):
    allocation_percentage: float
    effective_date: date


class AllocationVersionResponse(BaseModel):
    id: str
    allocation_id: str
    allocation_percentage: float
    allocation_amount: float
    version_start_date: date
    version_end_date: Optional[date] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, version: AllocationVersion) -> "AllocationVersionResponse":
        return cls(
            id=version.id,
            allocation_id=version.allocation_id,
            allocation_percentage=version.allocation_percentage,
            allocation_amount=version.allocation_amount,
            version_start_date=version.version_start_date,
            version_end_date=version.version_end_date,
            created_at=version.created_at,
        )


class AllocationValueRequest(BaseModel):
    as_of: date
    valuations: Dict[date, float] = Field(default_factory=dict, description="Account value by date")


class ConflictCheckRequest(BaseModel):
    account_id: str
    start_date: date
    end_date: date
    percent_allocation: int = Field(..., ge=0, le=100)
    exclude_allocation_id: Optional[str] = None


class PercentageCheckRequest(BaseModel):
    account_id: str
    allocation_percentage: float
    exclude_allocation_id: Optional[str] = None


class BalanceCheckRequest(BaseModel):
    account_id: str
    allocation_amount: float
    current_account_value: float
    exclude_allocation_id: Optional[str] = None


class HistoricalCheckRequest(BaseModel):
    account_id: str
    allocation_amount: float
    allocation_date: date
    account_value_at_allocation_date: float


class ValidationResponse(BaseModel):
    valid: bool
    message: str = ""

    @classmethod
    def from_domain(cls, result: ValidationResult) -> "ValidationResponse":
        return cls(valid=result.valid, message=result.message)


# -------------------------------------------------------------------
# Allocations
# -------------------------------------------------------------------

@router.get("", response_model=List[AllocationResponse])
async def list_active_allocations(service: GoalService = Depends(get_goal_service)):
    """Allocations of all goals that are not yet achieved"""
    allocations = await service.load_goals_allocations()
    return [AllocationResponse.from_domain(a) for a in allocations]


@router.put("")
async def upsert_allocations(
    items: List[AllocationUpsertItem],
    service: GoalService = Depends(get_goal_service),
):
    with domain_errors():
        affected = await service.upsert_goal_allocations([item.to_domain() for item in items])
    logger.info("resource changed: %d allocations upserted", affected)
    return {"affected": affected}


@router.post("", response_model=AllocationResponse, status_code=201)
async def create_allocation(
    request: CreateAllocationRequest,
    service: GoalService = Depends(get_goal_service),
):
    with domain_errors():
        allocation = await service.create_allocation(
            request.goal_id,
            request.account_id,
            request.amount,
            request.allocation_percentage,
            request.allocation_date,
            request.current_account_value,
        )
    logger.info("resource changed: allocation %s created", allocation.id)
    return AllocationResponse.from_domain(allocation)


@router.patch("/{allocation_id}/amount", response_model=AllocationResponse)
async def update_allocation_amount(
    allocation_id: str,
    request: UpdateAmountRequest,
    service: GoalService = Depends(get_goal_service),
):
    with domain_errors():
        allocation = await service.update_allocation_amount(
            allocation_id,
            request.amount,
            request.current_account_value,
        )
    logger.info("resource changed: allocation %s amount", allocation_id)
    return AllocationResponse.from_domain(allocation)


@router.patch("/{allocation_id}/percentage", response_model=AllocationResponse)
async def update_allocation_percentage(
    allocation_id: str,
    request: UpdatePercentageRequest,
    service: GoalService = Depends(get_goal_service),
):
    with domain_errors():
        allocation = await service.update_allocation_percentage(
            allocation_id,
            request.allocation_percentage,
            request.effective_date,
        )
    logger.info("resource changed: allocation %s percentage", allocation_id)
    return AllocationResponse.from_domain(allocation)


@router.delete("/{allocation_id}")
async def delete_allocation(allocation_id: str, service: GoalService = Depends(get_goal_service)):
    deleted = await service.delete_allocation(allocation_id)
    if deleted:
        logger.info("resource changed: allocation %s deleted", allocation_id)
    return {"deleted": deleted}


@router.get("/{allocation_id}/versions", response_model=List[AllocationVersionResponse])
async def allocation_versions(allocation_id: str, service: GoalService = Depends(get_goal_service)):
    versions = await service.get_allocation_versions(allocation_id)
    return [AllocationVersionResponse.from_domain(v) for v in versions]


@router.post("/{allocation_id}/value")
async def allocation_value(
    allocation_id: str,
    request: AllocationValueRequest,
    service: GoalService = Depends(get_goal_service),
):
    """Initial amount plus growth accumulated across the allocation's versions"""
    with domain_errors():
        value = await service.get_allocation_value(allocation_id, request.valuations, request.as_of)
    return {"allocation_id": allocation_id, "as_of": request.as_of, "value": value}


# -------------------------------------------------------------------
# Rule checks
# -------------------------------------------------------------------

@router.post("/validate/conflict", response_model=ValidationResponse)
async def check_conflict(
    request: ConflictCheckRequest,
    service: GoalService = Depends(get_goal_service),
):
    result = await service.validate_allocation_conflicts(
        request.account_id,
        request.start_date,
        request.end_date,
        request.percent_allocation,
        request.exclude_allocation_id,
    )
    return ValidationResponse.from_domain(result)


@router.post("/validate/percentages", response_model=ValidationResponse)
async def check_percentages(
    request: PercentageCheckRequest,
    service: GoalService = Depends(get_goal_service),
):
    result = await service.validate_allocation_percentages(
        request.account_id,
        request.allocation_percentage,
        request.exclude_allocation_id,
    )
    return ValidationResponse.from_domain(result)


@router.post("/validate/balance", response_model=ValidationResponse)
async def check_balance(
    request: BalanceCheckRequest,
    service: GoalService = Depends(get_goal_service),
):
    result = await service.validate_unallocated_balance(
        request.account_id,
        request.allocation_amount,
        request.current_account_value,
        request.exclude_allocation_id,
    )
    return ValidationResponse.from_domain(result)


@router.post("/validate/historical", response_model=ValidationResponse)
async def check_historical(
    request: HistoricalCheckRequest,
    service: GoalService = Depends(get_goal_service),
):
    result = await service.validate_historical_allocation(
        request.account_id,
        request.allocation_amount,
        request.allocation_date,
        request.account_value_at_allocation_date,
    )
    return ValidationResponse.from_domain(result)
