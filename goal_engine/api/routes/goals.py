"""
Goal API Routes
Create, update and delete goals; query goal progress and allocations
"""

import logging
from datetime import date
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from goal_engine.api.deps import domain_errors, get_goal_service
from goal_engine.api.routes.allocations import AllocationResponse
from goal_engine.domain.models import Goal, GoalProgressSnapshot, NewGoal
from goal_engine.domain.services.goal_service import GoalService

logger = logging.getLogger(__name__)

router = APIRouter()


# -------------------------------------------------------------------
# Request / Response models
# -------------------------------------------------------------------

class GoalPayload(BaseModel):
    """Goal fields accepted on create and update"""
    title: str = Field(..., min_length=1, max_length=200)
    target_amount: float = Field(..., gt=0)
    is_achieved: bool = False
    description: Optional[str] = None
    target_return_rate: Optional[float] = None
    due_date: Optional[date] = None
    monthly_investment: Optional[float] = None
    start_date: Optional[date] = None
    initial_actual_value: Optional[float] = None


class GoalResponse(GoalPayload):
    id: str

    @classmethod
    def from_domain(cls, goal: Goal) -> "GoalResponse":
        return cls(
            id=goal.id,
            title=goal.title,
            target_amount=goal.target_amount,
            is_achieved=goal.is_achieved,
            description=goal.description,
            target_return_rate=goal.target_return_rate,
            due_date=goal.due_date,
            monthly_investment=goal.monthly_investment,
            start_date=goal.start_date,
            initial_actual_value=goal.initial_actual_value,
        )


class GoalProgressRequest(BaseModel):
    query_date: date
    account_values_at_goal_start: Dict[str, float] = Field(default_factory=dict)
    current_account_values: Dict[str, float] = Field(default_factory=dict)


class AllocationDetailResponse(BaseModel):
    account_id: str
    percent_allocation: int
    account_value_at_goal_start: float
    account_current_value: float
    account_growth: float
    allocated_growth: float


class GoalProgressResponse(BaseModel):
    goal_id: str
    goal_title: str
    query_date: date
    init_value: float
    current_value: float
    growth: float
    allocation_details: List[AllocationDetailResponse]

    @classmethod
    def from_domain(cls, snapshot: GoalProgressSnapshot) -> "GoalProgressResponse":
        return cls(
            goal_id=snapshot.goal_id,
            goal_title=snapshot.goal_title,
            query_date=snapshot.query_date,
            init_value=snapshot.init_value,
            current_value=snapshot.current_value,
            growth=snapshot.growth,
            allocation_details=[
                AllocationDetailResponse(
                    account_id=d.account_id,
                    percent_allocation=d.percent_allocation,
                    account_value_at_goal_start=d.account_value_at_goal_start,
                    account_current_value=d.account_current_value,
                    account_growth=d.account_growth,
                    allocated_growth=d.allocated_growth,
                )
                for d in snapshot.allocation_details
            ],
        )


# -------------------------------------------------------------------
# Routes
# -------------------------------------------------------------------

@router.get("", response_model=List[GoalResponse])
async def list_goals(service: GoalService = Depends(get_goal_service)):
    goals = await service.get_goals()
    return [GoalResponse.from_domain(g) for g in goals]


@router.post("", response_model=GoalResponse, status_code=201)
async def create_goal(
    payload: GoalPayload,
    service: GoalService = Depends(get_goal_service),
):
    with domain_errors():
        goal = await service.create_goal(NewGoal(**payload.model_dump()))
    logger.info("resource changed: goal %s created", goal.id)
    return GoalResponse.from_domain(goal)


@router.put("/{goal_id}", response_model=GoalResponse)
async def update_goal(
    goal_id: str,
    payload: GoalPayload,
    service: GoalService = Depends(get_goal_service),
):
    with domain_errors():
        goal = await service.update_goal(Goal(id=goal_id, **payload.model_dump()))
    logger.info("resource changed: goal %s updated", goal_id)
    return GoalResponse.from_domain(goal)


@router.delete("/{goal_id}")
async def delete_goal(goal_id: str, service: GoalService = Depends(get_goal_service)):
    deleted = await service.delete_goal(goal_id)
    if deleted:
        logger.info("resource changed: goal %s deleted", goal_id)
    return {"deleted": deleted}


@router.post("/{goal_id}/progress", response_model=GoalProgressResponse)
async def goal_progress(
    goal_id: str,
    request: GoalProgressRequest,
    service: GoalService = Depends(get_goal_service),
):
    """
    Progress of a goal on query_date.

    Account values are supplied by the caller; the engine holds no prices.
    """
    with domain_errors():
        snapshot = await service.get_goal_progress(
            goal_id,
            request.account_values_at_goal_start,
            request.current_account_values,
            request.query_date,
        )
    return GoalProgressResponse.from_domain(snapshot)


@router.get("/{goal_id}/allocations", response_model=List[AllocationResponse])
async def goal_allocations(goal_id: str, service: GoalService = Depends(get_goal_service)):
    allocations = await service.get_goal_allocations(goal_id)
    return [AllocationResponse.from_domain(a) for a in allocations]


@router.get("/{goal_id}/allocations/on-date", response_model=List[AllocationResponse])
async def goal_allocations_on_date(
    goal_id: str,
    on: date = Query(..., alias="date"),
    service: GoalService = Depends(get_goal_service),
):
    allocations = await service.get_goal_allocations_on_date(goal_id, on)
    return [AllocationResponse.from_domain(a) for a in allocations]
