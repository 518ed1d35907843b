"""
Domain Models - Entities
Pure domain objects with no infrastructure dependencies
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import ClassVar, List, NamedTuple, Optional


class AllocationScheme(str, Enum):
    """Which set of allocation fields a rule or calculation reads"""
    LEGACY_RANGE = "legacy_range"
    PERCENTAGE_VERSIONED = "percentage_versioned"


@dataclass(frozen=True)
class Goal:
    """Savings goal - Immutable"""
    id: str
    title: str
    target_amount: float
    is_achieved: bool = False
    description: Optional[str] = None
    target_return_rate: Optional[float] = None
    due_date: Optional[date] = None
    monthly_investment: Optional[float] = None
    start_date: Optional[date] = None
    initial_actual_value: Optional[float] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("Goal id cannot be empty")
        if self.target_amount <= 0:
            raise ValueError("Target amount must be positive")


@dataclass(frozen=True)
class NewGoal:
    """Goal payload before the store assigns an identifier"""
    title: str
    target_amount: float
    is_achieved: bool = False
    description: Optional[str] = None
    target_return_rate: Optional[float] = None
    due_date: Optional[date] = None
    monthly_investment: Optional[float] = None
    start_date: Optional[date] = None
    initial_actual_value: Optional[float] = None

    def __post_init__(self):
        if not self.title:
            raise ValueError("Goal title cannot be empty")
        if self.target_amount <= 0:
            raise ValueError("Target amount must be positive")

    def with_id(self, goal_id: str) -> Goal:
        return Goal(
            id=goal_id,
            title=self.title,
            target_amount=self.target_amount,
            is_achieved=self.is_achieved,
            description=self.description,
            target_return_rate=self.target_return_rate,
            due_date=self.due_date,
            monthly_investment=self.monthly_investment,
            start_date=self.start_date,
            initial_actual_value=self.initial_actual_value,
        )


@dataclass(frozen=True)
class LegacyRange:
    """
    Deprecated allocation scheme: integer percent over an explicit date window.

    Still drives the date-window queries, the conflict validator and
    goal progress.
    """
    percent_allocation: int = 0
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    scheme: ClassVar[AllocationScheme] = AllocationScheme.LEGACY_RANGE

    def __post_init__(self):
        if not 0 <= self.percent_allocation <= 100:
            raise ValueError("Percent allocation must be between 0 and 100")

    @property
    def is_dated(self) -> bool:
        return self.start_date is not None and self.end_date is not None

    def overlaps(self, start: date, end: date) -> bool:
        """Inclusive overlap test; undated ranges never overlap"""
        if not self.is_dated:
            return False
        return self.start_date <= end and self.end_date >= start

    def contains(self, day: date) -> bool:
        if not self.is_dated:
            return False
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class PercentageVersioned:
    """
    Current allocation scheme: fixed initial amount plus a real-valued
    percentage whose history lives in AllocationVersion rows.
    """
    init_amount: float = 0.0
    allocation_amount: float = 0.0
    allocation_percentage: float = 0.0
    allocation_date: Optional[date] = None

    scheme: ClassVar[AllocationScheme] = AllocationScheme.PERCENTAGE_VERSIONED

    def __post_init__(self):
        if not 0.0 <= self.allocation_percentage <= 100.0:
            raise ValueError("Allocation percentage must be between 0 and 100")


@dataclass(frozen=True)
class GoalAllocation:
    """Binding of part of one account's value to one goal - Immutable"""
    id: str
    goal_id: str
    account_id: str
    legacy: LegacyRange = field(default_factory=LegacyRange)
    versioned: PercentageVersioned = field(default_factory=PercentageVersioned)

    def __post_init__(self):
        if not self.id:
            raise ValueError("Allocation id cannot be empty")
        if not self.goal_id or not self.account_id:
            raise ValueError("Allocation must reference a goal and an account")


@dataclass(frozen=True)
class AllocationVersion:
    """Percentage/amount of an allocation over one sub-period - Immutable"""
    id: str
    allocation_id: str
    allocation_percentage: float
    allocation_amount: float
    version_start_date: date
    created_at: datetime
    version_end_date: Optional[date] = None

    def __post_init__(self):
        if self.version_end_date is not None and self.version_end_date < self.version_start_date:
            raise ValueError("Version end date cannot precede its start date")

    @property
    def is_open(self) -> bool:
        return self.version_end_date is None


@dataclass(frozen=True)
class AllocationDetail:
    """Per-allocation breakdown inside a progress snapshot"""
    account_id: str
    percent_allocation: int
    account_value_at_goal_start: float
    account_current_value: float
    account_growth: float
    allocated_growth: float


@dataclass(frozen=True)
class GoalProgressSnapshot:
    """Point-in-time progress of a goal"""
    goal_id: str
    goal_title: str
    query_date: date
    init_value: float
    current_value: float
    growth: float
    allocation_details: List[AllocationDetail] = field(default_factory=list)


class GrowthSegment(NamedTuple):
    """One historical sub-period at a single allocation percentage"""
    percentage: float
    value_start: float
    value_end: float


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a business-rule check"""
    valid: bool
    message: str = ""

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def failure(cls, message: str) -> "ValidationResult":
        return cls(valid=False, message=message)

    def __bool__(self) -> bool:
        return self.valid
