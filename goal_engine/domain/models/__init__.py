"""
Domain Models Package
Export all domain entities
"""

from .entities import (
    # Enums
    AllocationScheme,

    # Entities
    AllocationDetail,
    AllocationVersion,
    Goal,
    GoalAllocation,
    GoalProgressSnapshot,
    GrowthSegment,
    LegacyRange,
    NewGoal,
    PercentageVersioned,
    ValidationResult,
)

__all__ = [
    # Enums
    "AllocationScheme",

    # Entities
    "AllocationDetail",
    "AllocationVersion",
    "Goal",
    "GoalAllocation",
    "GoalProgressSnapshot",
    "GrowthSegment",
    "LegacyRange",
    "NewGoal",
    "PercentageVersioned",
    "ValidationResult",
]
