"""
Database Models (SQLAlchemy ORM)
Goals, allocations and append-only allocation versions
"""

from sqlalchemy import (
    Column, String, Float, Integer, Date, DateTime,
    Boolean, ForeignKey, Text, Index
)
from sqlalchemy.orm import relationship

from goal_engine.infrastructure.db.database import Base
from goal_engine.utils.time import now_utc_naive


class GoalModel(Base):
    """Savings goal"""
    __tablename__ = "goals"

    id = Column(String(36), primary_key=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    target_amount = Column(Float, nullable=False)
    is_achieved = Column(Boolean, nullable=False, default=False)
    target_return_rate = Column(Float, nullable=True)
    due_date = Column(Date, nullable=True)
    monthly_investment = Column(Float, nullable=True)
    start_date = Column(Date, nullable=True)
    initial_actual_value = Column(Float, nullable=True)

    # Relationships
    allocations = relationship(
        "GoalAllocationModel",
        back_populates="goal",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class GoalAllocationModel(Base):
    """Share of an account earmarked for a goal"""
    __tablename__ = "goals_allocation"

    id = Column(String(64), primary_key=True)
    goal_id = Column(String(36), ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True)
    account_id = Column(String(64), nullable=False, index=True)

    # Legacy range scheme (deprecated)
    percent_allocation = Column(Integer, nullable=False, default=0)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    # Percentage-versioned scheme
    init_amount = Column(Float, nullable=False, default=0.0)
    allocation_amount = Column(Float, nullable=False, default=0.0)
    allocation_percentage = Column(Float, nullable=False, default=0.0)
    allocation_date = Column(Date, nullable=True)

    # Relationships
    goal = relationship("GoalModel", back_populates="allocations")
    versions = relationship(
        "AllocationVersionModel",
        back_populates="allocation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    # Indexes
    __table_args__ = (
        Index('ix_goals_allocation_account_dates', 'account_id', 'start_date', 'end_date'),
    )


class AllocationVersionModel(Base):
    """Allocation percentage/amount over one period - APPEND ONLY (end date may be closed)"""
    __tablename__ = "allocation_versions"

    id = Column(String(36), primary_key=True)
    allocation_id = Column(
        String(64),
        ForeignKey("goals_allocation.id", ondelete="CASCADE"),
        nullable=False,
    )
    allocation_percentage = Column(Float, nullable=False)
    allocation_amount = Column(Float, nullable=False)
    version_start_date = Column(Date, nullable=False)
    version_end_date = Column(Date, nullable=True)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)

    # Relationships
    allocation = relationship("GoalAllocationModel", back_populates="versions")

    # Indexes
    __table_args__ = (
        Index('idx_allocation_versions_allocation_id', 'allocation_id'),
        Index('idx_allocation_versions_dates', 'version_start_date', 'version_end_date'),
    )
