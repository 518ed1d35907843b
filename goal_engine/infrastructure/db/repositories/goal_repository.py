"""
Goal Repository
SQL-backed GoalStore. Reads open their own short-lived session; writes go
through the single WriteHandle so they never interleave.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Awaitable, Callable, List, Optional, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from goal_engine.domain.exceptions import NotFoundError
from goal_engine.domain.models import (
    AllocationVersion,
    Goal,
    GoalAllocation,
    LegacyRange,
    NewGoal,
    PercentageVersioned,
)
from goal_engine.infrastructure.db.models import (
    AllocationVersionModel,
    GoalAllocationModel,
    GoalModel,
)
from goal_engine.infrastructure.db.writer import WriteHandle, active_session

logger = logging.getLogger(__name__)

T = TypeVar("T")

_GOAL_FIELDS = (
    "title",
    "description",
    "target_amount",
    "is_achieved",
    "target_return_rate",
    "due_date",
    "monthly_investment",
    "start_date",
    "initial_actual_value",
)


class SqlGoalStore:
    """Repository for goals, allocations and allocation versions"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], writer: WriteHandle):
        self.session_factory = session_factory
        self.writer = writer

    @asynccontextmanager
    async def _read_session(self) -> AsyncIterator[AsyncSession]:
        session = active_session()
        if session is not None:
            yield session
            return
        async with self.session_factory() as session:
            yield session

    # ==========================================================
    # Goals
    # ==========================================================

    async def load_goals(self) -> List[Goal]:
        async with self._read_session() as session:
            result = await session.execute(select(GoalModel))
            return [self._goal_to_domain(m) for m in result.scalars().all()]

    async def get_goal(self, goal_id: str) -> Optional[Goal]:
        async with self._read_session() as session:
            model = await session.get(GoalModel, goal_id)
            return self._goal_to_domain(model) if model else None

    async def insert_new_goal(self, new_goal: NewGoal) -> Goal:
        goal = new_goal.with_id(str(uuid.uuid4()))

        async def _insert(session: AsyncSession) -> Goal:
            model = GoalModel(id=goal.id)
            self._apply_goal(model, goal)
            session.add(model)
            await session.flush()
            return goal

        return await self.writer.exec(_insert)

    async def update_goal(self, goal: Goal) -> Goal:
        async def _update(session: AsyncSession) -> Goal:
            model = await session.get(GoalModel, goal.id)
            if model is None:
                raise NotFoundError("goal", goal.id)
            self._apply_goal(model, goal)
            await session.flush()
            return self._goal_to_domain(model)

        return await self.writer.exec(_update)

    async def delete_goal(self, goal_id: str) -> int:
        async def _delete(session: AsyncSession) -> int:
            allocation_ids = select(GoalAllocationModel.id).where(GoalAllocationModel.goal_id == goal_id)
            await session.execute(
                delete(AllocationVersionModel).where(AllocationVersionModel.allocation_id.in_(allocation_ids))
            )
            await session.execute(
                delete(GoalAllocationModel).where(GoalAllocationModel.goal_id == goal_id)
            )
            result = await session.execute(delete(GoalModel).where(GoalModel.id == goal_id))
            return result.rowcount or 0

        return await self.writer.exec(_delete)

    # ==========================================================
    # Allocation reads
    # ==========================================================

    async def load_allocations_for_non_achieved_goals(self) -> List[GoalAllocation]:
        stmt = (
            select(GoalAllocationModel)
            .join(GoalModel, GoalModel.id == GoalAllocationModel.goal_id)
            .where(GoalModel.is_achieved.is_(False))
        )
        async with self._read_session() as session:
            result = await session.execute(stmt)
            return [self._allocation_to_domain(m) for m in result.scalars().all()]

    async def get_allocations_for_account_on_date(
        self,
        account_id: str,
        query_date: date,
    ) -> List[GoalAllocation]:
        stmt = select(GoalAllocationModel).where(
            GoalAllocationModel.account_id == account_id,
            GoalAllocationModel.start_date <= query_date,
            GoalAllocationModel.end_date >= query_date,
        )
        async with self._read_session() as session:
            result = await session.execute(stmt)
            return [self._allocation_to_domain(m) for m in result.scalars().all()]

    async def get_allocations_for_goal(self, goal_id: str) -> List[GoalAllocation]:
        stmt = select(GoalAllocationModel).where(GoalAllocationModel.goal_id == goal_id)
        async with self._read_session() as session:
            result = await session.execute(stmt)
            return [self._allocation_to_domain(m) for m in result.scalars().all()]

    async def get_allocations_for_account(self, account_id: str) -> List[GoalAllocation]:
        stmt = select(GoalAllocationModel).where(GoalAllocationModel.account_id == account_id)
        async with self._read_session() as session:
            result = await session.execute(stmt)
            return [self._allocation_to_domain(m) for m in result.scalars().all()]

    async def get_allocation_by_id(self, allocation_id: str) -> GoalAllocation:
        async with self._read_session() as session:
            model = await session.get(GoalAllocationModel, allocation_id)
            if model is None:
                raise NotFoundError("allocation", allocation_id)
            return self._allocation_to_domain(model)

    # ==========================================================
    # Allocation writes
    # ==========================================================

    async def upsert_goal_allocations(self, allocations: List[GoalAllocation]) -> int:
        """
        Insert new allocations, update existing ones by id.

        init_amount is written on insert only; an existing row keeps its
        original value whatever the incoming allocation carries.
        """
        async def _upsert(session: AsyncSession) -> int:
            affected = 0
            for allocation in allocations:
                model = await session.get(GoalAllocationModel, allocation.id)
                if model is None:
                    model = GoalAllocationModel(
                        id=allocation.id,
                        init_amount=allocation.versioned.init_amount,
                    )
                    session.add(model)
                self._apply_allocation(model, allocation)
                affected += 1
            await session.flush()
            logger.debug("Upserted %d allocation rows", affected)
            return affected

        return await self.writer.exec(_upsert)

    async def update_allocation(self, allocation: GoalAllocation) -> GoalAllocation:
        async def _update(session: AsyncSession) -> GoalAllocation:
            model = await session.get(GoalAllocationModel, allocation.id)
            if model is None:
                raise NotFoundError("allocation", allocation.id)
            self._apply_allocation(model, allocation)
            model.init_amount = allocation.versioned.init_amount
            await session.flush()
            return self._allocation_to_domain(model)

        return await self.writer.exec(_update)

    async def delete_allocation(self, allocation_id: str) -> int:
        async def _delete(session: AsyncSession) -> int:
            await session.execute(
                delete(AllocationVersionModel).where(AllocationVersionModel.allocation_id == allocation_id)
            )
            result = await session.execute(
                delete(GoalAllocationModel).where(GoalAllocationModel.id == allocation_id)
            )
            return result.rowcount or 0

        return await self.writer.exec(_delete)

    # ==========================================================
    # Allocation versions
    # ==========================================================

    async def get_allocation_versions(self, allocation_id: str) -> List[AllocationVersion]:
        stmt = (
            select(AllocationVersionModel)
            .where(AllocationVersionModel.allocation_id == allocation_id)
            .order_by(AllocationVersionModel.version_start_date)
        )
        async with self._read_session() as session:
            result = await session.execute(stmt)
            return [self._version_to_domain(m) for m in result.scalars().all()]

    async def insert_allocation_version(self, version: AllocationVersion) -> AllocationVersion:
        async def _insert(session: AsyncSession) -> AllocationVersion:
            if await session.get(GoalAllocationModel, version.allocation_id) is None:
                raise NotFoundError("allocation", version.allocation_id)
            session.add(
                AllocationVersionModel(
                    id=version.id,
                    allocation_id=version.allocation_id,
                    allocation_percentage=version.allocation_percentage,
                    allocation_amount=version.allocation_amount,
                    version_start_date=version.version_start_date,
                    version_end_date=version.version_end_date,
                    created_at=version.created_at,
                )
            )
            await session.flush()
            return version

        return await self.writer.exec(_insert)

    async def close_allocation_version(self, version_id: str, end_date: date) -> AllocationVersion:
        async def _close(session: AsyncSession) -> AllocationVersion:
            model = await session.get(AllocationVersionModel, version_id)
            if model is None:
                raise NotFoundError("allocation version", version_id)
            model.version_end_date = end_date
            await session.flush()
            return self._version_to_domain(model)

        return await self.writer.exec(_close)

    async def delete_allocation_version(self, version_id: str) -> int:
        async def _delete(session: AsyncSession) -> int:
            result = await session.execute(
                delete(AllocationVersionModel).where(AllocationVersionModel.id == version_id)
            )
            return result.rowcount or 0

        return await self.writer.exec(_delete)

    # ==========================================================
    # Serialization
    # ==========================================================

    async def atomically(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run fn as one write job: its reads and writes share a transaction"""
        async def _job(session: AsyncSession) -> T:
            return await fn()

        return await self.writer.exec(_job)

    # ==========================================================
    # Mapping
    # ==========================================================

    @staticmethod
    def _apply_goal(model: GoalModel, goal: Goal) -> None:
        for name in _GOAL_FIELDS:
            setattr(model, name, getattr(goal, name))

    @staticmethod
    def _apply_allocation(model: GoalAllocationModel, allocation: GoalAllocation) -> None:
        model.goal_id = allocation.goal_id
        model.account_id = allocation.account_id
        model.percent_allocation = allocation.legacy.percent_allocation
        model.start_date = allocation.legacy.start_date
        model.end_date = allocation.legacy.end_date
        model.allocation_amount = allocation.versioned.allocation_amount
        model.allocation_percentage = allocation.versioned.allocation_percentage
        model.allocation_date = allocation.versioned.allocation_date

    @staticmethod
    def _goal_to_domain(model: GoalModel) -> Goal:
        return Goal(
            id=model.id,
            title=model.title,
            description=model.description,
            target_amount=float(model.target_amount),
            is_achieved=bool(model.is_achieved),
            target_return_rate=model.target_return_rate,
            due_date=model.due_date,
            monthly_investment=model.monthly_investment,
            start_date=model.start_date,
            initial_actual_value=model.initial_actual_value,
        )

    @staticmethod
    def _allocation_to_domain(model: GoalAllocationModel) -> GoalAllocation:
        return GoalAllocation(
            id=model.id,
            goal_id=model.goal_id,
            account_id=model.account_id,
            legacy=LegacyRange(
                percent_allocation=int(model.percent_allocation or 0),
                start_date=model.start_date,
                end_date=model.end_date,
            ),
            versioned=PercentageVersioned(
                init_amount=float(model.init_amount or 0.0),
                allocation_amount=float(model.allocation_amount or 0.0),
                allocation_percentage=float(model.allocation_percentage or 0.0),
                allocation_date=model.allocation_date,
            ),
        )

    @staticmethod
    def _version_to_domain(model: AllocationVersionModel) -> AllocationVersion:
        return AllocationVersion(
            id=model.id,
            allocation_id=model.allocation_id,
            allocation_percentage=float(model.allocation_percentage),
            allocation_amount=float(model.allocation_amount),
            version_start_date=model.version_start_date,
            version_end_date=model.version_end_date,
            created_at=model.created_at,
        )
