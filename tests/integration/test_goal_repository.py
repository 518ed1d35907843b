import asyncio
from dataclasses import replace
from datetime import date, datetime

import pytest

from goal_engine.domain.exceptions import AllocationValidationError, NotFoundError
from goal_engine.domain.models import (
    AllocationVersion,
    GoalAllocation,
    LegacyRange,
    NewGoal,
    PercentageVersioned,
)
from goal_engine.domain.services.goal_service import GoalService


async def _goal(store, title="House", achieved=False):
    return await store.insert_new_goal(
        NewGoal(
            title=title,
            target_amount=50000.0,
            is_achieved=achieved,
            start_date=date(2024, 1, 1),
            due_date=date(2024, 12, 31),
        )
    )


def _allocation(alloc_id, goal_id, account_id="acc1", pct=0.0, amount=0.0, start=None, end=None):
    return GoalAllocation(
        id=alloc_id,
        goal_id=goal_id,
        account_id=account_id,
        legacy=LegacyRange(percent_allocation=int(round(pct)), start_date=start, end_date=end),
        versioned=PercentageVersioned(init_amount=amount, allocation_amount=amount, allocation_percentage=pct),
    )


@pytest.mark.asyncio
@pytest.mark.integration
async def test_goal_roundtrip(sql_store):
    goal = await _goal(sql_store)

    fetched = await sql_store.get_goal(goal.id)
    assert fetched == goal

    updated = await sql_store.update_goal(replace(goal, title="Bigger house", is_achieved=True))
    assert updated.title == "Bigger house"
    assert (await sql_store.load_goals())[0].is_achieved is True

    with pytest.raises(NotFoundError):
        await sql_store.update_goal(replace(goal, id="missing"))


@pytest.mark.asyncio
@pytest.mark.integration
async def test_allocation_queries(sql_store):
    active = await _goal(sql_store)
    achieved = await _goal(sql_store, title="Done", achieved=True)
    await sql_store.upsert_goal_allocations([
        _allocation("a1", active.id, start=date(2024, 1, 1), end=date(2024, 6, 30)),
        _allocation("a2", active.id, account_id="acc2"),
        _allocation("a3", achieved.id, start=date(2024, 1, 1), end=date(2024, 12, 31)),
    ])

    non_achieved = await sql_store.load_allocations_for_non_achieved_goals()
    assert {a.id for a in non_achieved} == {"a1", "a2"}

    on_date = await sql_store.get_allocations_for_account_on_date("acc1", date(2024, 3, 1))
    assert {a.id for a in on_date} == {"a1", "a3"}
    later = await sql_store.get_allocations_for_account_on_date("acc1", date(2024, 7, 1))
    assert {a.id for a in later} == {"a3"}

    assert {a.id for a in await sql_store.get_allocations_for_goal(active.id)} == {"a1", "a2"}
    assert {a.id for a in await sql_store.get_allocations_for_account("acc2")} == {"a2"}

    with pytest.raises(NotFoundError):
        await sql_store.get_allocation_by_id("missing")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_upsert_never_overwrites_init_amount(sql_store):
    goal = await _goal(sql_store)
    original = _allocation("a1", goal.id, pct=20.0, amount=500.0)

    assert await sql_store.upsert_goal_allocations([original]) == 1
    changed = replace(original, versioned=replace(original.versioned, init_amount=1.0, allocation_amount=650.0))
    assert await sql_store.upsert_goal_allocations([changed]) == 1

    stored = await sql_store.get_allocation_by_id("a1")
    assert stored.versioned.init_amount == 500.0
    assert stored.versioned.allocation_amount == 650.0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_versions_ordered_and_closable(sql_store):
    goal = await _goal(sql_store)
    await sql_store.upsert_goal_allocations([_allocation("a1", goal.id)])

    for vid, start in (("v2", date(2024, 3, 1)), ("v1", date(2024, 1, 1))):
        await sql_store.insert_allocation_version(AllocationVersion(
            id=vid,
            allocation_id="a1",
            allocation_percentage=10.0,
            allocation_amount=0.0,
            version_start_date=start,
            created_at=datetime(2024, 1, 1),
        ))

    closed = await sql_store.close_allocation_version("v1", date(2024, 2, 29))
    assert closed.version_end_date == date(2024, 2, 29)

    versions = await sql_store.get_allocation_versions("a1")
    assert [v.id for v in versions] == ["v1", "v2"]

    assert await sql_store.delete_allocation_version("v2") == 1
    assert await sql_store.delete_allocation_version("v2") == 0

    with pytest.raises(NotFoundError):
        await sql_store.insert_allocation_version(replace(versions[0], id="v9", allocation_id="missing"))


@pytest.mark.asyncio
@pytest.mark.integration
async def test_delete_goal_removes_allocations_and_versions(sql_store):
    service = GoalService(sql_store)
    goal = await _goal(sql_store)
    allocation = await service.create_allocation(goal.id, "acc1", 100.0, 10.0, date(2024, 1, 1), 1000.0)

    assert await sql_store.delete_goal(goal.id) == 1
    assert await sql_store.get_allocations_for_goal(goal.id) == []
    assert await sql_store.get_allocation_versions(allocation.id) == []
    assert await sql_store.delete_goal(goal.id) == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_failed_atomic_block_rolls_back(sql_store):
    goal = await _goal(sql_store)

    async def _write_then_fail():
        await sql_store.upsert_goal_allocations([_allocation("a1", goal.id)])
        raise AllocationValidationError.from_message("rejected")

    with pytest.raises(AllocationValidationError):
        await sql_store.atomically(_write_then_fail)

    assert await sql_store.get_allocations_for_goal(goal.id) == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_concurrent_creates_on_sql_store(sql_store):
    service = GoalService(sql_store)
    goal = await _goal(sql_store)

    results = await asyncio.gather(
        service.create_allocation(goal.id, "acc1", 100.0, 60.0, date(2024, 1, 1), 1000.0),
        service.create_allocation(goal.id, "acc1", 100.0, 60.0, date(2024, 1, 1), 1000.0),
        return_exceptions=True,
    )

    assert sum(isinstance(r, AllocationValidationError) for r in results) == 1
    assert len(await sql_store.get_allocations_for_account("acc1")) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_percentage_change_on_sql_store(sql_store):
    service = GoalService(sql_store)
    goal = await _goal(sql_store)
    allocation = await service.create_allocation(goal.id, "acc1", 100.0, 40.0, date(2024, 1, 1), 1000.0)

    await service.update_allocation_percentage(allocation.id, 55.5, date(2024, 5, 1))

    versions = await sql_store.get_allocation_versions(allocation.id)
    assert [(v.allocation_percentage, v.version_end_date) for v in versions] == [
        (40.0, date(2024, 4, 30)),
        (55.5, None),
    ]
    stored = await sql_store.get_allocation_by_id(allocation.id)
    assert stored.versioned.allocation_percentage == 55.5
    assert stored.legacy.percent_allocation == 56
