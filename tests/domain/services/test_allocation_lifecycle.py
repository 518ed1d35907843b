import asyncio
from dataclasses import replace
from datetime import date, timedelta

import pytest

from goal_engine.domain.exceptions import AllocationValidationError, NotFoundError
from goal_engine.domain.models import GoalAllocation, LegacyRange, NewGoal, PercentageVersioned


async def _create_goal(service, title="House", start=date(2024, 1, 1), due=date(2026, 12, 31)):
    return await service.create_goal(
        NewGoal(title=title, target_amount=50000.0, start_date=start, due_date=due)
    )


@pytest.mark.asyncio
async def test_create_goal_assigns_fresh_ids(service):
    first = await _create_goal(service)
    second = await _create_goal(service, title="Car")

    assert first.id != second.id
    assert {g.id for g in await service.get_goals()} == {first.id, second.id}


@pytest.mark.asyncio
async def test_delete_goal_cascades_and_tolerates_missing(service, memory_store):
    goal = await _create_goal(service)
    allocation = await service.create_allocation(goal.id, "acc1", 100.0, 10.0, date(2024, 1, 1), 1000.0)

    assert await service.delete_goal(goal.id) == 1
    assert allocation.id not in memory_store.allocations
    assert memory_store.versions == {}
    assert await service.delete_goal(goal.id) == 0


@pytest.mark.asyncio
async def test_upsert_backfills_dates_from_goal(service):
    goal = await _create_goal(service)

    affected = await service.upsert_goal_allocations([
        GoalAllocation(id="a1", goal_id=goal.id, account_id="acc1", legacy=LegacyRange(percent_allocation=30)),
    ])

    assert affected == 1
    stored = (await service.get_goal_allocations(goal.id))[0]
    assert stored.legacy.start_date == goal.start_date
    assert stored.legacy.end_date == goal.due_date


@pytest.mark.asyncio
async def test_upsert_keeps_explicit_dates(service):
    goal = await _create_goal(service)
    start = date(2024, 3, 1)

    await service.upsert_goal_allocations([
        GoalAllocation(
            id="a1", goal_id=goal.id, account_id="acc1",
            legacy=LegacyRange(percent_allocation=30, start_date=start),
        ),
    ])

    stored = (await service.get_goal_allocations(goal.id))[0]
    assert stored.legacy.start_date == start
    assert stored.legacy.end_date == goal.due_date


@pytest.mark.asyncio
async def test_upsert_is_idempotent_and_preserves_init_amount(service):
    goal = await _create_goal(service)
    original = GoalAllocation(
        id="a1", goal_id=goal.id, account_id="acc1",
        versioned=PercentageVersioned(init_amount=500.0, allocation_amount=500.0, allocation_percentage=20.0),
    )

    await service.upsert_goal_allocations([original])
    await service.upsert_goal_allocations([original])
    changed = replace(original, versioned=replace(original.versioned, init_amount=9999.0, allocation_amount=800.0))
    await service.upsert_goal_allocations([changed])

    stored = await service.get_goal_allocations(goal.id)
    assert len(stored) == 1
    assert stored[0].versioned.init_amount == 500.0
    assert stored[0].versioned.allocation_amount == 800.0


@pytest.mark.asyncio
async def test_update_allocation_rejects_init_amount_change(service):
    goal = await _create_goal(service)
    allocation = await service.create_allocation(goal.id, "acc1", 100.0, 10.0, date(2024, 1, 1), 1000.0)

    with pytest.raises(AllocationValidationError):
        await service.lifecycle.update_allocation(
            replace(allocation, versioned=replace(allocation.versioned, init_amount=1.0))
        )


@pytest.mark.asyncio
async def test_create_allocation_persists_allocation_and_first_version(service):
    goal = await _create_goal(service)

    allocation = await service.create_allocation(goal.id, "acc1", 250.0, 25.0, date(2024, 2, 1), 1000.0)

    assert allocation.versioned.init_amount == 250.0
    assert allocation.versioned.allocation_amount == 250.0
    assert allocation.legacy.percent_allocation == 25
    assert allocation.legacy.start_date == goal.start_date
    assert allocation.legacy.end_date == goal.due_date

    versions = await service.get_allocation_versions(allocation.id)
    assert len(versions) == 1
    assert versions[0].version_start_date == date(2024, 2, 1)
    assert versions[0].is_open


@pytest.mark.asyncio
async def test_create_allocation_for_missing_goal(service):
    with pytest.raises(NotFoundError):
        await service.create_allocation("missing", "acc1", 100.0, 10.0, date(2024, 1, 1), 1000.0)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "amount,pct",
    [(-1.0, 10.0), (100.0, 101.0), (100.0, -5.0), (0.0, 0.0)],
)
async def test_create_allocation_rejects_bad_input(service, memory_store, amount, pct):
    goal = await _create_goal(service)

    with pytest.raises(AllocationValidationError):
        await service.create_allocation(goal.id, "acc1", amount, pct, date(2024, 1, 1), 1000.0)
    assert memory_store.allocations == {}


@pytest.mark.asyncio
async def test_rejected_create_leaves_state_unchanged(service, memory_store):
    goal = await _create_goal(service)
    await service.create_allocation(goal.id, "acc1", 700.0, 60.0, date(2024, 1, 1), 1000.0)
    before_allocations = dict(memory_store.allocations)
    before_versions = dict(memory_store.versions)

    with pytest.raises(AllocationValidationError, match="110.0%"):
        await service.create_allocation(goal.id, "acc1", 100.0, 50.0, date(2024, 1, 1), 1000.0)
    with pytest.raises(AllocationValidationError, match="300.00"):
        await service.create_allocation(goal.id, "acc1", 400.0, 10.0, date(2024, 1, 1), 1000.0)

    assert memory_store.allocations == before_allocations
    assert memory_store.versions == before_versions


@pytest.mark.asyncio
async def test_concurrent_creates_cannot_jointly_exceed_cap(service, memory_store):
    goal = await _create_goal(service)

    results = await asyncio.gather(
        service.create_allocation(goal.id, "acc1", 100.0, 60.0, date(2024, 1, 1), 1000.0),
        service.create_allocation(goal.id, "acc1", 100.0, 60.0, date(2024, 1, 1), 1000.0),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], AllocationValidationError)
    assert len(memory_store.allocations) == 1


@pytest.mark.asyncio
async def test_update_amount_can_reuse_own_amount(service):
    goal = await _create_goal(service)
    allocation = await service.create_allocation(goal.id, "acc1", 600.0, 10.0, date(2024, 1, 1), 1000.0)

    updated = await service.update_allocation_amount(allocation.id, 900.0, 1000.0)

    assert updated.versioned.allocation_amount == 900.0
    assert updated.versioned.init_amount == 600.0

    with pytest.raises(AllocationValidationError):
        await service.update_allocation_amount(allocation.id, 1200.0, 1000.0)


@pytest.mark.asyncio
async def test_update_percentage_chains_versions(service):
    goal = await _create_goal(service)
    allocation = await service.create_allocation(goal.id, "acc1", 100.0, 40.0, date(2024, 1, 1), 1000.0)

    await service.update_allocation_percentage(allocation.id, 60.0, date(2024, 4, 1))
    updated = await service.update_allocation_percentage(allocation.id, 30.0, date(2024, 7, 1))

    assert updated.versioned.allocation_percentage == 30.0
    assert updated.legacy.percent_allocation == 30

    versions = await service.get_allocation_versions(allocation.id)
    assert [v.allocation_percentage for v in versions] == [40.0, 60.0, 30.0]
    assert [v.is_open for v in versions] == [False, False, True]
    for earlier, later in zip(versions, versions[1:]):
        assert earlier.version_end_date == later.version_start_date - timedelta(days=1)


@pytest.mark.asyncio
async def test_update_percentage_rejects_effective_date_not_after_open_version(service):
    goal = await _create_goal(service)
    allocation = await service.create_allocation(goal.id, "acc1", 100.0, 40.0, date(2024, 3, 1), 1000.0)

    with pytest.raises(AllocationValidationError, match="after 2024-03-01"):
        await service.update_allocation_percentage(allocation.id, 50.0, date(2024, 3, 1))

    versions = await service.get_allocation_versions(allocation.id)
    assert len(versions) == 1 and versions[0].is_open


@pytest.mark.asyncio
async def test_update_percentage_respects_cap_excluding_itself(service):
    goal = await _create_goal(service)
    first = await service.create_allocation(goal.id, "acc1", 100.0, 60.0, date(2024, 1, 1), 1000.0)
    await service.create_allocation(goal.id, "acc1", 100.0, 30.0, date(2024, 1, 1), 1000.0)

    await service.update_allocation_percentage(first.id, 70.0, date(2024, 2, 1))

    with pytest.raises(AllocationValidationError):
        await service.update_allocation_percentage(first.id, 71.0, date(2024, 3, 1))


@pytest.mark.asyncio
async def test_update_percentage_opens_version_when_none_exists(service):
    goal = await _create_goal(service)
    await service.upsert_goal_allocations([
        GoalAllocation(id="a1", goal_id=goal.id, account_id="acc1"),
    ])

    await service.update_allocation_percentage("a1", 20.0, date(2024, 5, 1))

    versions = await service.get_allocation_versions("a1")
    assert len(versions) == 1
    assert versions[0].version_start_date == date(2024, 5, 1)
    assert versions[0].is_open


@pytest.mark.asyncio
async def test_update_percentage_after_closed_history_cannot_overlap_it(service):
    goal = await _create_goal(service)
    allocation = await service.create_allocation(goal.id, "acc1", 100.0, 40.0, date(2024, 1, 1), 1000.0)
    version = (await service.get_allocation_versions(allocation.id))[0]
    await service.lifecycle.close_allocation_version(version.id, date(2024, 12, 31))

    with pytest.raises(AllocationValidationError, match="after 2024-12-31"):
        await service.update_allocation_percentage(allocation.id, 50.0, date(2024, 6, 1))

    versions = await service.get_allocation_versions(allocation.id)
    assert len(versions) == 1
    assert (await service.get_goal_allocations(goal.id))[0].versioned.allocation_percentage == 40.0

    await service.update_allocation_percentage(allocation.id, 50.0, date(2025, 1, 1))

    versions = await service.get_allocation_versions(allocation.id)
    assert [v.allocation_percentage for v in versions] == [40.0, 50.0]
    assert versions[0].version_end_date == date(2024, 12, 31)
    assert versions[1].version_start_date == date(2025, 1, 1)
    assert versions[1].is_open


@pytest.mark.asyncio
async def test_upsert_rejects_batch_over_percentage_cap(service, memory_store):
    goal = await _create_goal(service)

    with pytest.raises(AllocationValidationError, match="110.0%"):
        await service.upsert_goal_allocations([
            GoalAllocation(
                id="a1", goal_id=goal.id, account_id="acc1",
                versioned=PercentageVersioned(allocation_percentage=60.0),
            ),
            GoalAllocation(
                id="a2", goal_id=goal.id, account_id="acc1",
                versioned=PercentageVersioned(allocation_percentage=50.0),
            ),
        ])

    assert memory_store.allocations == {}


@pytest.mark.asyncio
async def test_upsert_counts_stored_allocations_and_replaces_own_row(service):
    goal = await _create_goal(service)
    await service.create_allocation(goal.id, "acc1", 100.0, 70.0, date(2024, 1, 1), 1000.0)
    row = GoalAllocation(
        id="a1", goal_id=goal.id, account_id="acc1",
        versioned=PercentageVersioned(allocation_percentage=20.0),
    )
    await service.upsert_goal_allocations([row])

    # a1's old 20% is replaced, not added
    await service.upsert_goal_allocations([
        replace(row, versioned=replace(row.versioned, allocation_percentage=30.0)),
    ])

    with pytest.raises(AllocationValidationError):
        await service.upsert_goal_allocations([
            replace(row, versioned=replace(row.versioned, allocation_percentage=31.0)),
        ])

    stored = {a.id: a for a in await service.get_goal_allocations(goal.id)}
    assert stored["a1"].versioned.allocation_percentage == 30.0


@pytest.mark.asyncio
async def test_version_pass_throughs(service):
    goal = await _create_goal(service)
    allocation = await service.create_allocation(goal.id, "acc1", 100.0, 40.0, date(2024, 1, 1), 1000.0)
    version = (await service.get_allocation_versions(allocation.id))[0]

    closed = await service.lifecycle.close_allocation_version(version.id, date(2024, 6, 30))
    assert closed.version_end_date == date(2024, 6, 30)

    assert await service.lifecycle.delete_allocation_version(version.id) == 1
    assert await service.get_allocation_versions(allocation.id) == []

    with pytest.raises(NotFoundError):
        await service.lifecycle.close_allocation_version(version.id, date(2024, 6, 30))
