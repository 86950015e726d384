"""Tests for the in-memory script store."""
import pytest

from scriptwizard.exceptions import NotFoundException, PreconditionFailedException
from scriptwizard.models.records import IterationStatus
from tests.conftest import make_script


@pytest.mark.asyncio
async def test_ids_are_assigned_in_order(store):
    first = await make_script(store)
    second = await make_script(store)
    assert (first.id, second.id) == (1, 2)


@pytest.mark.asyncio
async def test_returned_records_are_copies(store):
    script = await make_script(store)
    script.title = "Changed locally"
    assert (await store.get_script(script.id)).title == "Sourdough Basics"


@pytest.mark.asyncio
async def test_update_merges_fields_and_bumps_updated_at(store):
    script = await make_script(store)
    updated = await store.update_script(script.id, tone="serious")

    assert updated.tone == "serious"
    assert updated.title == script.title
    assert updated.updated_at >= script.updated_at


@pytest.mark.asyncio
async def test_update_unknown_ids_raise_not_found(store):
    with pytest.raises(NotFoundException):
        await store.update_script(7, tone="serious")
    with pytest.raises(NotFoundException):
        await store.update_iteration(7, content="x")


@pytest.mark.asyncio
async def test_update_rejects_identifier_change(store):
    script = await make_script(store)
    with pytest.raises(ValueError):
        await store.update_script(script.id, id=99)


@pytest.mark.asyncio
async def test_list_iterations_sorted_by_number(store):
    script = await make_script(store)
    for number in (2, 1, 3):
        await store.create_iteration(
            script_id=script.id, iteration_number=number, content=f"draft {number}"
        )

    iterations = await store.list_iterations(script.id)
    assert [i.iteration_number for i in iterations] == [1, 2, 3]
    assert all(i.status == IterationStatus.IN_PROGRESS for i in iterations)


@pytest.mark.asyncio
async def test_duplicate_iteration_number_is_rejected(store):
    script = await make_script(store)
    await store.create_iteration(script_id=script.id, iteration_number=1, content="a")
    with pytest.raises(PreconditionFailedException):
        await store.create_iteration(script_id=script.id, iteration_number=1, content="b")


@pytest.mark.asyncio
async def test_iteration_requires_existing_script(store):
    with pytest.raises(NotFoundException):
        await store.create_iteration(script_id=5, iteration_number=1, content="a")


@pytest.mark.asyncio
async def test_list_scripts_filters_by_user_newest_first(store):
    await make_script(store, title="A")
    await make_script(store, title="B", user_id="someone-else")
    await make_script(store, title="C")

    titles = [s.title for s in await store.list_scripts("test-user-1")]
    assert titles == ["C", "A"]


@pytest.mark.asyncio
async def test_delete_script_cascades(store):
    script = await make_script(store)
    other = await make_script(store)
    await store.create_iteration(script_id=script.id, iteration_number=1, content="a")
    kept = await store.create_iteration(script_id=other.id, iteration_number=1, content="b")

    assert await store.delete_script(script.id) is True
    assert await store.list_iterations(script.id) == []
    assert await store.get_iteration(kept.id) is not None
    assert await store.counts() == {"scripts": 1, "iterations": 1}
    assert await store.delete_script(script.id) is False
