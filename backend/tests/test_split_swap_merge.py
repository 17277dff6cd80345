import pytest

from stowmap.errors import (
    CrossBlueprintNotAllowed,
    InventoryConflict,
    NoSplitTarget,
    SplitBlocked,
    SplitTooNarrow,
    UnsupportedRotation,
    ValidationError,
)
from stowmap.services import blueprints, compartments, drawers, inventory, locks, reflow
from stowmap.services.access import get_drawer, list_compartments
from stowmap.services.layout import SplitOrientation

pytestmark = pytest.mark.anyio


async def _second_drawer(db, world, blueprint_id, **kwargs):
    drawer = await drawers.create_drawer(
        db, world.officer, blueprint_id, x=600, y=0, width=200, height=100, grid_rows=1, grid_cols=1, **kwargs
    )
    cells = await list_compartments(db, drawer.id)
    return drawer, cells[0]


async def test_split_empty_drawer(db, world, locked_blueprint):
    drawer = await drawers.create_drawer(db, world.officer, locked_blueprint.id, x=0, y=0, width=400, height=300)
    first, second = await reflow.split_drawer(db, world.officer, drawer.id, SplitOrientation.vertical, 0)
    assert (first.x, first.y, first.width, first.height) == (-100, 0, 200, 300)
    assert (second.x, second.y, second.width, second.height) == (100, 0, 200, 300)
    assert first.z_index == 0
    assert second.z_index == 1


async def test_split_target_compartment(db, world, grid_drawer):
    drawer, cells = grid_drawer
    cells[0].label = "A1"
    target_id = cells[0].id
    await db.commit()

    first, second = await reflow.split_drawer(
        db, world.officer, drawer.id, "vertical", -100, target_compartment_id=target_id
    )
    assert (first.x, first.y, first.width, first.height) == (-150, -75, 100, 150)
    assert (second.x, second.y, second.width, second.height) == (-50, -75, 100, 150)
    assert first.label == "A1"
    assert second.label is None
    assert first.z_index == 0
    assert second.z_index == 4

    remaining = await list_compartments(db, drawer.id)
    assert target_id not in {c.id for c in remaining}
    assert len(remaining) == 5
    assert drawer.grid_rows is None and drawer.grid_cols is None


async def test_split_finds_topmost_straddled_compartment(db, world, grid_drawer):
    drawer, cells = grid_drawer
    # x = -100 crosses both left-hand cells; the one with the higher z wins.
    first, second = await reflow.split_drawer(db, world.officer, drawer.id, SplitOrientation.vertical, -100)
    remaining = {c.id for c in await list_compartments(db, drawer.id)}
    assert cells[2].id not in remaining
    assert cells[0].id in remaining
    assert first.y == 75 and second.y == 75


async def test_split_blocked_by_inventory(db, world, grid_drawer):
    drawer, cells = grid_drawer
    drawer_id, target_id = drawer.id, cells[0].id
    await inventory.check_in(db, world.officer, world.part_id, target_id, 3)
    with pytest.raises(SplitBlocked):
        await reflow.split_drawer(db, world.officer, drawer_id, "vertical", -100, target_compartment_id=target_id)
    remaining = await list_compartments(db, drawer_id)
    assert len(remaining) == 4
    fresh, _ = await get_drawer(db, world.officer, drawer_id)
    assert fresh.grid_rows == 2


async def test_split_too_close_to_edge(db, world, grid_drawer):
    drawer, cells = grid_drawer
    drawer_id, target_id = drawer.id, cells[0].id
    with pytest.raises(SplitTooNarrow):
        await reflow.split_drawer(db, world.officer, drawer_id, "vertical", -180, target_compartment_id=target_id)
    assert len(await list_compartments(db, drawer_id)) == 4


async def test_split_without_straddled_compartment(db, world, locked_blueprint):
    drawer = await drawers.create_drawer(db, world.officer, locked_blueprint.id, x=0, y=0, width=400, height=300)
    drawer_id = drawer.id
    await compartments.create_compartment(db, world.officer, drawer_id, x=-150, y=0, width=100, height=100)
    with pytest.raises(NoSplitTarget) as exc:
        await reflow.split_drawer(db, world.officer, drawer_id, "vertical", 100)
    assert exc.value.detail == "No compartment found at split position"


async def test_split_rejects_foreign_target(db, world, grid_drawer):
    drawer, _ = grid_drawer
    drawer_id = drawer.id
    _, foreign = await _second_drawer(db, world, drawer.blueprint_id)
    foreign_id = foreign.id
    with pytest.raises(NoSplitTarget):
        await reflow.split_drawer(db, world.officer, drawer_id, "vertical", 0, target_compartment_id=foreign_id)


async def test_split_rejects_rotated_drawer(db, world, locked_blueprint):
    drawer = await drawers.create_drawer(
        db, world.officer, locked_blueprint.id, x=0, y=0, width=400, height=300, rotation=90
    )
    with pytest.raises(UnsupportedRotation):
        await reflow.split_drawer(db, world.officer, drawer.id, "horizontal", 0)


async def test_swap_exchanges_placement(db, world, grid_drawer):
    _, cells = grid_drawer
    a, b = cells[0], cells[3]
    a_pos, b_pos = (a.x, a.y), (b.x, b.y)
    a_id, b_id = a.id, b.id
    await inventory.check_in(db, world.officer, world.part_id, a_id, 2)

    first, second = await reflow.swap_compartments(db, world.officer, a_id, b_id)
    assert (first.id, second.id) == (a_id, b_id)
    assert (first.x, first.y) == b_pos
    assert (second.x, second.y) == a_pos
    rows = await inventory.list_inventory(db, world.member, compartment_id=a_id)
    assert rows[0].quantity == 2


async def test_swap_across_drawers(db, world, grid_drawer):
    drawer, cells = grid_drawer
    other_drawer, other = await _second_drawer(db, world, drawer.blueprint_id)
    a, b = await reflow.swap_compartments(db, world.officer, cells[0].id, other.id)
    assert a.drawer_id == other_drawer.id
    assert b.drawer_id == drawer.id
    assert (a.width, a.height) == (200, 100)


async def test_swap_with_itself_is_a_no_op(db, world, grid_drawer):
    _, cells = grid_drawer
    before = (cells[1].x, cells[1].y)
    a, b = await reflow.swap_compartments(db, world.officer, cells[1].id, cells[1].id)
    assert a is b
    assert (a.x, a.y) == before


async def test_swap_with_itself_skips_lock_check(db, world, grid_drawer):
    drawer, cells = grid_drawer
    cell_id = cells[1].id
    await locks.release_lock(db, world.officer, drawer.blueprint_id)
    a, b = await reflow.swap_compartments(db, world.officer2, cell_id, cell_id)
    assert a.id == b.id == cell_id


async def test_swap_across_blueprints_refused(db, world, grid_drawer):
    _, cells = grid_drawer
    cell_id = cells[0].id
    other = await blueprints.create_blueprint(db, world.officer, "Garage")
    await locks.acquire_lock(db, world.officer, other.id)
    _, foreign = await _second_drawer(db, world, other.id)
    foreign_id = foreign.id
    with pytest.raises(CrossBlueprintNotAllowed):
        await reflow.swap_compartments(db, world.officer, cell_id, foreign_id)


async def test_merge_side_by_side(db, world, grid_drawer):
    drawer, cells = grid_drawer
    keep_id, absorb_id = cells[0].id, cells[1].id
    kept = await reflow.merge_compartments(db, world.officer, keep_id, absorb_id)
    assert kept.id == keep_id
    assert (kept.x, kept.y, kept.width, kept.height) == (0, -75, 400, 150)
    remaining = {c.id for c in await list_compartments(db, drawer.id)}
    assert absorb_id not in remaining
    assert len(remaining) == 3
    assert drawer.grid_rows is None


async def test_merge_stacked(db, world, grid_drawer):
    _, cells = grid_drawer
    kept = await reflow.merge_compartments(db, world.officer, cells[3].id, cells[1].id)
    assert (kept.x, kept.y, kept.width, kept.height) == (100, 0, 200, 300)


async def test_merge_requires_shared_edge(db, world, grid_drawer):
    _, cells = grid_drawer
    keep_id, absorb_id = cells[0].id, cells[3].id
    with pytest.raises(ValidationError) as exc:
        await reflow.merge_compartments(db, world.officer, keep_id, absorb_id)
    assert exc.value.detail == "Compartments must share a full edge to merge"


async def test_merge_with_itself_refused(db, world, grid_drawer):
    _, cells = grid_drawer
    with pytest.raises(ValidationError):
        await reflow.merge_compartments(db, world.officer, cells[0].id, cells[0].id)


async def test_merge_across_drawers_refused(db, world, grid_drawer):
    drawer, cells = grid_drawer
    keep_id = cells[0].id
    _, other = await _second_drawer(db, world, drawer.blueprint_id)
    other_id = other.id
    with pytest.raises(ValidationError):
        await reflow.merge_compartments(db, world.officer, keep_id, other_id)


async def test_merge_blocked_when_absorbed_holds_stock(db, world, grid_drawer):
    drawer, cells = grid_drawer
    drawer_id, keep_id, absorb_id = drawer.id, cells[0].id, cells[1].id
    await inventory.check_in(db, world.officer, world.part_id, absorb_id, 1)
    with pytest.raises(InventoryConflict):
        await reflow.merge_compartments(db, world.officer, keep_id, absorb_id)
    assert absorb_id in {c.id for c in await list_compartments(db, drawer_id)}


async def test_merge_keeps_stock_of_kept_compartment(db, world, grid_drawer):
    _, cells = grid_drawer
    keep_id, absorb_id = cells[0].id, cells[1].id
    await inventory.check_in(db, world.officer, world.part_id, keep_id, 4)
    await reflow.merge_compartments(db, world.officer, keep_id, absorb_id)
    rows = await inventory.list_inventory(db, world.member, compartment_id=keep_id)
    assert rows[0].quantity == 4
