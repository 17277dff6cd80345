import pytest

from stowmap.errors import GridShrinkBlocked, UnsupportedRotation, ValidationError
from stowmap.services import compartments, drawers, inventory, reflow
from stowmap.services.access import get_drawer, list_compartments

pytestmark = pytest.mark.anyio


async def test_create_drawer_with_grid_fills_cells(db, world, grid_drawer):
    drawer, cells = grid_drawer
    assert (drawer.grid_rows, drawer.grid_cols) == (2, 2)
    assert [(c.x, c.y, c.width, c.height) for c in cells] == [
        (-100, -75, 200, 150),
        (100, -75, 200, 150),
        (-100, 75, 200, 150),
        (100, 75, 200, 150),
    ]
    assert [c.z_index for c in cells] == [0, 1, 2, 3]


async def test_grow_keeps_existing_ids(db, world, grid_drawer):
    drawer, cells = grid_drawer
    before = {c.id for c in cells}
    result = await reflow.set_grid(db, world.officer, drawer.id, 3, 3)
    after = {c.id for c in result.compartments}
    assert before <= after
    assert len(after) == 9
    assert len(result.created) == 5
    assert result.deleted == []
    assert (result.drawer.grid_rows, result.drawer.grid_cols) == (3, 3)


async def test_shrink_deletes_empty_extras(db, world, grid_drawer):
    drawer, cells = grid_drawer
    result = await reflow.set_grid(db, world.officer, drawer.id, 1, 2)
    assert len(result.compartments) == 2
    assert len(result.deleted) == 2
    for compartment in result.compartments:
        assert compartment.width == 200
        assert compartment.height == 300
        assert compartment.y == 0


async def test_shrink_keeps_stocked_compartment(db, world, grid_drawer):
    drawer, cells = grid_drawer
    stocked_id = cells[3].id
    await inventory.check_in(db, world.officer, world.part_id, stocked_id, 5)
    result = await reflow.set_grid(db, world.officer, drawer.id, 1, 2)
    ids = {c.id for c in result.compartments}
    assert stocked_id in ids
    assert stocked_id not in result.deleted
    rows = await inventory.list_inventory(db, world.member, compartment_id=stocked_id)
    assert rows[0].quantity == 5


async def test_shrink_blocked_when_stock_would_be_lost(db, world, grid_drawer):
    drawer, cells = grid_drawer
    drawer_id = drawer.id
    ids = [c.id for c in cells]
    for cid in ids[1:]:
        await inventory.check_in(db, world.officer, world.part_id, cid, 5)

    with pytest.raises(GridShrinkBlocked) as exc:
        await reflow.set_grid(db, world.officer, drawer_id, 1, 2)
    assert "1 compartment(s)" in exc.value.detail
    assert exc.value.status_code == 409

    remaining = await list_compartments(db, drawer_id)
    assert sorted(c.id for c in remaining) == sorted(ids)
    fresh, _ = await get_drawer(db, world.officer, drawer_id)
    assert (fresh.grid_rows, fresh.grid_cols) == (2, 2)


async def test_grid_rejects_bad_dims(db, world, grid_drawer):
    drawer, _ = grid_drawer
    with pytest.raises(ValidationError):
        await reflow.set_grid(db, world.officer, drawer.id, 0, 3)


async def test_grid_rejects_rotated_drawer(db, world, locked_blueprint):
    drawer = await drawers.create_drawer(
        db, world.officer, locked_blueprint.id, x=0, y=0, width=200, height=200, rotation=45
    )
    drawer_id = drawer.id
    with pytest.raises(UnsupportedRotation):
        await reflow.set_grid(db, world.officer, drawer_id, 2, 2)
    assert await list_compartments(db, drawer_id) == []


async def test_delete_regrids_remaining(db, world, grid_drawer):
    drawer, cells = grid_drawer
    drawer_id = drawer.id
    survivors = [c.id for c in cells if c.id != cells[1].id]

    regrid = await compartments.delete_compartment(db, world.officer, cells[1].id)
    assert regrid == (1, 3)

    remaining = await list_compartments(db, drawer_id)
    assert [c.id for c in remaining] == survivors
    assert [(c.x, c.width, c.height) for c in remaining] == [
        (pytest.approx(-400 / 3), pytest.approx(400 / 3), 300),
        (pytest.approx(0), pytest.approx(400 / 3), 300),
        (pytest.approx(400 / 3), pytest.approx(400 / 3), 300),
    ]
    fresh, _ = await get_drawer(db, world.officer, drawer_id)
    assert (fresh.grid_rows, fresh.grid_cols) == (1, 3)


async def test_delete_last_compartment_clears_grid(db, world, locked_blueprint):
    drawer = await drawers.create_drawer(
        db, world.officer, locked_blueprint.id, x=0, y=0, width=100, height=100, grid_rows=1, grid_cols=1
    )
    cells = await list_compartments(db, drawer.id)
    assert await compartments.delete_compartment(db, world.officer, cells[0].id) is None
    assert drawer.grid_rows is None and drawer.grid_cols is None


async def test_delete_in_freehand_drawer_leaves_layout(db, world, locked_blueprint):
    drawer = await drawers.create_drawer(db, world.officer, locked_blueprint.id, x=0, y=0, width=300, height=100)
    a = await compartments.create_compartment(db, world.officer, drawer.id, x=-100, y=0, width=50, height=50)
    b = await compartments.create_compartment(db, world.officer, drawer.id, x=100, y=0, width=50, height=50)
    assert await compartments.delete_compartment(db, world.officer, a.id) is None
    remaining = await list_compartments(db, drawer.id)
    assert [(c.id, c.x) for c in remaining] == [(b.id, 100)]


async def test_resize_refits_grid_cells(db, world, grid_drawer):
    drawer, cells = grid_drawer
    ids = [c.id for c in cells]
    await drawers.update_drawer(db, world.officer, drawer.id, {"width": 800})
    refit = await list_compartments(db, drawer.id)
    assert [c.id for c in refit] == ids
    assert [(c.x, c.width) for c in refit] == [(-200, 400), (200, 400), (-200, 400), (200, 400)]
    assert all(c.height == 150 for c in refit)


async def test_resize_leaves_freehand_edits_alone(db, world, grid_drawer):
    drawer, cells = grid_drawer
    await compartments.create_compartment(db, world.officer, drawer.id, x=0, y=0, width=20, height=20)
    await drawers.update_drawer(db, world.officer, drawer.id, {"width": 800})
    after = await list_compartments(db, drawer.id)
    assert after[0].width == 200


async def test_update_drawer_rejects_unknown_fields(db, world, grid_drawer):
    drawer, _ = grid_drawer
    with pytest.raises(ValidationError):
        await drawers.update_drawer(db, world.officer, drawer.id, {"grid_rows": 5})
