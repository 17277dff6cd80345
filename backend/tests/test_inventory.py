import pytest
from sqlalchemy import select

from stowmap.errors import (
    CrossBlueprintNotAllowed,
    Forbidden,
    InventoryConflict,
    LockedByOther,
    NotFound,
    ValidationError,
)
from stowmap.models import AuditLog, Blueprint, Inventory, TransactionAction
from stowmap.services import blueprints, compartments, drawers, inventory, locks, parts
from stowmap.services.access import list_compartments

pytestmark = pytest.mark.anyio


async def test_check_in_and_out(db, world, grid_drawer):
    _, cells = grid_drawer
    cid = cells[0].id
    added = await inventory.check_in(db, world.officer, world.part_id, cid, 10)
    assert (added.old_quantity, added.new_quantity) == (0, 10)
    again = await inventory.check_in(db, world.officer, world.part_id, cid, 5)
    assert again.inventory_id == added.inventory_id
    assert again.new_quantity == 15

    removed = await inventory.check_out(db, world.officer, world.part_id, cid, 15, notes="kitting")
    assert removed.new_quantity == 0

    with pytest.raises(ValidationError) as exc:
        await inventory.check_out(db, world.officer, world.part_id, cid, 1)
    assert exc.value.detail == "Insufficient inventory. Available: 0"


async def test_quantity_must_be_positive(db, world, grid_drawer):
    _, cells = grid_drawer
    with pytest.raises(ValidationError):
        await inventory.check_in(db, world.officer, world.part_id, cells[0].id, 0)


async def test_archived_part_is_read_only(db, world, grid_drawer):
    _, cells = grid_drawer
    with pytest.raises(ValidationError) as exc:
        await inventory.check_in(db, world.officer, world.archived_part_id, cells[0].id, 1)
    assert exc.value.detail == "Cannot modify inventory for archived part"


async def test_member_cannot_change_stock(db, world, grid_drawer):
    _, cells = grid_drawer
    with pytest.raises(Forbidden):
        await inventory.check_in(db, world.member, world.part_id, cells[0].id, 1)


async def test_move_between_compartments(db, world, grid_drawer):
    _, cells = grid_drawer
    a, b = cells[0].id, cells[1].id
    await inventory.check_in(db, world.officer, world.part_id, a, 8)
    moved = await inventory.move(db, world.officer, world.part_id, a, b, 3)
    assert (moved.source_quantity, moved.dest_quantity) == (5, 3)

    with pytest.raises(ValidationError) as exc:
        await inventory.move(db, world.officer, world.part_id, a, b, 6)
    assert exc.value.detail == "Insufficient inventory in source. Available: 5"

    with pytest.raises(ValidationError):
        await inventory.move(db, world.officer, world.part_id, a, a, 1)


async def test_adjust_records_difference(db, world, grid_drawer):
    _, cells = grid_drawer
    cid = cells[0].id
    await inventory.check_in(db, world.officer, world.part_id, cid, 4)
    change = await inventory.adjust(db, world.officer, world.part_id, cid, 9)
    assert (change.old_quantity, change.new_quantity) == (4, 9)

    history = await inventory.list_transactions(db, world.member, compartment_id=cid)
    assert [t.action_type for t in history] == [TransactionAction.adjust, TransactionAction.add]
    assert history[0].quantity_delta == 5
    assert history[0].notes == "Manual adjustment from 4 to 9"

    with pytest.raises(ValidationError):
        await inventory.adjust(db, world.officer, world.part_id, cid, -1)


async def test_stock_does_not_need_lock(db, world, grid_drawer):
    drawer, cells = grid_drawer
    await locks.release_lock(db, world.officer, drawer.blueprint_id)
    change = await inventory.check_in(db, world.officer2, world.part_id, cells[0].id, 1)
    assert change.new_quantity == 1


async def test_zero_quantity_row_is_not_stock(db, world, grid_drawer):
    drawer, cells = grid_drawer
    cid = cells[0].id
    await inventory.check_in(db, world.officer, world.part_id, cid, 2)
    await inventory.check_out(db, world.officer, world.part_id, cid, 2)
    assert await compartments.delete_compartment(db, world.officer, cid) == (1, 3)
    res = await db.execute(select(Inventory).where(Inventory.compartment_id == cid))
    assert res.scalars().all() == []


async def test_delete_compartment_with_stock(db, world, grid_drawer):
    drawer, cells = grid_drawer
    drawer_id, cid = drawer.id, cells[0].id
    await inventory.check_in(db, world.officer, world.part_id, cid, 7)

    with pytest.raises(InventoryConflict) as exc:
        await compartments.delete_compartment(db, world.officer, cid)
    assert exc.value.detail == "Cannot delete compartment containing inventory. Remove inventory first."
    assert len(await list_compartments(db, drawer_id)) == 4

    await compartments.delete_compartment(db, world.officer, cid, force=True)
    assert cid not in {c.id for c in await list_compartments(db, drawer_id)}
    res = await db.execute(select(AuditLog).where(AuditLog.action == "compartment_force_delete"))
    entry = res.scalar_one()
    assert entry.entity_id == cid
    assert entry.payload_json == {"units_dropped": 7}


async def test_delete_drawer_with_stock(db, world, grid_drawer):
    drawer, cells = grid_drawer
    drawer_id = drawer.id
    cells[2].label = "C3"
    cid = cells[2].id
    await db.commit()
    await inventory.check_in(db, world.officer, world.part_id, cid, 1)

    with pytest.raises(InventoryConflict) as exc:
        await drawers.delete_drawer(db, world.officer, drawer_id)
    assert exc.value.detail == (
        'Cannot delete drawer: compartment "C3" contains inventory. Remove inventory first.'
    )

    await drawers.delete_drawer(db, world.officer, drawer_id, force=True)
    assert await list_compartments(db, drawer_id) == []
    res = await db.execute(select(AuditLog).where(AuditLog.action == "drawer_force_delete"))
    assert res.scalar_one().payload_json == {"compartment_ids": [cid], "units_dropped": 1}


async def test_reassign_compartment_between_drawers(db, world, grid_drawer):
    drawer, cells = grid_drawer
    other = await drawers.create_drawer(db, world.officer, drawer.blueprint_id, x=600, y=0, width=200, height=200)
    other_id, cid = other.id, cells[0].id
    await inventory.check_in(db, world.officer, world.part_id, cid, 2)

    with pytest.raises(InventoryConflict):
        await compartments.update_compartment(db, world.officer, cid, {"drawer_id": other_id})

    moved = await compartments.update_compartment(
        db, world.officer, cid, {"drawer_id": other_id, "x": 0, "y": 0}
    )
    assert moved.drawer_id == other_id
    rows = await inventory.list_inventory(db, world.member, compartment_id=cid)
    assert rows[0].quantity == 2


async def test_reassign_across_blueprints_refused(db, world, grid_drawer):
    _, cells = grid_drawer
    cid = cells[0].id
    garage = await blueprints.create_blueprint(db, world.officer, "Garage")
    await locks.acquire_lock(db, world.officer, garage.id)
    foreign = await drawers.create_drawer(db, world.officer, garage.id, x=0, y=0, width=100, height=100)
    foreign_id = foreign.id
    with pytest.raises(CrossBlueprintNotAllowed):
        await compartments.update_compartment(db, world.officer, cid, {"drawer_id": foreign_id, "x": 0, "y": 0})


async def test_delete_blueprint_cascades(db, world, grid_drawer, store):
    drawer, _ = grid_drawer
    blueprint_id = drawer.blueprint_id
    await blueprints.set_background_image(db, world.officer, blueprint_id, store, b"png-bytes")
    image_id = (await db.get(Blueprint, blueprint_id)).background_image_id
    assert store.get(image_id) == b"png-bytes"

    await blueprints.delete_blueprint(db, world.officer, blueprint_id, store)
    with pytest.raises(NotFound):
        await blueprints.get_layout(db, world.member, blueprint_id)
    with pytest.raises(NotFound):
        store.get(image_id)
    res = await db.execute(select(AuditLog).where(AuditLog.action == "blueprint_delete"))
    assert res.scalar_one().payload_json == {"drawers": 1, "compartments": 4, "dividers": 0}


async def test_delete_blueprint_blocked(db, world, grid_drawer):
    drawer, cells = grid_drawer
    blueprint_id = drawer.blueprint_id
    await inventory.check_in(db, world.officer, world.part_id, cells[0].id, 1)
    with pytest.raises(InventoryConflict):
        await blueprints.delete_blueprint(db, world.officer, blueprint_id)
    with pytest.raises(LockedByOther):
        await blueprints.delete_blueprint(db, world.officer2, blueprint_id)
    assert (await blueprints.get_layout(db, world.member, blueprint_id)).drawers


async def test_parts_catalogue(db, world):
    part = await parts.create_part(db, world.officer, "Capacitor 1uF", "CAP-1U", category="passives")
    part_id = part.id
    with pytest.raises(ValidationError) as exc:
        await parts.create_part(db, world.officer, "Duplicate", "CAP-1U")
    assert exc.value.detail == 'A part with SKU "CAP-1U" already exists'

    found = await parts.list_parts(db, world.member, q="cap")
    assert [p.sku for p in found] == ["CAP-1U"]
    visible = await parts.list_parts(db, world.member)
    assert "FUSE-OLD" not in {p.sku for p in visible}
    everything = await parts.list_parts(db, world.member, include_archived=True)
    assert "FUSE-OLD" in {p.sku for p in everything}

    archived = await parts.set_archived(db, world.officer, part_id)
    assert archived.archived
