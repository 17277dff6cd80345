import asyncio
from sqlalchemy import select
from stowmap.db import AsyncSessionLocal, utcnow
from stowmap.models import Blueprint, Compartment, Drawer, Organization, OrgRole, Part, User
from stowmap.security import hash_password
from stowmap.services.layout import grid_cells


async def run():
    async with AsyncSessionLocal() as session:
        org = await seed_org(session)
        await seed_users(session, org)
        await seed_parts(session, org)
        await seed_blueprint(session, org)
        await session.commit()


async def seed_org(session) -> Organization:
    res = await session.execute(select(Organization).where(Organization.slug == "demo"))
    org = res.scalar_one_or_none()
    if org:
        return org
    org = Organization(name="Demo Workshop", slug="demo")
    session.add(org)
    await session.flush()
    return org


async def seed_users(session, org):
    users = [
        ("admin", "admin123", "Admin", OrgRole.administrator),
        ("exec", "exec123", "Executive", OrgRole.executive_officers),
        ("officer", "officer123", "Officer", OrgRole.general_officers),
        ("member", "member123", "Member", OrgRole.member),
    ]
    for login, pwd, name, role in users:
        res = await session.execute(select(User).where(User.login == login))
        if res.scalar_one_or_none():
            continue
        session.add(
            User(org_id=org.id, login=login, name=name, password_hash=hash_password(pwd), role=role, is_active=True)
        )


async def seed_parts(session, org):
    sample = [
        ("RES-10K", "Resistor 10k", "Passives"),
        ("CAP-100N", "Capacitor 100nF", "Passives"),
        ("LED-RED", "LED red 5mm", "Optoelectronics"),
        ("M3-BOLT", "M3x10 bolt", "Hardware"),
    ]
    for sku, name, category in sample:
        res = await session.execute(select(Part).where(Part.org_id == org.id, Part.sku == sku))
        if res.scalar_one_or_none():
            continue
        session.add(Part(org_id=org.id, sku=sku, name=name, category=category))


async def seed_blueprint(session, org):
    res = await session.execute(select(Blueprint).where(Blueprint.org_id == org.id))
    if res.scalars().first():
        return
    now = utcnow()
    blueprint = Blueprint(org_id=org.id, name="Workbench", created_at=now, updated_at=now)
    session.add(blueprint)
    await session.flush()
    # one 2x2 grid drawer, one freehand drawer
    grid = Drawer(
        blueprint_id=blueprint.id, x=300, y=200, width=400, height=300, z_index=0,
        grid_rows=2, grid_cols=2, label="Parts bin",
    )
    loose = Drawer(blueprint_id=blueprint.id, x=800, y=200, width=300, height=300, z_index=1, label="Tools")
    session.add_all([grid, loose])
    await session.flush()
    for row, col, rect in grid_cells(2, 2, grid.width, grid.height):
        session.add(
            Compartment(
                drawer_id=grid.id, x=rect.x, y=rect.y, width=rect.width, height=rect.height,
                z_index=row * 2 + col, label=f"{chr(65 + row)}{col + 1}",
            )
        )


if __name__ == "__main__":
    asyncio.run(run())
