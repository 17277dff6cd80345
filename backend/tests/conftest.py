import os
from types import SimpleNamespace

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stowmap.caller import CallerContext
from stowmap.db import Base
from stowmap.models import Organization, OrgRole, Part, User
from stowmap.services import blueprints, drawers, locks
from stowmap.services.access import list_compartments
from stowmap.services.storage import LocalBlobStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(anyio_backend):
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def world(db):
    """Two organizations, one user per role, and a part to stock."""
    org = Organization(name="Acme", slug="acme")
    other = Organization(name="Other", slug="other")
    db.add_all([org, other])
    await db.flush()
    accounts = [
        ("officer", org, OrgRole.general_officers),
        ("officer2", org, OrgRole.general_officers),
        ("exec", org, OrgRole.executive_officers),
        ("member", org, OrgRole.member),
        ("outsider", other, OrgRole.administrator),
    ]
    users = {}
    for login, owner, role in accounts:
        user = User(org_id=owner.id, login=login, name=login.title(), password_hash="!", role=role)
        db.add(user)
        users[login] = user
    await db.flush()
    part = Part(org_id=org.id, name="Resistor 10k", sku="RES-10K")
    archived = Part(org_id=org.id, name="Old fuse", sku="FUSE-OLD", archived=True)
    db.add_all([part, archived])
    await db.commit()
    callers = {login: CallerContext(u.id, u.org_id, u.role) for login, u in users.items()}
    return SimpleNamespace(
        org_id=org.id, users=users, part_id=part.id, archived_part_id=archived.id, **callers
    )


@pytest.fixture
def store(tmp_path):
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
async def locked_blueprint(db, world):
    """A blueprint the officer holds the lock on."""
    blueprint = await blueprints.create_blueprint(db, world.officer, "Workbench")
    result = await locks.acquire_lock(db, world.officer, blueprint.id)
    assert result.success
    return blueprint


@pytest.fixture
async def grid_drawer(db, world, locked_blueprint):
    """A 400x300 drawer split 2x2; returns (drawer, compartments in row-major order)."""
    drawer = await drawers.create_drawer(
        db, world.officer, locked_blueprint.id, x=0, y=0, width=400, height=300, grid_rows=2, grid_cols=2
    )
    compartments = await list_compartments(db, drawer.id)
    return drawer, compartments
