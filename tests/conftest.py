"""
Pytest configuration and shared fixtures.

Each test gets its own file-backed SQLite database (aiosqlite) seeded with two
managers, three branches, employees, a category tree and one stock line.
"""
import os

# Settings are read at import time; point the module-level engine somewhere harmless.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.setdefault("JWT_SECRET", "test-secret")

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from core.auth import current_active_user
from core.actors import (
    APPROVE_TRANSFER,
    CREATE_TRANSFER,
    READ_TRANSFERS,
    REJECT_TRANSFER,
    Actor,
    ActorKind,
    current_actor,
)
from db.database import (
    Base,
    Branch,
    BranchManager,
    Category,
    Employee,
    Inventory,
    InventoryTransfer,
    Subcategory,
    User,
    UserPermission,
    get_async_session,
)

ALL_PERMISSIONS = frozenset({READ_TRANSFERS, CREATE_TRANSFER, APPROVE_TRANSFER, REJECT_TRANSFER})


@dataclass
class World:
    manager_id: int
    other_manager_id: int
    branch_a_id: int
    branch_b_id: int
    branch_c_id: int
    employee_a_id: int
    employee_b_id: int
    category_id: int
    subcategory_id: int
    inactive_subcategory_id: int
    line_a_id: int

    @property
    def employee_a(self) -> Actor:
        return Actor(ActorKind.EMPLOYEE_LOGIN, self.employee_a_id, frozenset({self.branch_a_id}), ALL_PERMISSIONS)

    @property
    def employee_b(self) -> Actor:
        return Actor(ActorKind.EMPLOYEE_LOGIN, self.employee_b_id, frozenset({self.branch_b_id}), ALL_PERMISSIONS)

    @property
    def branch_a(self) -> Actor:
        return Actor(ActorKind.BRANCH, self.branch_a_id, frozenset({self.branch_a_id}), ALL_PERMISSIONS)

    @property
    def branch_b(self) -> Actor:
        return Actor(ActorKind.BRANCH, self.branch_b_id, frozenset({self.branch_b_id}), ALL_PERMISSIONS)

    @property
    def branch_c(self) -> Actor:
        return Actor(ActorKind.BRANCH, self.branch_c_id, frozenset({self.branch_c_id}), ALL_PERMISSIONS)

    @property
    def manager(self) -> Actor:
        return Actor(
            ActorKind.BRANCH_MANAGER,
            self.manager_id,
            frozenset({self.branch_a_id, self.branch_b_id}),
            ALL_PERMISSIONS,
        )

    @property
    def other_manager(self) -> Actor:
        return Actor(ActorKind.BRANCH_MANAGER, self.other_manager_id, frozenset({self.branch_c_id}), ALL_PERMISSIONS)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'transfers.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def world(session_maker) -> World:
    async with session_maker() as s:
        manager = BranchManager(name="Cairo Manager")
        other_manager = BranchManager(name="Alexandria Manager")
        s.add_all([manager, other_manager])
        await s.flush()

        branch_a = Branch(name="Downtown", branch_manager_id=manager.id)
        branch_b = Branch(name="Nasr City", branch_manager_id=manager.id)
        branch_c = Branch(name="Smouha", branch_manager_id=other_manager.id)
        s.add_all([branch_a, branch_b, branch_c])
        await s.flush()

        employee_a = Employee(name="Mona", branch_id=branch_a.id)
        employee_b = Employee(name="Karim", branch_id=branch_b.id)
        category = Category(name="Fabrics", branch_id=branch_a.id)
        s.add_all([employee_a, employee_b, category])
        await s.flush()

        cotton = Subcategory(name="Cotton", category_id=category.id)
        linen = Subcategory(name="Linen", category_id=category.id, active=False)
        s.add_all([cotton, linen])
        await s.flush()

        line_a = Inventory(
            name="Cotton roll",
            code="RAW-0007",
            subcategory_id=cotton.id,
            price=Decimal("25.50"),
            type="raw",
            quantity=Decimal("10"),
            branch_id=branch_a.id,
        )
        s.add(line_a)
        await s.flush()

        world = World(
            manager_id=manager.id,
            other_manager_id=other_manager.id,
            branch_a_id=branch_a.id,
            branch_b_id=branch_b.id,
            branch_c_id=branch_c.id,
            employee_a_id=employee_a.id,
            employee_b_id=employee_b.id,
            category_id=category.id,
            subcategory_id=cotton.id,
            inactive_subcategory_id=linen.id,
            line_a_id=line_a.id,
        )
        await s.commit()
    return world


async def get_line(session_maker, branch_id: int, subcategory_id: Optional[int], inventory_type: str = "raw") -> Optional[Inventory]:
    async with session_maker() as s:
        res = await s.execute(
            select(Inventory).where(
                Inventory.branch_id == branch_id,
                Inventory.subcategory_id == subcategory_id,
                Inventory.type == inventory_type,
            )
        )
        return res.scalar_one_or_none()


async def get_transfer_row(session_maker, transfer_uuid) -> Optional[InventoryTransfer]:
    async with session_maker() as s:
        res = await s.execute(select(InventoryTransfer).where(InventoryTransfer.uuid == transfer_uuid))
        return res.scalar_one_or_none()


async def count_transfers(session_maker) -> int:
    async with session_maker() as s:
        return int((await s.execute(select(func.count()).select_from(InventoryTransfer))).scalar_one())


@pytest.fixture
def acting():
    """Holds the actor the HTTP client authenticates as."""
    return {}


@pytest_asyncio.fixture
async def client(session_maker, acting):
    from main import app

    async def _session():
        async with session_maker() as session:
            yield session

    def _actor():
        return acting["actor"]

    app.dependency_overrides[get_async_session] = _session
    app.dependency_overrides[current_actor] = _actor
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def make_user(session_maker, email: str, *, actor_kind: Optional[str], permissions=(), **links) -> User:
    """Persist a login with the given actor link and permission tags."""
    async with session_maker() as s:
        user = User(
            email=email,
            hashed_password="not-a-real-hash",
            actor_kind=actor_kind,
            permissions=[UserPermission(name=p) for p in permissions],
            **links,
        )
        s.add(user)
        await s.commit()
        return user


@pytest_asyncio.fixture
async def user_client(session_maker, acting):
    """Client authenticated as ``acting["user"]``; the actor is resolved from the user row."""
    from main import app

    async def _session():
        async with session_maker() as session:
            yield session

    def _user():
        return acting["user"]

    app.dependency_overrides[get_async_session] = _session
    app.dependency_overrides[current_active_user] = _user
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
