from collections.abc import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from core.config import settings


class Base(DeclarativeBase):
    pass


engine = create_async_engine(settings.database_url, echo=settings.database_echo)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def create_db_and_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


# Register every mapped class on Base.metadata (and re-export for routers).
from .branch import Branch, BranchManager, Employee  # noqa: E402,F401
from .category import Category, Subcategory  # noqa: E402,F401
from .users import User, UserPermission  # noqa: E402,F401
from .inventory.item import Inventory  # noqa: E402,F401
from .inventory.code_sequence import InventoryCodeSequence  # noqa: E402,F401
from .inventory.transfer import InventoryTransfer  # noqa: E402,F401
