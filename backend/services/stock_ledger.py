"""
Stock ledger: per-branch inventory lines and their quantity mutations.

Nothing here commits. Callers run these inside one transaction and roll back
on any exception, so both legs of a move land together or not at all.
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import Branch
from db.inventory.code_sequence import InventoryCodeSequence as InventoryCodeSequenceModel
from db.inventory.item import Inventory as InventoryModel
from services.exceptions import InsufficientStock, SourceNotFound

logger = logging.getLogger(__name__)

CODE_PREFIXES = {"raw": "RAW", "product": "PRD"}


def code_prefix_for(inventory_type: str) -> str:
    return CODE_PREFIXES.get((inventory_type or "").strip().lower(), "RAW")


def format_inventory_code(prefix: str, number: int) -> str:
    return f"{prefix}-{int(number):04d}"


def parse_code_number(code: Optional[str]) -> Optional[int]:
    if not code or "-" not in code:
        return None
    suffix = code.split("-", 1)[1]
    return int(suffix) if suffix.isdigit() else None


async def highest_code_number(db: AsyncSession, prefix: str) -> int:
    res = await db.execute(select(InventoryModel.code).where(InventoryModel.code.like(f"{prefix}-%")))
    numbers = [n for n in (parse_code_number(c) for c in res.scalars().all()) if n is not None]
    return max(numbers, default=0)


async def ensure_code_sequences(db: AsyncSession, prefixes: Iterable[str] = CODE_PREFIXES.values()) -> None:
    """Create missing sequence rows, starting each after the highest existing code."""
    for prefix in prefixes:
        res = await db.execute(select(InventoryCodeSequenceModel).where(InventoryCodeSequenceModel.prefix == prefix))
        if res.scalar_one_or_none() is None:
            db.add(InventoryCodeSequenceModel(prefix=prefix, last_value=await highest_code_number(db, prefix)))
    await db.commit()


async def next_inventory_code(db: AsyncSession, prefix: str) -> str:
    res = await db.execute(
        select(InventoryCodeSequenceModel)
        .where(InventoryCodeSequenceModel.prefix == prefix)
        .with_for_update()
    )
    seq = res.scalar_one_or_none()
    highest = await highest_code_number(db, prefix)
    if seq is None:
        # Prefix not seeded at startup.
        seq = InventoryCodeSequenceModel(prefix=prefix, last_value=highest)
        db.add(seq)
    # Lines created outside transfers do not bump the counter.
    seq.last_value = max(int(seq.last_value or 0), highest) + 1
    await db.flush()
    return format_inventory_code(prefix, seq.last_value)


def _line_filter(stmt, *, branch_id: int, subcategory_id: Optional[int], inventory_type: str):
    stmt = stmt.where(InventoryModel.branch_id == branch_id, InventoryModel.type == inventory_type)
    if subcategory_id is None:
        return stmt.where(InventoryModel.subcategory_id.is_(None))
    return stmt.where(InventoryModel.subcategory_id == subcategory_id)


async def lock_branches(db: AsyncSession, branch_ids: Iterable[int]) -> list[int]:
    """Row-lock branches in ascending id order so opposite-direction moves cannot deadlock."""
    ordered = sorted(set(branch_ids))
    await db.execute(select(Branch.id).where(Branch.id.in_(ordered)).order_by(Branch.id.asc()).with_for_update())
    return ordered


async def find_source_line(
    db: AsyncSession, *, branch_id: int, subcategory_id: Optional[int], inventory_type: str
) -> InventoryModel:
    stmt = _line_filter(select(InventoryModel), branch_id=branch_id, subcategory_id=subcategory_id, inventory_type=inventory_type)
    res = await db.execute(stmt.with_for_update())
    line = res.scalar_one_or_none()
    if not line:
        raise SourceNotFound(f"Source inventory not found in branch {branch_id}")
    return line


async def decrement(db: AsyncSession, line: InventoryModel, quantity: Decimal) -> InventoryModel:
    res = await db.execute(
        update(InventoryModel)
        .where(InventoryModel.id == line.id, InventoryModel.quantity >= quantity)
        .values(quantity=InventoryModel.quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        await db.refresh(line)
        raise InsufficientStock(available=line.quantity, requested=quantity)
    await db.refresh(line)
    return line


async def increment(db: AsyncSession, line: InventoryModel, quantity: Decimal) -> InventoryModel:
    await db.execute(
        update(InventoryModel)
        .where(InventoryModel.id == line.id)
        .values(quantity=InventoryModel.quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(line)
    return line


async def find_or_create_destination_line(
    db: AsyncSession,
    *,
    subcategory_id: Optional[int],
    branch_id: int,
    inventory_type: str,
    template: InventoryModel,
) -> InventoryModel:
    # Serialize first-time creation into this branch.
    await db.execute(select(Branch.id).where(Branch.id == branch_id).with_for_update())

    stmt = _line_filter(select(InventoryModel), branch_id=branch_id, subcategory_id=subcategory_id, inventory_type=inventory_type)
    line = (await db.execute(stmt.with_for_update())).scalar_one_or_none()
    if line:
        return line

    line = InventoryModel(
        branch_id=branch_id,
        subcategory_id=subcategory_id,
        type=inventory_type,
        name=template.name,
        price=template.price,
        quantity=0,
        code=await next_inventory_code(db, code_prefix_for(inventory_type)),
    )
    db.add(line)
    await db.flush()
    logger.info("Created inventory line %s (%s) in branch %s", line.id, line.code, branch_id)
    return line


async def move_stock(
    db: AsyncSession,
    *,
    template: InventoryModel,
    from_branch_id: int,
    to_branch_id: int,
    quantity: Decimal,
) -> tuple[InventoryModel, InventoryModel]:
    """Move ``quantity`` of the template's subcategory/type between branches."""
    await lock_branches(db, (from_branch_id, to_branch_id))
    source = await find_source_line(
        db, branch_id=from_branch_id, subcategory_id=template.subcategory_id, inventory_type=template.type
    )
    source = await decrement(db, source, quantity)

    destination = await find_or_create_destination_line(
        db,
        subcategory_id=template.subcategory_id,
        branch_id=to_branch_id,
        inventory_type=template.type,
        template=template,
    )
    destination = await increment(db, destination, quantity)
    return source, destination
