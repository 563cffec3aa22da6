"""
Inventory transfer workflow.

A transfer is created ``pending`` and resolved exactly once, to ``approved``
(stock moves) or ``rejected`` (no stock change). Manager requests approve
themselves in the same call. Every mutating operation commits once at the end
and rolls back everything on failure.
"""

import enum
import logging
import math
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.actors import Actor, ActorKind
from db.inventory.item import Inventory as InventoryModel
from db.inventory.transfer import InventoryTransfer as InventoryTransferModel
from services import stock_ledger
from services.exceptions import (
    AlreadyResolved,
    DuplicatePendingTransfer,
    Forbidden,
    InsufficientStock,
    InventoryNotFound,
    SourceNotFound,
    TransferConflict,
    TransferNotFound,
    TransferValidationError,
)
from services.transfer_authorization import can_approve, can_view

logger = logging.getLogger(__name__)


class TransferStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ARRIVED = "arrived"


# ARRIVED has no inbound transition yet; a receipt-confirmation step would add
# APPROVED -> {ARRIVED} here.
TRANSITIONS: dict[TransferStatus, frozenset[TransferStatus]] = {
    TransferStatus.PENDING: frozenset({TransferStatus.APPROVED, TransferStatus.REJECTED}),
}

STATUS_LABELS = {
    TransferStatus.PENDING.value: "قيد الانتظار",
    TransferStatus.APPROVED.value: "تم القبول",
    TransferStatus.REJECTED.value: "تم الرفض",
    TransferStatus.ARRIVED.value: "تم الوصول",
}

DATE_FORMAT = "%d-%m-%Y"

# deadlock_detected, serialization_failure
LOCK_CONFLICT_SQLSTATES = {"40P01", "40001"}


def _is_lock_conflict(exc: BaseException) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in LOCK_CONFLICT_SQLSTATES:
        return True
    return "deadlock detected" in str(orig or exc).lower()


def status_label(value: Optional[str]) -> str:
    return STATUS_LABELS.get(value, STATUS_LABELS[TransferStatus.PENDING.value])


def _fmt_date(dt) -> Optional[str]:
    return dt.strftime(DATE_FORMAT) if dt else None


def format_inventory_transfer(transfer: InventoryTransferModel) -> dict:
    inventory = transfer.inventory
    return {
        "uuid": transfer.uuid,
        "product_name": inventory.name if inventory else None,
        "quantity": float(transfer.quantity) if transfer.quantity is not None else 0.0,
        "from_branch_name": transfer.from_branch.name if transfer.from_branch else None,
        "to_branch_name": transfer.to_branch.name if transfer.to_branch else None,
        "transfer_date": _fmt_date(transfer.created_at),
        "arrival_date": _fmt_date(transfer.arrival_date),
        "status": status_label(transfer.status),
    }


def _with_relations(stmt):
    return stmt.options(
        selectinload(InventoryTransferModel.inventory),
        selectinload(InventoryTransferModel.from_branch),
        selectinload(InventoryTransferModel.to_branch),
    )


async def get_transfer(db: AsyncSession, transfer_uuid: UUID) -> InventoryTransferModel:
    res = await db.execute(
        _with_relations(select(InventoryTransferModel))
        .where(InventoryTransferModel.uuid == transfer_uuid)
        .execution_options(populate_existing=True)
    )
    transfer = res.scalar_one_or_none()
    if not transfer:
        raise TransferNotFound(f"Transfer {transfer_uuid} not found")
    return transfer


async def resolve_source_inventory(
    db: AsyncSession, *, from_branch_id: int, subcategory_id: int, inventory_type: Optional[str] = None
) -> InventoryModel:
    """Pick the source branch's stock line for a subcategory when no line id was given.

    Without ``inventory_type`` the oldest line of the subcategory wins.
    """
    stmt = select(InventoryModel).where(
        InventoryModel.branch_id == from_branch_id, InventoryModel.subcategory_id == subcategory_id
    )
    if inventory_type is not None:
        stmt = stmt.where(InventoryModel.type == inventory_type)
    res = await db.execute(stmt.order_by(InventoryModel.id.asc()).limit(1))
    inventory = res.scalar_one_or_none()
    if not inventory:
        raise SourceNotFound(f"No inventory for subcategory {subcategory_id} in branch {from_branch_id}")
    return inventory


async def _claim(db: AsyncSession, transfer: InventoryTransferModel, new_status: TransferStatus, actor: Actor) -> None:
    """Move a pending row to ``new_status``; exactly one concurrent caller wins."""
    current = TransferStatus(transfer.status) if transfer.status in STATUS_LABELS else None
    if current is None or new_status not in TRANSITIONS.get(current, frozenset()):
        raise AlreadyResolved(transfer.uuid, transfer.status)

    res = await db.execute(
        update(InventoryTransferModel)
        .where(
            InventoryTransferModel.id == transfer.id,
            InventoryTransferModel.status == current.value,
        )
        .values(
            status=new_status.value,
            approved_by_id=actor.id,
            approved_by_type=actor.kind.value,
            arrival_date=func.now(),
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise AlreadyResolved(transfer.uuid)


async def _approve_pending(db: AsyncSession, transfer: InventoryTransferModel, actor: Actor) -> None:
    await _claim(db, transfer, TransferStatus.APPROVED, actor)

    template = await db.get(InventoryModel, transfer.inventory_id)
    if template is None:
        raise InventoryNotFound(f"Inventory {transfer.inventory_id} not found")
    await stock_ledger.move_stock(
        db,
        template=template,
        from_branch_id=transfer.from_branch_id,
        to_branch_id=transfer.to_branch_id,
        quantity=Decimal(transfer.quantity),
    )


def _ensure_may_resolve(transfer: InventoryTransferModel, actor: Actor, verb: str) -> None:
    if not can_approve(transfer, actor):
        raise Forbidden(f"You are not allowed to {verb} this transfer")
    if not can_view(transfer, actor):
        raise Forbidden(f"You are not allowed to {verb} transfers of other branches")


async def create_transfer(
    db: AsyncSession,
    *,
    requester: Actor,
    inventory_id: int,
    from_branch_id: int,
    to_branch_id: int,
    quantity: Decimal,
    notes: Optional[str] = None,
) -> InventoryTransferModel:
    quantity = Decimal(quantity)
    if quantity <= 0:
        raise TransferValidationError("quantity must be > 0")
    if from_branch_id == to_branch_id:
        raise TransferValidationError("Cannot transfer to the same branch")

    try:
        inventory = await db.get(InventoryModel, inventory_id, populate_existing=True)
        if not inventory:
            raise InventoryNotFound(f"Inventory {inventory_id} not found")

        # Advisory only; the decrement at approval time is authoritative.
        if Decimal(inventory.quantity or 0) < quantity:
            raise InsufficientStock(available=inventory.quantity, requested=quantity)

        dup = await db.execute(
            select(InventoryTransferModel.id).where(
                InventoryTransferModel.from_branch_id == from_branch_id,
                InventoryTransferModel.to_branch_id == to_branch_id,
                InventoryTransferModel.status == TransferStatus.PENDING.value,
            ).limit(1)
        )
        if dup.scalar_one_or_none() is not None:
            raise DuplicatePendingTransfer("A pending transfer between these branches already exists")

        transfer = InventoryTransferModel(
            inventory_id=inventory.id,
            from_branch_id=from_branch_id,
            to_branch_id=to_branch_id,
            subcategory_id=inventory.subcategory_id,
            quantity=quantity,
            notes=notes,
            status=TransferStatus.PENDING.value,
            requested_by_id=requester.id,
            requested_by_type=requester.kind.value,
        )
        db.add(transfer)
        await db.flush()

        if requester.kind is ActorKind.BRANCH_MANAGER:
            await _approve_pending(db, transfer, requester)

        await db.commit()
    except Exception as exc:
        await db.rollback()
        if _is_lock_conflict(exc):
            raise TransferConflict("Another transfer is moving this stock, retry the request") from exc
        raise

    logger.info(
        "Transfer %s created by %s:%s (%s -> %s, qty=%s)",
        transfer.uuid, requester.kind.value, requester.id, from_branch_id, to_branch_id, quantity,
    )
    return await get_transfer(db, transfer.uuid)


async def approve_transfer(db: AsyncSession, transfer: InventoryTransferModel, actor: Actor) -> InventoryTransferModel:
    transfer_uuid = transfer.uuid
    if transfer.status != TransferStatus.PENDING.value:
        raise AlreadyResolved(transfer.uuid, transfer.status)
    if transfer.requested_by_type != ActorKind.BRANCH_MANAGER.value:
        _ensure_may_resolve(transfer, actor, "approve")

    try:
        await _approve_pending(db, transfer, actor)
        await db.commit()
    except Exception as exc:
        await db.rollback()
        logger.warning("Approval of transfer %s rolled back", transfer_uuid, exc_info=True)
        if _is_lock_conflict(exc):
            raise TransferConflict(f"Transfer {transfer_uuid} is locked by a concurrent approval, retry") from exc
        raise

    logger.info("Transfer %s approved by %s:%s", transfer_uuid, actor.kind.value, actor.id)
    return await get_transfer(db, transfer_uuid)


async def reject_transfer(db: AsyncSession, transfer: InventoryTransferModel, actor: Actor) -> InventoryTransferModel:
    transfer_uuid = transfer.uuid
    if transfer.status != TransferStatus.PENDING.value:
        raise AlreadyResolved(transfer.uuid, transfer.status)
    _ensure_may_resolve(transfer, actor, "reject")

    try:
        await _claim(db, transfer, TransferStatus.REJECTED, actor)
        await db.commit()
    except Exception as exc:
        await db.rollback()
        if _is_lock_conflict(exc):
            raise TransferConflict(f"Transfer {transfer_uuid} is locked by a concurrent approval, retry") from exc
        raise

    logger.info("Transfer %s rejected by %s:%s", transfer_uuid, actor.kind.value, actor.id)
    return await get_transfer(db, transfer_uuid)


async def list_transfers_for_actor(db: AsyncSession, actor: Actor, *, page: int = 1, per_page: int = 10) -> dict:
    branch_ids = list(actor.branch_ids)
    visible = or_(
        InventoryTransferModel.from_branch_id.in_(branch_ids),
        InventoryTransferModel.to_branch_id.in_(branch_ids),
    )

    total = int((await db.execute(select(func.count()).select_from(InventoryTransferModel).where(visible))).scalar_one() or 0)
    res = await db.execute(
        _with_relations(select(InventoryTransferModel))
        .where(visible)
        .order_by(InventoryTransferModel.created_at.desc(), InventoryTransferModel.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    transfers = res.scalars().all()
    return {
        "data": [format_inventory_transfer(t) for t in transfers],
        "current_page": page,
        "per_page": per_page,
        "total": total,
        "last_page": max(1, math.ceil(total / per_page)) if per_page else 1,
    }
