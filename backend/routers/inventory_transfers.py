from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.actors import (
    APPROVE_TRANSFER,
    CREATE_TRANSFER,
    READ_TRANSFERS,
    REJECT_TRANSFER,
    Actor,
    ActorKind,
    require_permission,
)
from core.config import settings
from db.database import (
    get_async_session,
    Branch as BranchModel,
    Category as CategoryModel,
    Subcategory as SubcategoryModel,
)
from schemas.inventory import (
    InventoryTransferCreate,
    InventoryTransferPage,
    InventoryTransferRead,
    NamedOption,
)
from services.inventory_transfers import (
    approve_transfer,
    create_transfer,
    format_inventory_transfer,
    get_transfer,
    list_transfers_for_actor,
    reject_transfer,
    resolve_source_inventory,
)

router = APIRouter()


@router.get("/", response_model=InventoryTransferPage)
async def list_inventory_transfers(
    page: int = Query(1, ge=1),
    per_page: int = Query(settings.transfers_per_page, ge=1, le=100),
    actor: Actor = Depends(require_permission(READ_TRANSFERS)),
    db: AsyncSession = Depends(get_async_session),
):
    """Transfers leaving or entering any branch the caller can see, newest first."""
    return await list_transfers_for_actor(db, actor, page=page, per_page=per_page)


@router.get("/branches", response_model=List[NamedOption])
async def list_my_branches(
    actor: Actor = Depends(require_permission(CREATE_TRANSFER)),
    db: AsyncSession = Depends(get_async_session),
):
    if actor.kind is not ActorKind.BRANCH_MANAGER:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only branch managers pick a source branch")
    res = await db.execute(
        select(BranchModel)
        .where(BranchModel.id.in_(list(actor.branch_ids)))
        .order_by(func.lower(BranchModel.name).asc())
    )
    return [NamedOption(**b.to_schema) for b in res.scalars().all()]


@router.get("/branches/{branch_id}/categories", response_model=List[NamedOption])
async def list_branch_categories(
    branch_id: int,
    actor: Actor = Depends(require_permission(CREATE_TRANSFER)),
    db: AsyncSession = Depends(get_async_session),
):
    if branch_id not in actor.branch_ids:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    res = await db.execute(
        select(CategoryModel)
        .where(CategoryModel.branch_id == branch_id, CategoryModel.active == True)  # noqa: E712
        .order_by(CategoryModel.id.asc())
    )
    return [NamedOption(**c.to_schema) for c in res.scalars().all()]


@router.get("/categories/{category_id}/subcategories", response_model=List[NamedOption])
async def list_category_subcategories(
    category_id: int,
    actor: Actor = Depends(require_permission(CREATE_TRANSFER)),
    db: AsyncSession = Depends(get_async_session),
):
    category = await db.get(CategoryModel, category_id)
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    res = await db.execute(
        select(SubcategoryModel)
        .where(SubcategoryModel.category_id == category_id, SubcategoryModel.active == True)  # noqa: E712
        .order_by(SubcategoryModel.id.asc())
    )
    return [NamedOption(**s.to_schema) for s in res.scalars().all()]


@router.post("/", response_model=InventoryTransferRead, status_code=status.HTTP_201_CREATED)
async def create_inventory_transfer(
    payload: InventoryTransferCreate,
    actor: Actor = Depends(require_permission(CREATE_TRANSFER)),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Request a transfer of stock to another branch.

    - Branch accounts and employees always transfer out of their own branch.
    - Branch managers choose `from_branch_id` among the branches they manage;
      their requests are approved immediately.
    """
    if actor.kind is ActorKind.BRANCH_MANAGER:
        if payload.from_branch_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="from_branch_id is required")
        if payload.from_branch_id not in actor.branch_ids:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot transfer from a branch you do not manage",
            )
        from_branch_id = payload.from_branch_id
    else:
        from_branch_id = actor.home_branch_id
        if from_branch_id is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No source branch for this user")

    if from_branch_id == payload.to_branch_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot transfer to the same branch")
    if not await db.get(BranchModel, payload.to_branch_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Destination branch does not exist")

    inventory_id = payload.inventory_id
    if inventory_id is None:
        inventory = await resolve_source_inventory(
            db,
            from_branch_id=from_branch_id,
            subcategory_id=payload.subcategory_id,
            inventory_type=payload.inventory_type,
        )
        inventory_id = inventory.id

    transfer = await create_transfer(
        db,
        requester=actor,
        inventory_id=inventory_id,
        from_branch_id=from_branch_id,
        to_branch_id=payload.to_branch_id,
        quantity=payload.quantity,
        notes=payload.notes,
    )
    return format_inventory_transfer(transfer)


@router.post("/{transfer_uuid}/approve", response_model=InventoryTransferRead)
async def approve_inventory_transfer(
    transfer_uuid: UUID,
    actor: Actor = Depends(require_permission(APPROVE_TRANSFER)),
    db: AsyncSession = Depends(get_async_session),
):
    transfer = await get_transfer(db, transfer_uuid)
    transfer = await approve_transfer(db, transfer, actor)
    return format_inventory_transfer(transfer)


@router.post("/{transfer_uuid}/reject", response_model=InventoryTransferRead)
async def reject_inventory_transfer(
    transfer_uuid: UUID,
    actor: Actor = Depends(require_permission(REJECT_TRANSFER)),
    db: AsyncSession = Depends(get_async_session),
):
    transfer = await get_transfer(db, transfer_uuid)
    transfer = await reject_transfer(db, transfer, actor)
    return format_inventory_transfer(transfer)
