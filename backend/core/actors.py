"""
Transfer actors.

An authenticated user acts as exactly one of three guards: a branch account,
a branch manager, or an employee login. Requests resolve the user into a
frozen ``Actor`` carrying its kind, the id of the record it represents, the
branches it can see, and its permission tags.
"""

import enum
from dataclasses import dataclass, field
from typing import Callable

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from db.database import Branch, Employee, get_async_session
from db.users import User


class ActorKind(str, enum.Enum):
    BRANCH = "branch"
    BRANCH_MANAGER = "branch_manager"
    EMPLOYEE_LOGIN = "employee_login"

    @classmethod
    def parse(cls, value) -> "ActorKind | None":
        try:
            return cls(value)
        except ValueError:
            return None


# Permission tags checked at the HTTP boundary
READ_TRANSFERS = "Read-InventoryTransfers"
CREATE_TRANSFER = "Create-InventoryTransfer"
APPROVE_TRANSFER = "Approve-InventoryTransfer"
REJECT_TRANSFER = "Reject-InventoryTransfer"


@dataclass(frozen=True)
class Actor:
    kind: ActorKind
    id: int
    branch_ids: frozenset[int] = field(default_factory=frozenset)
    permissions: frozenset[str] = field(default_factory=frozenset)

    def can(self, permission: str) -> bool:
        return permission in self.permissions

    @property
    def home_branch_id(self) -> int | None:
        """The branch a branch account or employee always transfers from."""
        if self.kind is ActorKind.BRANCH_MANAGER or len(self.branch_ids) != 1:
            return None
        return next(iter(self.branch_ids))


async def resolve_actor(db: AsyncSession, user: User) -> Actor:
    kind = ActorKind.parse(user.actor_kind)
    permissions = user.permission_names

    if kind is ActorKind.BRANCH and user.branch_id is not None:
        return Actor(kind=kind, id=user.branch_id, branch_ids=frozenset({user.branch_id}), permissions=permissions)

    if kind is ActorKind.BRANCH_MANAGER and user.branch_manager_id is not None:
        res = await db.execute(select(Branch.id).where(Branch.branch_manager_id == user.branch_manager_id))
        return Actor(
            kind=kind,
            id=user.branch_manager_id,
            branch_ids=frozenset(res.scalars().all()),
            permissions=permissions,
        )

    if kind is ActorKind.EMPLOYEE_LOGIN and user.employee_id is not None:
        res = await db.execute(select(Employee).where(Employee.id == user.employee_id))
        employee = res.scalar_one_or_none()
        if employee:
            return Actor(kind=kind, id=employee.id, branch_ids=frozenset({employee.branch_id}), permissions=permissions)

    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is not a branch, branch manager or employee")


async def current_actor(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_async_session),
) -> Actor:
    return await resolve_actor(db, user)


def require_permission(permission: str) -> Callable:
    async def _dependency(actor: Actor = Depends(current_actor)) -> Actor:
        if not actor.can(permission):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
        return actor

    return _dependency
