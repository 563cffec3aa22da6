# Pydantic schemas for user-related requests/responses
# fastapi-users provides the base schemas; actor links are read-only here and
# are assigned by administrators, never through self-service updates.

from uuid import UUID
from fastapi_users import schemas
from typing import Optional


class UserRead(schemas.BaseUser[UUID]):
    actor_kind: Optional[str] = None
    branch_id: Optional[int] = None
    branch_manager_id: Optional[int] = None
    employee_id: Optional[int] = None


class UserUpdate(schemas.BaseUserUpdate):
    pass
