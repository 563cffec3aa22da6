from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


InventoryType = Literal["raw", "product"]


class InventoryTransferCreate(BaseModel):
    # Either the stock line itself or its subcategory at the source branch.
    inventory_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    # Narrows a subcategory lookup when the branch holds both raw and product lines.
    inventory_type: Optional[InventoryType] = None

    # Required for branch managers; derived from the caller otherwise.
    from_branch_id: Optional[int] = None
    to_branch_id: int
    quantity: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("notes")
    @classmethod
    def _strip_nullable(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def _validate_source(self):
        if self.inventory_id is None and self.subcategory_id is None:
            raise ValueError("inventory_id or subcategory_id is required")
        if self.from_branch_id is not None and self.from_branch_id == self.to_branch_id:
            raise ValueError("Cannot transfer to the same branch")
        return self


class InventoryTransferRead(BaseModel):
    uuid: UUID
    product_name: Optional[str] = None
    quantity: float
    from_branch_name: Optional[str] = None
    to_branch_name: Optional[str] = None
    transfer_date: Optional[str] = None
    arrival_date: Optional[str] = None
    status: str


class InventoryTransferPage(BaseModel):
    data: List[InventoryTransferRead]
    current_page: int
    per_page: int
    total: int
    last_page: int


class NamedOption(BaseModel):
    id: int
    name: str
