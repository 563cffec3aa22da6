import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class InventoryTransfer(Base):
    __tablename__ = "inventory_transfers"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_inventory_transfers_quantity_positive"),
        CheckConstraint("from_branch_id <> to_branch_id", name="ck_inventory_transfers_distinct_branches"),
    )

    id = Column(Integer, primary_key=True)
    uuid = Column(UUID(as_uuid=True), nullable=False, unique=True, default=uuid.uuid4)

    inventory_id = Column(Integer, ForeignKey("inventories.id", ondelete="CASCADE"), nullable=False, index=True)
    from_branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    to_branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    subcategory_id = Column(Integer, ForeignKey("subcategories.id", ondelete="SET NULL"), nullable=True)
    quantity = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text, nullable=True)

    status = Column(Text, nullable=False, default="pending", index=True)  # pending|approved|rejected|arrived

    # Tagged actor references: 'branch' | 'branch_manager' | 'employee_login'
    requested_by_id = Column(Integer, nullable=False)
    requested_by_type = Column(Text, nullable=False)
    approved_by_id = Column(Integer, nullable=True)
    approved_by_type = Column(Text, nullable=True)

    # Resolution time (approve or reject), not physical arrival.
    arrival_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now(), index=True)
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    inventory = relationship("Inventory")
    from_branch = relationship("Branch", foreign_keys=[from_branch_id])
    to_branch = relationship("Branch", foreign_keys=[to_branch_id])
    subcategory = relationship("Subcategory")
