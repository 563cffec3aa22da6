from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class Inventory(Base):
    __tablename__ = "inventories"
    __table_args__ = (
        UniqueConstraint("branch_id", "subcategory_id", "type", name="ux_inventories_branch_subcategory_type"),
        CheckConstraint("quantity >= 0", name="ck_inventories_quantity_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    code = Column(String(50), nullable=False, unique=True)
    subcategory_id = Column(Integer, ForeignKey("subcategories.id", ondelete="SET NULL"), nullable=True, index=True)
    price = Column(Numeric(10, 2), nullable=True)
    type = Column(Text, nullable=False, default="raw")  # 'raw' | 'product'
    notes = Column(Text, nullable=True)
    quantity = Column(Numeric(10, 2), nullable=False, default=0)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    branch = relationship("Branch")
    subcategory = relationship("Subcategory")
