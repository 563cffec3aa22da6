from sqlalchemy import Column, Integer, Text

from ..database import Base


class InventoryCodeSequence(Base):
    __tablename__ = "inventory_code_sequences"

    prefix = Column(Text, primary_key=True)  # 'RAW' | 'PRD'
    last_value = Column(Integer, nullable=False, default=0)
