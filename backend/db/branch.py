import uuid
from sqlalchemy import Column, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from .database import Base


class BranchManager(Base):
    __tablename__ = "branch_managers"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)

    branches = relationship("Branch", back_populates="manager")


class Branch(Base):
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True)
    uuid = Column(UUID(as_uuid=True), nullable=False, unique=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    status = Column(Text, nullable=False, default="active", index=True)  # active|inactive
    branch_manager_id = Column(Integer, ForeignKey("branch_managers.id", ondelete="SET NULL"), nullable=True, index=True)

    manager = relationship("BranchManager", back_populates="branches")
    employees = relationship("Employee", back_populates="branch")
    categories = relationship("Category", back_populates="branch")

    @property
    def to_schema(self):
        return {"id": self.id, "name": self.name}


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)

    branch = relationship("Branch", back_populates="employees")
