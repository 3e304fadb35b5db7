from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from venusdb.database import Base


def _utcnow() -> datetime:
    return datetime.utcnow()


class InventoryItem(Base):
    """
    Catalogue entry for a stocked item.

    Has no quantity column: current stock is always
    derived from the addition and subtraction rows.
    """

    __tablename__ = "inventory"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    fno = Column(String(64), nullable=False, index=True)
    pack = Column(String(64), nullable=False)
    unit = Column(String(32), nullable=False)
    remarks = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    additions = relationship(
        "InventoryAddition",
        back_populates="inventory",
        cascade="all, delete-orphan",
        lazy="select",
    )
    subtractions = relationship(
        "InventorySubtraction",
        back_populates="inventory",
        cascade="all, delete-orphan",
        lazy="select",
    )


class InventoryAddition(Base):
    __tablename__ = "inventory_addition"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_inventory_addition_quantity_positive"),
        Index("ix_inventory_addition_item_date", "inventory_id", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    inventory_id = Column(Integer, ForeignKey("inventory.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    vendor = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    remarks = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    inventory = relationship("InventoryItem", back_populates="additions", lazy="joined")


class InventorySubtraction(Base):
    __tablename__ = "inventory_subtraction"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_inventory_subtraction_quantity_positive"),
        Index("ix_inventory_subtraction_item_date", "inventory_id", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    inventory_id = Column(Integer, ForeignKey("inventory.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    vendor = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    remarks = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    inventory = relationship("InventoryItem", back_populates="subtractions", lazy="joined")
