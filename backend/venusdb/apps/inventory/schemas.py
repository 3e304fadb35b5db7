from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def _strip_required(value, field_name: str) -> str:
    if value is None:
        raise ValueError(f"{field_name} is required.")
    value = str(value).strip()
    if not value:
        raise ValueError(f"{field_name} must not be blank.")
    return value


class InventoryItemCreate(BaseModel):
    name: str
    fno: str
    pack: str
    unit: str
    remarks: Optional[str] = None

    @field_validator("name", "fno", "pack", "unit", mode="before")
    @classmethod
    def require_text(cls, value, info):
        return _strip_required(value, info.field_name)


class InventoryItemUpdate(BaseModel):
    name: Optional[str] = None
    fno: Optional[str] = None
    pack: Optional[str] = None
    unit: Optional[str] = None
    remarks: Optional[str] = None

    @field_validator("name", "fno", "pack", "unit", mode="before")
    @classmethod
    def reject_blank(cls, value, info):
        # omitted fields stay unset; explicit blanks are an error
        return _strip_required(value, info.field_name)


class InventoryItemSummary(BaseModel):
    id: int
    name: str
    fno: str
    pack: str
    unit: str
    remarks: Optional[str] = None

    class Config:
        from_attributes = True


class InventoryItemRead(InventoryItemSummary):
    created_at: datetime
    updated_at: datetime
    current_stock: int = 0


class StockLevelRead(BaseModel):
    inventory_id: int
    current_stock: int


class StockTransactionBase(BaseModel):
    inventory_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    vendor: str
    phone: str
    date: Optional[datetime] = None
    remarks: Optional[str] = None

    @field_validator("vendor", "phone", mode="before")
    @classmethod
    def require_counterparty(cls, value, info):
        return _strip_required(value, info.field_name)


class InventoryAdditionCreate(StockTransactionBase):
    pass


class InventorySubtractionCreate(StockTransactionBase):
    pass


class StockTransactionRead(BaseModel):
    id: int
    inventory_id: int
    quantity: int
    price: Decimal
    vendor: str
    phone: str
    date: datetime
    remarks: Optional[str] = None
    created_at: datetime
    inventory: Optional[InventoryItemSummary] = None

    class Config:
        from_attributes = True


class InventoryAdditionRead(StockTransactionRead):
    pass


class InventorySubtractionRead(StockTransactionRead):
    pass
