from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

StockFilter = Literal["all", "in-stock", "low-stock", "out-of-stock"]


class ProductBase(BaseModel):
    code: str = Field(min_length=1)
    name: str = Field(min_length=1)
    category_id: Optional[str] = None
    category: Optional[str] = None
    purchase_price: float = Field(default=0.0, ge=0)
    selling_price: float = Field(default=0.0, ge=0)
    rent_price: float = Field(default=0.0, ge=0)


class ProductCreate(ProductBase):
    stock_actuel: int = Field(default=0, ge=0)
    hardware_total: int = Field(default=0, ge=0)


class ProductUpdate(BaseModel):
    code: Optional[str] = None
    name: Optional[str] = None
    category_id: Optional[str] = None
    category: Optional[str] = None
    purchase_price: Optional[float] = Field(default=None, ge=0)
    selling_price: Optional[float] = Field(default=None, ge=0)
    rent_price: Optional[float] = Field(default=None, ge=0)
    # Manual corrections
    stock_actuel: Optional[int] = Field(default=None, ge=0)
    hardware_total: Optional[int] = Field(default=None, ge=0)
    expected_version: Optional[int] = None


class ProductRestock(BaseModel):
    quantity: int = Field(gt=0)
    expected_version: Optional[int] = None


class ProductOut(BaseModel):
    id: str
    code: str
    name: str
    category_id: Optional[str]
    category: Optional[str]
    purchase_price: float
    selling_price: float
    rent_price: float
    stock_actuel: int
    hardware_total: int
    profit: float
    total_value: float
    created_at: str
    updated_at: str
    version: int

    model_config = {"from_attributes": True}
