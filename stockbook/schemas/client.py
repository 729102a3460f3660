from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

AssignmentType = Literal["buy", "rent"]
ClientStatus = Literal["active", "inactive"]


class AssignmentIn(BaseModel):
    """One product line on a client.

    ``client_price`` is the custom resale price of a buy line (0 = sell at
    cost). ``monthly_fee`` defaults to the product's rent price for a rent
    line.
    """

    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId", min_length=1)
    quantity: int = Field(gt=0)
    type: AssignmentType = "buy"
    monthly_fee: Optional[float] = Field(default=None, alias="monthlyFee", ge=0)
    client_price: Optional[float] = Field(default=None, alias="clientPrice", ge=0)


class AssignmentOut(BaseModel):
    productId: str
    name: Optional[str] = None
    quantity: int
    type: AssignmentType
    monthlyFee: float = 0.0
    purchasePrice: float = 0.0
    clientPrice: float = 0.0
    addedAt: Optional[str] = None


class ClientCreate(BaseModel):
    client_name: str
    products: list[AssignmentIn] = Field(default_factory=list)
    starter_pack_price: Optional[float] = Field(default=None, ge=0)
    # Manual overrides; left out they are derived from ``products``.
    total_sold_amount: Optional[float] = Field(default=None, ge=0)
    monthly_fee: Optional[float] = Field(default=None, ge=0)
    hardware_price: Optional[float] = Field(default=None, ge=0)
    months_left: Optional[int] = None
    contract_start_date: Optional[date] = None
    status: ClientStatus = "active"
    product_id: Optional[str] = None


class ClientUpdate(BaseModel):
    client_name: Optional[str] = None
    products: Optional[list[AssignmentIn]] = None
    starter_pack_price: Optional[float] = Field(default=None, ge=0)
    total_sold_amount: Optional[float] = Field(default=None, ge=0)
    monthly_fee: Optional[float] = Field(default=None, ge=0)
    hardware_price: Optional[float] = Field(default=None, ge=0)
    months_left: Optional[int] = None
    contract_start_date: Optional[date] = None
    status: Optional[ClientStatus] = None
    product_id: Optional[str] = None
    expected_version: Optional[int] = None


class ClientOut(BaseModel):
    id: str
    client_name: str
    products: list[AssignmentOut] = Field(default_factory=list)
    total_sold_amount: float
    monthly_fee: float
    product_quantity: int
    months_left: int
    starter_pack_price: Optional[float] = None
    hardware_price: Optional[float] = None
    contract_start_date: Optional[str] = None
    status: str
    product_id: Optional[str] = None
    created_at: str
    updated_at: str
    version: int

    model_config = {"from_attributes": True}


class ClientMetricsOut(BaseModel):
    client_id: str
    client_name: str
    months_to_cover: int
    months_elapsed: int
    months_billed: int
    months_remaining: int
    installation_amount: float
    monthly_fee: float
    profit_one_shot: float
    net_month1: float
    net_cash_flow: float
    contract_start_date: date
    profitability_date: date
    is_profitable: bool
    status: str


class StockChangeOut(BaseModel):
    product_id: str
    previous_state: str
    next_state: str
    original_quantity: int
    new_quantity: int
    stock_delta: int
    hardware_delta: int

    model_config = {"from_attributes": True}


class ClientPreviewRequest(ClientCreate):
    # Previewing an edit falls back to the stored name.
    client_name: Optional[str] = None
    client_id: Optional[str] = None


class ClientPreviewOut(BaseModel):
    installation_amount: float
    total_monthly_fee: float
    total_product_quantity: int
    hardware_price: float
    total_sold_amount: float
    monthly_fee: float
    profit_one_shot: float
    net_month1: float
    months_left: int
    stock_changes: list[StockChangeOut]
