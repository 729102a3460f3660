from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field


class CommissionIn(BaseModel):
    month: date
    amount: float = Field(ge=0)


class CommissionOut(BaseModel):
    id: str
    month: str
    amount: float
    created_at: str

    model_config = {"from_attributes": True}


class CommissionList(BaseModel):
    commissions: list[CommissionOut]
    total: float
