from __future__ import annotations

from pydantic import BaseModel, Field


class CategoryIn(BaseModel):
    name: str = Field(min_length=1)


class CategoryOut(BaseModel):
    id: str
    name: str
    created_at: str

    model_config = {"from_attributes": True}
