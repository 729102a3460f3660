from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class RowError(BaseModel):
    row: int
    message: str


class ItemError(BaseModel):
    name: str
    message: str
    details: Optional[dict[str, str]] = None


class ImportReport(BaseModel):
    created: int = 0
    failed: int = 0
    row_errors: list[RowError] = Field(default_factory=list)
    errors: list[ItemError] = Field(default_factory=list)
