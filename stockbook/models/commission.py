from __future__ import annotations

from sqlalchemy import Column, Float, String, Text

from ..db.session import Base
from ._common import new_id, utcnow_iso


class Commission(Base):
    """Commission earned for one month. ``month`` is an ISO date (first of the month)."""

    __tablename__ = "commissions"

    id = Column(String(36), primary_key=True, default=new_id)
    month = Column(Text, nullable=False, index=True)
    amount = Column(Float, nullable=False, default=0.0)
    created_at = Column(Text, nullable=False, default=utcnow_iso)


__all__ = ["Commission"]
