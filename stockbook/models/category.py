from __future__ import annotations

from sqlalchemy import Column, String, Text

from ..db.session import Base
from ._common import new_id, utcnow_iso


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(Text, nullable=False, unique=True)
    created_at = Column(Text, nullable=False, default=utcnow_iso)


__all__ = ["Category"]
