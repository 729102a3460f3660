from __future__ import annotations

from sqlalchemy import Column, Float, ForeignKey, Integer, String, Text

from ..db.session import Base
from ._common import new_id, utcnow_iso


class Product(Base):
    """A hardware reference held in stock and assigned to clients.

    ``stock_actuel`` is what is still on the shelf. ``hardware_total`` counts
    every unit ever sold (buy assignments) and only moves forward, except when
    someone corrects it by hand.
    """

    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    code = Column(Text, nullable=False, unique=True, index=True)
    name = Column(Text, nullable=False, index=True)
    category_id = Column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    category = Column(Text, nullable=True)
    purchase_price = Column(Float, nullable=False, default=0.0)
    selling_price = Column(Float, nullable=False, default=0.0)
    rent_price = Column(Float, nullable=False, default=0.0)
    stock_actuel = Column(Integer, nullable=False, default=0)
    hardware_total = Column(Integer, nullable=False, default=0)
    created_at = Column(Text, nullable=False, default=utcnow_iso)
    updated_at = Column(Text, nullable=False, default=utcnow_iso, onupdate=utcnow_iso)
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def profit(self) -> float:
        return (self.selling_price or 0.0) - (self.purchase_price or 0.0)

    @property
    def total_value(self) -> float:
        return (self.stock_actuel or 0) * (self.purchase_price or 0.0)


__all__ = ["Product"]
