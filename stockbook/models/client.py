from __future__ import annotations

from sqlalchemy import JSON, Column, Float, Integer, String, Text

from ..db.session import Base
from ._common import new_id, utcnow_iso


class Client(Base):
    """A customer and the hardware it bought or rents.

    Assignments live in ``products`` as a JSON list of dicts with the keys
    ``productId``, ``name``, ``quantity``, ``type``, ``monthlyFee``,
    ``purchasePrice``, ``clientPrice`` and ``addedAt``. Prices are snapshots
    taken when the assignment was made.
    """

    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=new_id)
    client_name = Column(Text, nullable=False, index=True)
    products = Column(JSON, nullable=False, default=list)
    total_sold_amount = Column(Float, nullable=False, default=0.0)
    monthly_fee = Column(Float, nullable=False, default=0.0)
    product_quantity = Column(Integer, nullable=False, default=0)
    months_left = Column(Integer, nullable=False, default=0)
    starter_pack_price = Column(Float, nullable=True)
    hardware_price = Column(Float, nullable=True)
    contract_start_date = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="active")
    product_id = Column(String(36), nullable=True)
    created_at = Column(Text, nullable=False, default=utcnow_iso)
    updated_at = Column(Text, nullable=False, default=utcnow_iso, onupdate=utcnow_iso)
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def assignments(self) -> list[dict]:
        return [dict(item) for item in (self.products or []) if isinstance(item, dict)]


__all__ = ["Client"]
