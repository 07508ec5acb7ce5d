# app/models/inventory.py

from sqlalchemy import CheckConstraint, Column, Integer, String, Numeric, ForeignKey, DateTime
from sqlalchemy.sql import func

from app.database import Base


class Inventory(Base):
    __tablename__ = "inventory"

    id = Column(Integer, primary_key=True, index=True)
    farm_id = Column(Integer, ForeignKey("farms.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String, nullable=False)
    stock_qty = Column(Integer, nullable=False, default=0)
    amount_per_unit = Column(Numeric(10, 2), nullable=True)
    unit = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("stock_qty >= 0", name="ck_inventory_stock_non_negative"),
    )
