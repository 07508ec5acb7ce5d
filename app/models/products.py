# app/models/products.py

from sqlalchemy import CheckConstraint, Column, Index, Integer, String, Numeric, ForeignKey, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)

    farm_id = Column(Integer, ForeignKey("farms.id"), nullable=False, index=True)
    inventory_id = Column(Integer, ForeignKey("inventory.id", ondelete="SET NULL"), nullable=True)

    description = Column(String, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    image = Column(String, nullable=True)
    amount_to_sell = Column(Integer, nullable=True)

    # Cumulative units sold, only ever moved by atomic increments
    total_sales = Column(Integer, nullable=False, default=0, server_default="0")

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    farm = relationship("Farm", back_populates="products")
    inventory = relationship("Inventory")

    __table_args__ = (
        Index("ix_products_farm_created", "farm_id", "created_at"),
        CheckConstraint("price > 0", name="ck_product_price_positive"),
        CheckConstraint("total_sales >= 0", name="ck_product_total_sales_non_negative"),
    )
