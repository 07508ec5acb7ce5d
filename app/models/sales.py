# models/sales.py

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.database import Base


class Sale(Base):
    __tablename__ = "sales"

    # Gateway order id. The primary key is the de-duplication point for captures.
    id = Column(String, primary_key=True)

    farm_id = Column(Integer, ForeignKey("farms.id"), nullable=False, index=True)

    gross_amount = Column(Numeric(10, 2), nullable=False)
    gateway_fee = Column(Numeric(10, 2), nullable=False)
    net_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)

    payer_email = Column(String, nullable=True)
    raw_gateway_payload = Column(JSON, nullable=False)

    # Diagnostic: every per-product sales counter was incremented
    counters_synced = Column(Boolean, nullable=False, default=False)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    items = relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_sales_farm_created", "farm_id", "created_at"),
        CheckConstraint("gross_amount > 0", name="ck_sale_gross_positive"),
        CheckConstraint("gateway_fee >= 0", name="ck_sale_fee_non_negative"),
    )
