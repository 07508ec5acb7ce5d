# schemas/market.py

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from datetime import datetime
from decimal import Decimal
from typing import Any, List


class CartItem(BaseModel):
    # The storefront sends "sku"; any price it sends is ignored
    product_id: int = Field(validation_alias=AliasChoices("productId", "product_id", "sku"))
    quantity: int = Field(gt=0)

    model_config = ConfigDict(extra="ignore", frozen=True)


class CreateOrderRequest(BaseModel):
    # Validated by the price resolver so malformed carts become 400s, not 422s
    cart: Any = None


class CaptureOrderRequest(BaseModel):
    orderID: str | None = None


class InventorySummary(BaseModel):
    name: str
    amount_per_unit: Decimal | None = None
    unit: str | None = None

    class Config:
        from_attributes = True


class MarketProductResponse(BaseModel):
    id: int
    description: str | None = None
    price: Decimal
    image: str | None = None
    amount_to_sell: int | None = None
    inventory: InventorySummary | None = None

    class Config:
        from_attributes = True


class MarketProductsResponse(BaseModel):
    products: List[MarketProductResponse]


class SaleItemResponse(BaseModel):
    product_id: int
    product_name: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal

    class Config:
        from_attributes = True


class SaleResponse(BaseModel):
    id: str
    farm_id: int
    gross_amount: Decimal
    gateway_fee: Decimal
    net_amount: Decimal
    currency: str
    payer_email: str | None = None
    counters_synced: bool
    created_at: datetime | None = None
    items: List[SaleItemResponse]

    class Config:
        from_attributes = True


class OrderStatusResponse(BaseModel):
    order_id: str
    status: str
    settled: bool
    sale: SaleResponse | None = None
