# =========================================================
# MARKET ROUTER (PUBLIC STOREFRONT + PAYPAL CHECKOUT)
# - Server-side pricing from the farm catalog
# - Capture settles the sale before responding
# - Capturing twice is not an error
# - Money captured but not recorded -> 500 + critical log
# =========================================================

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.core.exceptions import (
    CaptureIndeterminate,
    CheckoutError,
    EmptyCart,
    FarmNotFound,
    GatewayCredentialsRejected,
    GatewayError,
    GatewayRejected,
    GatewayUnavailable,
    InvalidCart,
    MissingOrderId,
    SettlementFailed,
    UnknownProduct,
)
from app.core.rate_limiter import limiter
from app.payments.gateway import get_payment_gateway
from app.payments.port import PaymentGateway
from app.schemas.market import (
    CaptureOrderRequest,
    CreateOrderRequest,
    MarketProductResponse,
    MarketProductsResponse,
    OrderStatusResponse,
    SaleResponse,
)
from app.services.catalog import FarmCatalog
from app.services.checkout import MarketCheckout

router = APIRouter(prefix="/market", tags=["Market"])

logger = logging.getLogger("app")


def _to_http_error(e: CheckoutError) -> HTTPException:
    if isinstance(e, (EmptyCart, InvalidCart, UnknownProduct, MissingOrderId)):
        return HTTPException(status_code=400, detail=e.message)

    if isinstance(e, FarmNotFound):
        return HTTPException(status_code=404, detail=e.message)

    if isinstance(e, CaptureIndeterminate):
        return HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail={"message": e.message, "order_id": e.order_id},
        )

    if isinstance(e, GatewayCredentialsRejected):
        return HTTPException(status_code=502, detail="Payment provider authentication failed")

    if isinstance(e, GatewayRejected):
        return HTTPException(status_code=e.http_status or 400, detail=e.as_detail())

    if isinstance(e, GatewayUnavailable):
        code = e.http_status if e.http_status and e.http_status >= 500 else 503
        return HTTPException(status_code=code, detail=e.as_detail())

    if isinstance(e, GatewayError):
        return HTTPException(status_code=502, detail=e.as_detail())

    if isinstance(e, SettlementFailed):
        return HTTPException(
            status_code=500,
            detail={"message": e.message, "order_id": e.order_id},
        )

    return HTTPException(status_code=500, detail=e.message)


def _settlement_block(outcome) -> dict:
    return {
        "state": outcome.state.value,
        "sale_id": outcome.sale.id if outcome.sale is not None else None,
        "already_settled": outcome.already_settled,
        "counter_failures": outcome.counter_failures,
    }


# =========================================================
# LIST FARM PRODUCTS
# =========================================================
@router.get("/{farm_id}", response_model=MarketProductsResponse)
def list_farm_products(
    farm_id: int,
    db: Session = Depends(get_db),
):
    catalog = FarmCatalog(db, farm_id)

    if catalog.get_farm() is None:
        raise HTTPException(status_code=404, detail="Farm not found")

    return {"products": catalog.list_products()}


# =========================================================
# ORDER STATUS (after an indeterminate capture)
# =========================================================
@router.get("/{farm_id}/orders/{order_id}", response_model=OrderStatusResponse)
def get_order_status(
    farm_id: int,
    order_id: str,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    try:
        outcome = MarketCheckout(db, gateway).order_status(farm_id, order_id)
    except CheckoutError as e:
        raise _to_http_error(e)

    return OrderStatusResponse(
        order_id=outcome.order_id,
        status=outcome.status,
        settled=outcome.sale is not None,
        sale=SaleResponse.model_validate(outcome.sale) if outcome.sale is not None else None,
    )


# =========================================================
# GET SINGLE PRODUCT
# =========================================================
@router.get("/{farm_id}/{product_id}", response_model=MarketProductResponse)
def get_farm_product(
    farm_id: int,
    product_id: int,
    db: Session = Depends(get_db),
):
    product = FarmCatalog(db, farm_id).get_product(product_id)

    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    return product


# =========================================================
# CREATE ORDER
# =========================================================
@router.post("/{farm_id}/create-order", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_order(
    request: Request,
    farm_id: int,
    payload: CreateOrderRequest | None = None,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    cart = payload.cart if payload is not None else None

    try:
        outcome = MarketCheckout(db, gateway).create_order(farm_id, cart)
    except CheckoutError as e:
        raise _to_http_error(e)

    return outcome.order.raw


# =========================================================
# CAPTURE ORDER
# =========================================================
@router.post("/{farm_id}/capture-order", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def capture_order(
    request: Request,
    response: Response,
    farm_id: int,
    payload: CaptureOrderRequest | None = None,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    order_id = payload.orderID if payload is not None else None

    try:
        outcome = MarketCheckout(db, gateway).capture_order(farm_id, order_id)
    except CheckoutError as e:
        raise _to_http_error(e)

    #  Not completed: echo the gateway answer unchanged, nothing recorded
    if not outcome.succeeded:
        response.status_code = outcome.capture.http_status
        return outcome.capture.raw

    return {
        **outcome.capture.raw,
        "settlement": _settlement_block(outcome),
    }
