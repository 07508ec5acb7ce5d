# =========================================================
# MARKET CHECKOUT
#
# create:  STARTED -> PRICED -> GATEWAY_CREATED
# capture: CAPTURE_REQUESTED -> CAPTURED -> SETTLED | SETTLEMENT_PARTIAL
#
# Failure exits: PRICING_FAILED, GATEWAY_FAILED, CAPTURE_FAILED,
# SETTLEMENT_FAILED. Nothing durable happens before CAPTURED; from
# CAPTURED on, the captured payment is always logged even when the
# local bookkeeping fails.
#
# The two flows are independent requests. The gateway order id is
# the only thing the caller carries from create to capture.
# =========================================================

import logging
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy.orm import Session

from app.core.exceptions import (
    AlreadySettled,
    CaptureIndeterminate,
    CheckoutError,
    FarmNotFound,
    GatewayError,
    GatewayRejected,
    GatewayUnavailable,
    MissingOrderId,
    SettlementFailed,
)
from app.models.sales import Sale
from app.payments.port import (
    CaptureResult,
    GatewayOrder,
    GatewayOrderDetails,
    PaymentGateway,
)
from app.services.catalog import FarmCatalog
from app.services.pricing import PriceResolver, PricedCart
from app.services.settlement import SettlementRecorder

logger = logging.getLogger("app")

ALREADY_CAPTURED_ISSUE = "ORDER_ALREADY_CAPTURED"


class CheckoutState(str, Enum):
    STARTED = "STARTED"
    PRICED = "PRICED"
    GATEWAY_CREATED = "GATEWAY_CREATED"
    CAPTURE_REQUESTED = "CAPTURE_REQUESTED"
    CAPTURED = "CAPTURED"
    SETTLED = "SETTLED"
    SETTLEMENT_PARTIAL = "SETTLEMENT_PARTIAL"
    PRICING_FAILED = "PRICING_FAILED"
    GATEWAY_FAILED = "GATEWAY_FAILED"
    CAPTURE_FAILED = "CAPTURE_FAILED"
    SETTLEMENT_FAILED = "SETTLEMENT_FAILED"


@dataclass
class CreateOrderOutcome:
    state: CheckoutState
    priced: PricedCart
    order: GatewayOrder


@dataclass
class CaptureOutcome:
    state: CheckoutState
    capture: CaptureResult
    sale: Sale | None = None
    already_settled: bool = False
    counter_failures: list[int] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state in (CheckoutState.SETTLED, CheckoutState.SETTLEMENT_PARTIAL)


@dataclass
class OrderStatusOutcome:
    order_id: str
    status: str
    sale: Sale | None = None


class MarketCheckout:
    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        recorder: SettlementRecorder | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.recorder = recorder or SettlementRecorder(db)

    def _transition(self, state: CheckoutState, farm_id, order_id=None, note: str = "") -> CheckoutState:
        message = f"Checkout {state.value} farm={farm_id}"
        if order_id:
            message += f" order={order_id}"
        if note:
            message += f" {note}"

        if state in (CheckoutState.PRICING_FAILED, CheckoutState.GATEWAY_FAILED, CheckoutState.CAPTURE_FAILED):
            logger.warning(message)
        elif state == CheckoutState.SETTLEMENT_FAILED:
            logger.critical(message)
        elif state == CheckoutState.SETTLEMENT_PARTIAL:
            logger.error(message)
        else:
            logger.info(message)

        return state

    def _require_farm(self, catalog: FarmCatalog):
        farm = catalog.get_farm()
        if farm is None:
            raise FarmNotFound(catalog.farm_id)
        return farm

    # =========================================================
    # CREATE ORDER
    # =========================================================
    def create_order(self, farm_id: int, cart) -> CreateOrderOutcome:
        self._transition(CheckoutState.STARTED, farm_id)

        catalog = FarmCatalog(self.db, farm_id)
        farm = self._require_farm(catalog)

        try:
            priced = PriceResolver(catalog).resolve(cart)
        except CheckoutError as e:
            self._transition(CheckoutState.PRICING_FAILED, farm_id, note=e.message)
            raise

        self._transition(CheckoutState.PRICED, farm_id, note=f"total={priced.total} lines={len(priced.lines)}")

        try:
            order = self.gateway.create_order(priced.lines, priced.total, payee_email=farm.paypal_email)
        except GatewayError as e:
            self._transition(CheckoutState.GATEWAY_FAILED, farm_id, note=f"status={e.http_status} {e.message}")
            raise

        state = self._transition(CheckoutState.GATEWAY_CREATED, farm_id, order.order_id, note=f"status={order.status}")

        return CreateOrderOutcome(state=state, priced=priced, order=order)

    # =========================================================
    # CAPTURE ORDER
    # =========================================================
    def capture_order(self, farm_id: int, order_id: str | None) -> CaptureOutcome:
        if not order_id:
            raise MissingOrderId()

        self._require_farm(FarmCatalog(self.db, farm_id))

        self._transition(CheckoutState.CAPTURE_REQUESTED, farm_id, order_id)

        details = None
        try:
            capture = self.gateway.capture_order(order_id)
        except CaptureIndeterminate:
            self._transition(CheckoutState.CAPTURE_REQUESTED, farm_id, order_id, note="outcome unknown, re-querying")
            capture, details = self._recover_capture(farm_id, order_id)
        except GatewayRejected as e:
            if e.issue != ALREADY_CAPTURED_ISSUE:
                self._transition(CheckoutState.CAPTURE_FAILED, farm_id, order_id, note=f"status={e.http_status} {e.message}")
                raise
            self._transition(CheckoutState.CAPTURE_REQUESTED, farm_id, order_id, note="already captured, re-querying")
            capture, details = self._recover_capture(farm_id, order_id)
        except GatewayUnavailable as e:
            # A 5xx from capture may come after the money moved
            if not (e.http_status and e.http_status >= 500):
                self._transition(CheckoutState.CAPTURE_FAILED, farm_id, order_id, note=e.message)
                raise
            self._transition(CheckoutState.CAPTURE_REQUESTED, farm_id, order_id, note=f"status={e.http_status}, re-querying")
            capture, details = self._recover_capture(farm_id, order_id)
        except GatewayError as e:
            self._transition(CheckoutState.CAPTURE_FAILED, farm_id, order_id, note=f"status={e.http_status} {e.message}")
            raise

        if not capture.completed:
            state = self._transition(CheckoutState.CAPTURE_FAILED, farm_id, order_id, note=f"gateway status={capture.status}")
            return CaptureOutcome(state=state, capture=capture)

        self._transition(CheckoutState.CAPTURED, farm_id, order_id, note=f"payer={capture.payer_email}")

        if details is None:
            try:
                details = self.gateway.get_order_details(order_id)
            except GatewayError as e:
                self._transition(
                    CheckoutState.SETTLEMENT_FAILED,
                    farm_id,
                    order_id,
                    note=f"payment captured, order details unavailable: {e.message}",
                )
                raise SettlementFailed(order_id, "Payment captured but order details could not be retrieved.")

        self._warn_foreign_lines(farm_id, order_id, details)

        return self._settle(farm_id, order_id, capture, details)

    def _warn_foreign_lines(self, farm_id, order_id, details) -> None:
        # The sale is still recorded under the farm in the URL
        skus = {int(line.sku) for line in details.line_items if str(line.sku).isdigit()}
        if not skus:
            return

        foreign = sorted(skus - set(FarmCatalog(self.db, farm_id).lookup(skus)))
        if foreign:
            logger.warning(
                f"Order {order_id} captured for farm {farm_id} has products "
                f"not in that farm's catalog: {foreign}"
            )

    def _recover_capture(self, farm_id, order_id) -> tuple[CaptureResult, GatewayOrderDetails]:
        try:
            details = self.gateway.get_order_details(order_id)
        except GatewayError as e:
            logger.error(f"Re-query of order {order_id} after capture failed: {e.message}")
            raise CaptureIndeterminate(order_id)

        if not details.completed:
            self._transition(CheckoutState.CAPTURE_FAILED, farm_id, order_id, note=f"re-query status={details.status}")
            raise CaptureIndeterminate(order_id)

        capture = CaptureResult(
            order_id=order_id,
            status=details.status,
            payer_email=details.payer_email,
            http_status=201,
            raw=details.raw,
        )
        return capture, details

    def _settle(self, farm_id, order_id, capture, details) -> CaptureOutcome:
        try:
            result = self.recorder.settle(order_id, capture, details, farm_id)
        except AlreadySettled as e:
            state = self._transition(CheckoutState.SETTLED, farm_id, order_id, note="already settled")
            return CaptureOutcome(state=state, capture=capture, sale=e.sale, already_settled=True)
        except SettlementFailed as e:
            self._transition(
                CheckoutState.SETTLEMENT_FAILED,
                farm_id,
                order_id,
                note=f"payment captured, manual reconciliation required: {e.message}",
            )
            raise

        if result.partial:
            state = self._transition(
                CheckoutState.SETTLEMENT_PARTIAL,
                farm_id,
                order_id,
                note=f"sales counters not updated for products {result.counter_failures}",
            )
        else:
            state = self._transition(CheckoutState.SETTLED, farm_id, order_id)

        return CaptureOutcome(
            state=state,
            capture=capture,
            sale=result.sale,
            counter_failures=result.counter_failures,
        )

    # =========================================================
    # ORDER STATUS (re-query after an indeterminate capture)
    # =========================================================
    def order_status(self, farm_id: int, order_id: str) -> OrderStatusOutcome:
        self._require_farm(FarmCatalog(self.db, farm_id))

        details = self.gateway.get_order_details(order_id)
        sale = self.recorder.find_sale(order_id)

        return OrderStatusOutcome(order_id=order_id, status=details.status, sale=sale)
