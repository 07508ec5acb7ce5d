"""Configurable fake payment gateway for development and testing.

Simulates the PayPal order lifecycle in memory: orders are created as
CREATED, capture moves them to COMPLETED and records a fee, and details
return the captured lines. Behaviour can be configured per instance:

- capture_status: status returned by capture (e.g. "PAYER_ACTION_REQUIRED")
- fee: flat fee reported in the details breakdown
- failures: exception to raise per operation name, for fault injection

Every call is recorded in ``calls`` so tests can assert what reached the
gateway.
"""

from decimal import Decimal
from uuid import uuid4

from app.core.exceptions import GatewayRejected
from app.core.money import format_money, to_money
from app.payments.port import (
    STATUS_COMPLETED,
    STATUS_CREATED,
    CapturedLine,
    CaptureResult,
    GatewayOrder,
    GatewayOrderDetails,
    PaymentGateway,
)


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(
        self,
        currency: str = "PHP",
        fee: Decimal | str = "5.00",
        payer_email: str = "buyer@example.com",
    ) -> None:
        self.currency = currency
        self.fee = to_money(fee)
        self.payer_email = payer_email
        self.capture_status: str = STATUS_COMPLETED
        self.failures: dict[str, Exception] = {}
        self.orders: dict[str, dict] = {}
        self.calls: list[dict] = []

    def configure(self, capture_status: str = STATUS_COMPLETED, fee=None) -> None:
        """Configure gateway behaviour at runtime."""
        self.capture_status = capture_status
        if fee is not None:
            self.fee = to_money(fee)

    def fail(self, method: str, error: Exception) -> None:
        self.failures[method] = error

    def _maybe_fail(self, method: str) -> None:
        error = self.failures.get(method)
        if error is not None:
            raise error

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    def add_order(self, order_id: str, lines, status: str = STATUS_CREATED) -> None:
        """Seed an order, as if a client had created (and maybe captured) it earlier."""
        self.orders[order_id] = {
            "status": status,
            "items": [
                CapturedLine(sku=str(sku), name=name, unit_price=to_money(price), quantity=qty)
                for sku, name, price, qty in lines
            ],
        }
        if status == STATUS_COMPLETED:
            self.orders[order_id]["fee"] = self.fee

    def _total(self, order: dict) -> Decimal:
        return to_money(sum((item.unit_price * item.quantity for item in order["items"]), Decimal("0")))

    def _payload(self, order_id: str, order: dict) -> dict:
        payload = {
            "id": order_id,
            "status": order["status"],
            "purchase_units": [
                {
                    "amount": {"currency_code": self.currency, "value": format_money(self._total(order))},
                    "items": [
                        {
                            "name": item.name,
                            "sku": item.sku,
                            "quantity": str(item.quantity),
                            "unit_amount": {"currency_code": self.currency, "value": format_money(item.unit_price)},
                        }
                        for item in order["items"]
                    ],
                }
            ],
        }

        if order["status"] == STATUS_COMPLETED:
            payload["payer"] = {"email_address": self.payer_email}
            payload["purchase_units"][0]["payments"] = {
                "captures": [
                    {
                        "status": STATUS_COMPLETED,
                        "seller_receivable_breakdown": {
                            "gross_amount": {"value": format_money(self._total(order))},
                            "paypal_fee": {"value": format_money(order["fee"])},
                            "net_amount": {"value": format_money(self._total(order) - order["fee"])},
                        },
                    }
                ]
            }

        return payload

    def _order(self, order_id: str) -> dict:
        order = self.orders.get(order_id)
        if order is None:
            raise GatewayRejected(
                "The specified resource does not exist.",
                http_status=404,
                issue="INVALID_RESOURCE_ID",
            )
        return order

    def create_order(self, lines, total: Decimal, payee_email: str | None = None) -> GatewayOrder:
        self.calls.append(
            {
                "method": "create_order",
                "lines": list(lines),
                "total": total,
                "payee_email": payee_email,
            }
        )
        self._maybe_fail("create_order")

        order_id = f"FAKE-{uuid4().hex[:12].upper()}"
        self.orders[order_id] = {
            "status": STATUS_CREATED,
            "items": [
                CapturedLine(
                    sku=str(line.product_id),
                    name=line.name,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                )
                for line in lines
            ],
        }

        return GatewayOrder(
            order_id=order_id,
            status=STATUS_CREATED,
            total_amount=to_money(total),
            currency=self.currency,
            http_status=201,
            raw=self._payload(order_id, self.orders[order_id]),
        )

    def capture_order(self, order_id: str) -> CaptureResult:
        self.calls.append({"method": "capture_order", "order_id": order_id})
        self._maybe_fail("capture_order")

        order = self._order(order_id)

        # Capturing a completed order replays the first result
        if order["status"] != STATUS_COMPLETED:
            order["status"] = self.capture_status
            order["fee"] = self.fee

        payload = self._payload(order_id, order)

        return CaptureResult(
            order_id=order_id,
            status=order["status"],
            payer_email=self.payer_email if order["status"] == STATUS_COMPLETED else None,
            http_status=201,
            raw=payload,
        )

    def get_order_details(self, order_id: str) -> GatewayOrderDetails:
        self.calls.append({"method": "get_order_details", "order_id": order_id})
        self._maybe_fail("get_order_details")

        order = self._order(order_id)
        completed = order["status"] == STATUS_COMPLETED

        return GatewayOrderDetails(
            order_id=order_id,
            status=order["status"],
            gross_amount=self._total(order),
            gateway_fee=order["fee"] if completed else None,
            currency=self.currency,
            payer_email=self.payer_email if completed else None,
            line_items=tuple(order["items"]),
            raw=self._payload(order_id, order),
        )
