# =========================================================
# MARKET CHECKOUT EXCEPTIONS
# Raised by services, translated to HTTP errors in routers
# =========================================================


class CheckoutError(Exception):
    """Base class for every error raised by the checkout pipeline."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ---------------- INPUT ERRORS ----------------

class EmptyCart(CheckoutError):
    def __init__(self, message: str = "Invalid or empty cart data provided."):
        super().__init__(message)


class InvalidCart(CheckoutError):
    pass


class UnknownProduct(CheckoutError):
    def __init__(self, product_ids):
        self.product_ids = sorted(product_ids)
        super().__init__(f"Unknown product(s): {', '.join(str(p) for p in self.product_ids)}")


class MissingOrderId(CheckoutError):
    def __init__(self):
        super().__init__("Missing orderID in request body.")


class FarmNotFound(CheckoutError):
    def __init__(self, farm_id):
        self.farm_id = farm_id
        super().__init__("Farm not found")


# ---------------- GATEWAY ERRORS ----------------

class GatewayError(CheckoutError):
    """
    Normalized error from the payment authority.

    http_status is the authority's status code (None when no response
    arrived), debug_id is the authority's correlation id and issue its
    machine-readable error code, when it sent one.
    """

    def __init__(
        self,
        message: str,
        http_status: int | None = None,
        debug_id: str | None = None,
        issue: str | None = None,
    ):
        super().__init__(message)
        self.http_status = http_status
        self.debug_id = debug_id
        self.issue = issue

    def as_detail(self) -> dict:
        return {
            "message": self.message,
            "debug_id": self.debug_id,
            "issue": self.issue,
        }


class GatewayUnavailable(GatewayError):
    """Network failure, timeout before the request was sent, or a 5xx."""


class GatewayRejected(GatewayError):
    """The authority answered with a 4xx."""


class GatewayCredentialsRejected(GatewayRejected):
    """The token endpoint refused the configured client credentials."""


class GatewayProtocolError(GatewayError):
    """A 2xx answer whose body could not be understood."""


class CaptureIndeterminate(GatewayError):
    """The capture may have reached the authority but no answer came back."""

    def __init__(self, order_id: str, message: str | None = None):
        super().__init__(
            message or f"Capture outcome for order {order_id} is unknown; re-query the order status",
        )
        self.order_id = order_id


# ---------------- SETTLEMENT ERRORS ----------------

class AlreadySettled(CheckoutError):
    """A sale already exists for the gateway order. Treated as success."""

    def __init__(self, sale):
        self.sale = sale
        super().__init__(f"Order {sale.id} already settled")


class SettlementFailed(CheckoutError):
    """Money was captured but the sale could not be recorded."""

    def __init__(self, order_id: str, message: str):
        super().__init__(message)
        self.order_id = order_id


class SettlementPersistenceError(SettlementFailed):
    pass
