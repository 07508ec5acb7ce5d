"""Payment gateway port (abstract interface).

Defines the contract every payment authority adapter implements, so the
checkout flow can run against PayPalGateway in production and FakeGateway
in development and tests without changing any service code.

Adapters normalize transport failures into the GatewayError family from
app.core.exceptions; callers never see HTTP details.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal

from app.services.pricing import PricedLine

STATUS_CREATED = "CREATED"
STATUS_APPROVED = "APPROVED"
STATUS_COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class GatewayOrder:
    """Order as created at the payment authority."""

    order_id: str
    status: str
    total_amount: Decimal
    currency: str
    http_status: int = 201
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CaptureResult:
    """Outcome of a capture call. Money moved only when status is COMPLETED."""

    order_id: str
    status: str
    payer_email: str | None = None
    http_status: int = 201
    raw: dict = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.status == STATUS_COMPLETED


@dataclass(frozen=True)
class CapturedLine:
    """A line item as the authority recorded it."""

    sku: str
    name: str
    unit_price: Decimal
    quantity: int


@dataclass(frozen=True)
class GatewayOrderDetails:
    """Read-only view of an order, including the fee breakdown after capture."""

    order_id: str
    status: str
    gross_amount: Decimal
    gateway_fee: Decimal | None
    currency: str
    payer_email: str | None = None
    line_items: tuple[CapturedLine, ...] = ()
    raw: dict = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.status == STATUS_COMPLETED


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_order(
        self,
        lines: list[PricedLine],
        total: Decimal,
        payee_email: str | None = None,
    ) -> GatewayOrder:
        """Create an order for server-priced lines."""
        ...

    @abstractmethod
    def capture_order(self, order_id: str) -> CaptureResult:
        """Capture payment for an approved order. Irreversible once COMPLETED."""
        ...

    @abstractmethod
    def get_order_details(self, order_id: str) -> GatewayOrderDetails:
        """Fetch the order with its captured lines and fee breakdown."""
        ...
