"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- PayPalGateway in production, built from settings at first use
- FakeGateway when PAYMENT_GATEWAY=fake, and in tests

One instance per process, so every request shares the token cache.
"""

import threading

from app.core.config import settings
from app.payments.fake import FakeGateway
from app.payments.paypal import PayPalConfig, PayPalGateway
from app.payments.port import PaymentGateway

_current_gateway: PaymentGateway | None = None
_lock = threading.Lock()


def build_gateway(app_settings=settings) -> PaymentGateway:
    if app_settings.PAYMENT_GATEWAY == "fake":
        return FakeGateway(currency=app_settings.PAYPAL_CURRENCY)
    return PayPalGateway(PayPalConfig.from_settings(app_settings))


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway, building it on first use."""
    global _current_gateway
    if _current_gateway is None:
        with _lock:
            if _current_gateway is None:
                _current_gateway = build_gateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None


def get_payment_gateway() -> PaymentGateway:
    # FastAPI dependency
    return get_gateway()
