# =========================================================
# PAYPAL GATEWAY (ORDERS API v2)
# - Short-lived bearer token, cached until shortly before expiry
# - Token fetch and order lookups retried on transient failure
# - Create and capture are never retried by this client
# - Capture read timeouts reported as indeterminate
# =========================================================

import logging
import threading
import time
from dataclasses import dataclass, field
from decimal import Decimal
from urllib.parse import quote

import requests
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.core.exceptions import (
    CaptureIndeterminate,
    GatewayCredentialsRejected,
    GatewayProtocolError,
    GatewayRejected,
    GatewayUnavailable,
)
from app.core.money import format_money, to_money
from app.payments.port import (
    CapturedLine,
    CaptureResult,
    GatewayOrder,
    GatewayOrderDetails,
    PaymentGateway,
)

logger = logging.getLogger("app")


@dataclass(frozen=True)
class PayPalConfig:
    client_id: str
    client_secret: str = field(repr=False)
    base_url: str = "https://api-m.sandbox.paypal.com"
    currency: str = "PHP"
    timeout_seconds: float = 10.0
    token_retry_attempts: int = 3
    read_retry_attempts: int = 3
    retry_wait_seconds: float = 0.5
    token_expiry_margin_seconds: int = 60

    @classmethod
    def from_settings(cls, settings) -> "PayPalConfig":
        #  Fail fast if credentials are missing
        if not settings.PAYPAL_CLIENT_ID or not settings.PAYPAL_CLIENT_SECRET:
            raise RuntimeError("PAYPAL_CLIENT_ID / PAYPAL_CLIENT_SECRET not configured")

        return cls(
            client_id=settings.PAYPAL_CLIENT_ID,
            client_secret=settings.PAYPAL_CLIENT_SECRET,
            base_url=settings.PAYPAL_BASE_URL.rstrip("/"),
            currency=settings.PAYPAL_CURRENCY,
            timeout_seconds=settings.PAYPAL_TIMEOUT_SECONDS,
            token_retry_attempts=settings.PAYPAL_TOKEN_RETRY_ATTEMPTS,
            read_retry_attempts=settings.PAYPAL_READ_RETRY_ATTEMPTS,
        )


class AccessTokenCache:
    """
    Holds one bearer token.

    Readers take the current (token, expires_at) pair without locking and
    use it until it expires. Only one thread refreshes; others that find the
    token expired wait on the lock and then reuse the fresh token.
    """

    def __init__(self, margin_seconds: int = 60, clock=time.monotonic):
        self._lock = threading.Lock()
        self._entry: tuple[str, float] | None = None
        self._margin = margin_seconds
        self._clock = clock

    def _valid(self, entry) -> bool:
        return entry is not None and self._clock() < entry[1]

    def get(self, fetch) -> str:
        entry = self._entry
        if self._valid(entry):
            return entry[0]

        with self._lock:
            entry = self._entry
            if self._valid(entry):
                return entry[0]

            token, expires_in = fetch()
            lifetime = max(int(expires_in) - self._margin, 0)
            self._entry = (token, self._clock() + lifetime)
            return token

    def invalidate(self) -> None:
        self._entry = None


def _json_or_none(response):
    try:
        return response.json()
    except ValueError:
        return None


def _handle_response(response) -> tuple[int, dict]:
    body = _json_or_none(response)

    if not response.ok:
        body = body if isinstance(body, dict) else {}
        message = body.get("message") or f"HTTP {response.status_code} error from PayPal"
        details = body.get("details") or []
        issue = details[0].get("issue") if details and isinstance(details[0], dict) else None
        debug_id = body.get("debug_id")

        logger.error(
            f"PayPal API error. Status: {response.status_code}, "
            f"debug_id: {debug_id}, issue: {issue}, message: {message}"
        )

        error_cls = GatewayUnavailable if response.status_code >= 500 else GatewayRejected
        raise error_cls(
            message,
            http_status=response.status_code,
            debug_id=debug_id,
            issue=issue,
        )

    if not isinstance(body, dict):
        logger.error(f"PayPal returned invalid JSON. Status: {response.status_code}")
        raise GatewayProtocolError(
            "Invalid response from payment provider",
            http_status=502,
        )

    return response.status_code, body


def _log_retry(retry_state) -> None:
    logger.warning(
        f"PayPal call failed, retrying "
        f"(attempt {retry_state.attempt_number}): {retry_state.outcome.exception()}"
    )


def parse_order_details(body: dict, order_id: str, default_currency: str) -> GatewayOrderDetails:
    try:
        unit = (body.get("purchase_units") or [{}])[0]
        amount = unit.get("amount") or {}
        captures = (unit.get("payments") or {}).get("captures") or []
        breakdown = (captures[0].get("seller_receivable_breakdown") or {}) if captures else {}

        gross = amount.get("value") or (breakdown.get("gross_amount") or {}).get("value")
        if gross is None:
            raise ValueError("order amount missing")

        fee = (breakdown.get("paypal_fee") or {}).get("value")

        line_items = tuple(
            CapturedLine(
                sku=str(item.get("sku", "")),
                name=item.get("name") or "",
                unit_price=to_money(item["unit_amount"]["value"]),
                quantity=int(item["quantity"]),
            )
            for item in unit.get("items") or []
        )
    except (KeyError, TypeError, ValueError, IndexError) as e:
        logger.error(f"Unreadable PayPal order details for {order_id}: {e}")
        raise GatewayProtocolError(
            f"Unreadable order details from payment provider: {e}",
            http_status=502,
        )

    return GatewayOrderDetails(
        order_id=body.get("id", order_id),
        status=body.get("status", ""),
        gross_amount=to_money(gross),
        gateway_fee=to_money(fee) if fee is not None else None,
        currency=amount.get("currency_code") or default_currency,
        payer_email=(body.get("payer") or {}).get("email_address"),
        line_items=line_items,
        raw=body,
    )


class PayPalGateway(PaymentGateway):
    """PayPal Orders v2 adapter."""

    def __init__(self, config: PayPalConfig, session: requests.Session | None = None):
        self.config = config
        self.session = session or requests.Session()
        self.token_cache = AccessTokenCache(margin_seconds=config.token_expiry_margin_seconds)

    # ---------------- PLUMBING ----------------

    def _retrying(self, attempts: int) -> Retrying:
        return Retrying(
            retry=retry_if_exception_type(GatewayUnavailable),
            stop=stop_after_attempt(attempts),
            wait=wait_exponential_jitter(
                initial=self.config.retry_wait_seconds,
                max=5,
                jitter=self.config.retry_wait_seconds,
            ),
            before_sleep=_log_retry,
            reraise=True,
        )

    def _fetch_access_token(self) -> tuple[str, int]:
        try:
            response = self.session.request(
                "POST",
                f"{self.config.base_url}/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self.config.client_id, self.config.client_secret),
                headers={"Accept": "application/json"},
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as e:
            raise GatewayUnavailable(f"Unable to connect to payment provider: {e}") from e

        if response.status_code in (400, 401, 403):
            body = _json_or_none(response)
            body = body if isinstance(body, dict) else {}
            logger.error(f"PayPal rejected client credentials. Status: {response.status_code}")
            raise GatewayCredentialsRejected(
                body.get("error_description") or "Payment provider rejected the client credentials",
                http_status=response.status_code,
                debug_id=body.get("debug_id"),
                issue=body.get("error"),
            )

        _, body = _handle_response(response)

        token = body.get("access_token")
        if not token:
            raise GatewayProtocolError("Token response missing access_token", http_status=502)

        return token, int(body.get("expires_in", 300))

    def _access_token(self) -> str:
        return self.token_cache.get(
            lambda: self._retrying(self.config.token_retry_attempts)(self._fetch_access_token)
        )

    def _send(self, method: str, path: str, json_body=None, headers=None) -> tuple[int, dict]:
        return _handle_response(self._request(method, path, json_body=json_body, headers=headers))

    def _request(self, method: str, path: str, json_body=None, headers=None):
        """Send an authenticated request and return the raw response.

        Token problems surface here as GatewayError subclasses, before
        (or instead of) the request itself.
        """
        url = f"{self.config.base_url}{path}"

        # A token revoked before its expiry gets one refresh
        for attempt in (1, 2):
            request_headers = {
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._access_token()}",
            }
            request_headers.update(headers or {})

            response = self.session.request(
                method,
                url,
                json=json_body,
                headers=request_headers,
                timeout=self.config.timeout_seconds,
            )

            if response.status_code == 401 and attempt == 1:
                logger.warning("PayPal rejected the cached access token, refreshing")
                self.token_cache.invalidate()
                continue

            return response

    def _order_path(self, order_id: str) -> str:
        return f"/v2/checkout/orders/{quote(order_id, safe='')}"

    # ---------------- OPERATIONS ----------------

    def create_order(self, lines, total: Decimal, payee_email: str | None = None) -> GatewayOrder:
        currency = self.config.currency
        value = format_money(total)

        purchase_unit = {
            "amount": {
                "currency_code": currency,
                "value": value,
                "breakdown": {
                    "item_total": {"currency_code": currency, "value": value},
                },
            },
            "items": [
                {
                    "name": line.name[:127],
                    "unit_amount": {
                        "currency_code": currency,
                        "value": format_money(line.unit_price),
                    },
                    "quantity": str(line.quantity),
                    "sku": str(line.product_id),
                }
                for line in lines
            ],
        }

        if payee_email:
            purchase_unit["payee"] = {"email_address": payee_email}

        payload = {"intent": "CAPTURE", "purchase_units": [purchase_unit]}

        try:
            status_code, body = self._send(
                "POST",
                "/v2/checkout/orders",
                json_body=payload,
                headers={"Prefer": "return=representation"},
            )
        except requests.RequestException as e:
            raise GatewayUnavailable(f"Unable to connect to payment provider: {e}") from e

        if not body.get("id"):
            raise GatewayProtocolError("Order response missing id", http_status=502)

        amount = ((body.get("purchase_units") or [{}])[0].get("amount") or {})

        return GatewayOrder(
            order_id=body["id"],
            status=body.get("status", ""),
            total_amount=to_money(amount.get("value", total)),
            currency=amount.get("currency_code", currency),
            http_status=status_code,
            raw=body,
        )

    def capture_order(self, order_id: str) -> CaptureResult:
        # Token errors raised by _request are final: no capture was accepted
        try:
            response = self._request(
                "POST",
                f"{self._order_path(order_id)}/capture",
                headers={
                    # Same key for every attempt: PayPal replays the first result
                    "PayPal-Request-Id": f"capture-{order_id}",
                    "Prefer": "return=representation",
                },
            )
        except requests.ConnectTimeout as e:
            raise GatewayUnavailable(f"Unable to connect to payment provider: {e}") from e
        except requests.RequestException as e:
            logger.error(f"Capture request for order {order_id} ended without an answer: {e}")
            raise CaptureIndeterminate(order_id) from e

        # The capture reached PayPal; a 5xx or an unreadable body says nothing
        # about whether the money moved
        try:
            status_code, body = _handle_response(response)
        except GatewayUnavailable as e:
            logger.error(f"Capture for order {order_id} answered {e.http_status}, outcome unknown")
            raise CaptureIndeterminate(order_id) from e
        except GatewayProtocolError as e:
            raise CaptureIndeterminate(order_id) from e

        payer = body.get("payer") or {}

        return CaptureResult(
            order_id=body.get("id", order_id),
            status=body.get("status", ""),
            payer_email=payer.get("email_address"),
            http_status=status_code,
            raw=body,
        )

    def _get_order(self, order_id: str) -> tuple[int, dict]:
        try:
            return self._send("GET", self._order_path(order_id))
        except requests.RequestException as e:
            raise GatewayUnavailable(f"Unable to connect to payment provider: {e}") from e

    def get_order_details(self, order_id: str) -> GatewayOrderDetails:
        _, body = self._retrying(self.config.read_retry_attempts)(self._get_order, order_id)
        return parse_order_details(body, order_id, self.config.currency)
