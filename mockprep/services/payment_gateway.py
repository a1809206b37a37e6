"""Payment gateway client.

Thin httpx client for the hosted checkout gateway (Cashfree PG API). The
client is built from an explicit PaymentGatewayConfig rather than reading
settings itself, so the purchase ledger and tests can supply their own.

Every call is bounded by config.timeout_seconds. Transport failures, non-2xx
responses and responses without the expected fields raise
PaymentGatewayError; nothing is retried here.
"""

import base64
import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Optional

import httpx

from mockprep.core.datetime_utils import utc_now
from mockprep.core.exceptions import UpstreamFailureError

if TYPE_CHECKING:
    from mockprep.core.config import Settings

logger = logging.getLogger(__name__)

# Normalized order states
GATEWAY_STATUS_PAID = "paid"
GATEWAY_STATUS_PENDING = "pending"
GATEWAY_STATUS_FAILED = "failed"

# Gateway order_status values that are not yet terminal
_PENDING_ORDER_STATUSES = {"ACTIVE", "PENDING"}
_PAID_ORDER_STATUSES = {"PAID"}

DEFAULT_CUSTOMER_PHONE = "9999999999"

# Webhook timestamps at or above this are epoch milliseconds
_EPOCH_MILLIS_THRESHOLD = 10**12


class PaymentGatewayError(UpstreamFailureError):
    """Raised when a gateway call fails or returns an unexpected shape."""


@dataclass(frozen=True)
class PaymentGatewayConfig:
    """Connection options for the payment gateway.

    Attributes:
        base_url: Gateway host, e.g. "https://sandbox.cashfree.com"
        app_id: Service app id sent as x-client-id
        secret_key: Service secret sent as x-client-secret; also the webhook
            signing key
        webhook_url: Public URL the gateway notifies on payment events
        return_url: Frontend URL the customer returns to after checkout
        api_version: Value of the x-api-version header
        currency: ISO currency code for new orders
        timeout_seconds: Timeout applied to each HTTP round-trip
        webhook_tolerance_seconds: Maximum age (or future skew) of a webhook
            timestamp; 0 disables the freshness check
    """

    base_url: str
    app_id: str
    secret_key: str
    webhook_url: str
    return_url: str = ""
    api_version: str = "2023-08-01"
    currency: str = "INR"
    timeout_seconds: float = 15.0
    webhook_tolerance_seconds: int = 300

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PaymentGatewayConfig":
        return cls(
            base_url=settings.payment_gateway_base_url,
            app_id=settings.PAYMENT_GATEWAY_APP_ID,
            secret_key=settings.PAYMENT_GATEWAY_SECRET_KEY,
            webhook_url=(
                f"{settings.BACKEND_URL.rstrip('/')}"
                f"{settings.API_V1_PREFIX}/purchases/payment-webhook"
            ),
            return_url=f"{settings.FRONTEND_URL.rstrip('/')}/payment/success",
            api_version=settings.PAYMENT_GATEWAY_API_VERSION,
            currency=settings.PAYMENT_CURRENCY,
            timeout_seconds=settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
            webhook_tolerance_seconds=settings.PAYMENT_WEBHOOK_TOLERANCE_SECONDS,
        )


@dataclass(frozen=True)
class GatewayCustomer:
    customer_id: str
    name: str
    email: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class GatewayOrderStatus:
    """Normalized order state.

    status is one of "paid", "pending" or "failed"; gateway_status keeps the
    raw order_status for logging.
    """

    status: str
    payment_id: Optional[str] = None
    gateway_status: Optional[str] = None


def normalize_order_status(gateway_status: str) -> str:
    """Map a gateway order_status to paid, pending or failed."""
    value = gateway_status.strip().upper()
    if value in _PAID_ORDER_STATUSES:
        return GATEWAY_STATUS_PAID
    if value in _PENDING_ORDER_STATUSES:
        return GATEWAY_STATUS_PENDING
    return GATEWAY_STATUS_FAILED


class PaymentGatewayClient:
    """Creates gateway orders, reads their status and checks webhook signatures."""

    def __init__(self, config: PaymentGatewayConfig):
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        logger.debug(f"PaymentGatewayClient initialized with base_url: {self.base_url}")

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "x-client-id": self.config.app_id,
            "x-client-secret": self.config.secret_key,
            "x-api-version": self.config.api_version,
        }

    def _ensure_configured(self, order_id: str) -> None:
        if not self.config.app_id or not self.config.secret_key:
            raise PaymentGatewayError(
                "Payment gateway credentials are not configured",
                context={"order_id": order_id},
            )

    def _request(
        self,
        method: str,
        path: str,
        order_id: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send one request and return the decoded JSON object body."""
        self._ensure_configured(order_id)
        url = f"{self.base_url}{path}"
        context = {"order_id": order_id, "method": method, "path": path}

        try:
            with httpx.Client(timeout=self.config.timeout_seconds) as client:
                response = client.request(
                    method, url, json=json, headers=self._get_headers()
                )
        except httpx.ConnectError as e:
            logger.error(f"Connection error calling payment gateway {path}: {e}")
            raise PaymentGatewayError(
                "Could not connect to payment gateway", original_error=e, context=context
            ) from e
        except httpx.TimeoutException as e:
            logger.error(f"Timeout calling payment gateway {path}: {e}")
            raise PaymentGatewayError(
                "Payment gateway timed out", original_error=e, context=context
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling payment gateway {path}: {e}")
            raise PaymentGatewayError(
                "Payment gateway request failed", original_error=e, context=context
            ) from e

        if not 200 <= response.status_code < 300:
            logger.error(
                f"Payment gateway returned HTTP {response.status_code} for {path}: "
                f"{response.text[:500]}"
            )
            raise PaymentGatewayError(
                f"Payment gateway returned HTTP {response.status_code}",
                context=context,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise PaymentGatewayError(
                "Payment gateway returned a non-JSON body",
                original_error=e,
                context=context,
            ) from e

        if not isinstance(data, dict):
            raise PaymentGatewayError(
                "Payment gateway returned an unexpected body", context=context
            )
        return data

    def create_order(
        self,
        order_id: str,
        amount: Decimal,
        currency: str,
        customer: GatewayCustomer,
        note: Optional[str] = None,
    ) -> str:
        """Create a gateway order and return its payment session token.

        Raises:
            PaymentGatewayError: On transport failure, non-2xx status or a
                response without payment_session_id
        """
        payload: Dict[str, Any] = {
            "order_id": order_id,
            "order_amount": float(amount),
            "order_currency": currency,
            "customer_details": {
                "customer_id": customer.customer_id,
                "customer_name": customer.name,
                "customer_email": customer.email,
                "customer_phone": customer.phone or DEFAULT_CUSTOMER_PHONE,
            },
            "order_meta": {
                "return_url": f"{self.config.return_url}?order_id={order_id}",
                "notify_url": self.config.webhook_url,
            },
        }
        if note:
            payload["order_note"] = note

        logger.info(f"Creating payment order {order_id} for {amount} {currency}")
        data = self._request("POST", "/pg/orders", order_id, json=payload)

        session_id = data.get("payment_session_id")
        if not session_id:
            raise PaymentGatewayError(
                "Payment gateway response is missing payment_session_id",
                context={"order_id": order_id},
            )
        return session_id

    def get_order_status(self, order_id: str) -> GatewayOrderStatus:
        """Fetch and normalize the current state of an order.

        Raises:
            PaymentGatewayError: On transport failure, non-2xx status or a
                response without order_status
        """
        data = self._request("GET", f"/pg/orders/{order_id}", order_id)

        gateway_status = data.get("order_status")
        if not isinstance(gateway_status, str) or not gateway_status:
            raise PaymentGatewayError(
                "Payment gateway response is missing order_status",
                context={"order_id": order_id},
            )

        payment_details = data.get("payment_details") or {}
        payment_id = payment_details.get("payment_id") or data.get("cf_payment_id")

        status = normalize_order_status(gateway_status)
        logger.info(
            f"Payment order {order_id} status {gateway_status} (normalized: {status})"
        )
        return GatewayOrderStatus(
            status=status,
            payment_id=str(payment_id) if payment_id else None,
            gateway_status=gateway_status,
        )

    def compute_webhook_signature(self, raw_body: bytes, timestamp: str) -> str:
        """Base64 HMAC-SHA256 of timestamp + raw body keyed by the secret."""
        message = timestamp.encode("utf-8") + raw_body
        digest = hmac.new(
            self.config.secret_key.encode("utf-8"), message, hashlib.sha256
        ).digest()
        return base64.b64encode(digest).decode("utf-8")

    def is_fresh_webhook_timestamp(
        self, timestamp: str, now: Optional[datetime] = None
    ) -> bool:
        """
        Whether a webhook timestamp lies within the configured tolerance.

        Accepts epoch seconds or epoch milliseconds. Non-numeric values are
        never fresh.
        """
        tolerance = self.config.webhook_tolerance_seconds
        if tolerance <= 0:
            return True
        try:
            sent_at = int(timestamp.strip())
        except ValueError:
            return False
        if sent_at >= _EPOCH_MILLIS_THRESHOLD:
            sent_at //= 1000
        current = (now or utc_now()).timestamp()
        return abs(current - sent_at) <= tolerance

    def verify_webhook_signature(
        self,
        raw_body: bytes,
        timestamp: Optional[str],
        signature: Optional[str],
        now: Optional[datetime] = None,
    ) -> bool:
        """Check a webhook delivery's signature headers against its body.

        Deliveries whose timestamp falls outside the tolerance window are
        rejected even when correctly signed, so a captured delivery cannot be
        replayed later.
        """
        if not self.config.secret_key or not timestamp or not signature:
            return False
        expected = self.compute_webhook_signature(raw_body, timestamp)
        if not secrets.compare_digest(
            expected.encode("utf-8"), signature.encode("utf-8")
        ):
            return False
        if not self.is_fresh_webhook_timestamp(timestamp, now):
            logger.warning(f"Rejected stale payment webhook timestamp {timestamp}")
            return False
        return True
