"""
Tests for the payment gateway client and its configuration.
"""
import base64
import dataclasses
import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

import httpx
import pytest

from mockprep.core.config import (
    PAYMENT_GATEWAY_PRODUCTION_URL,
    PAYMENT_GATEWAY_SANDBOX_URL,
    Settings,
)
from mockprep.services.payment_gateway import (
    DEFAULT_CUSTOMER_PHONE,
    GATEWAY_STATUS_FAILED,
    GATEWAY_STATUS_PAID,
    GATEWAY_STATUS_PENDING,
    GatewayCustomer,
    PaymentGatewayClient,
    PaymentGatewayConfig,
    PaymentGatewayError,
    normalize_order_status,
)

CLIENT_PATH = "mockprep.services.payment_gateway.httpx.Client"

SIGNED_AT = "1718000000"
NOW = datetime(2024, 6, 10, 6, 13, 20, tzinfo=timezone.utc)


@pytest.fixture
def config():
    return PaymentGatewayConfig(
        base_url="https://sandbox.gateway.test/",
        app_id="app-123",
        secret_key="secret-456",
        webhook_url="https://api.example.com/v1/purchases/payment-webhook",
        return_url="https://app.example.com/payment/success",
        timeout_seconds=5.0,
    )


@pytest.fixture
def gateway(config):
    return PaymentGatewayClient(config)


@pytest.fixture
def customer():
    return GatewayCustomer(
        customer_id="user_7", name="Asha Rao", email="asha@example.com"
    )


def _mock_http(mock_client_class, response=None, error=None):
    """Configure the patched httpx.Client used as a context manager."""
    http = mock_client_class.return_value.__enter__.return_value
    if error is not None:
        http.request.side_effect = error
    else:
        http.request.return_value = response
    return http


class TestNormalizeOrderStatus:
    def test_paid(self):
        assert normalize_order_status("PAID") == GATEWAY_STATUS_PAID

    def test_pending_states(self):
        assert normalize_order_status("ACTIVE") == GATEWAY_STATUS_PENDING
        assert normalize_order_status(" pending ") == GATEWAY_STATUS_PENDING

    def test_everything_else_failed(self):
        for value in ("EXPIRED", "TERMINATED", "FAILED", "USER_DROPPED"):
            assert normalize_order_status(value) == GATEWAY_STATUS_FAILED


class TestCreateOrder:
    """Tests for PaymentGatewayClient.create_order."""

    def test_sends_order_payload(self, gateway, customer):
        with patch(CLIENT_PATH) as mock_client_class:
            http = _mock_http(
                mock_client_class,
                httpx.Response(200, json={"payment_session_id": "session_abc"}),
            )

            session_id = gateway.create_order(
                order_id="ORDER_1_7_abcdef",
                amount=Decimal("148.50"),
                currency="INR",
                customer=customer,
                note="Purchase of 2 test(s)",
            )

        assert session_id == "session_abc"
        mock_client_class.assert_called_once_with(timeout=5.0)

        method, url = http.request.call_args.args
        kwargs = http.request.call_args.kwargs
        assert method == "POST"
        assert url == "https://sandbox.gateway.test/pg/orders"
        assert kwargs["headers"]["x-client-id"] == "app-123"
        assert kwargs["headers"]["x-client-secret"] == "secret-456"
        assert kwargs["headers"]["x-api-version"] == "2023-08-01"

        payload = kwargs["json"]
        assert payload["order_id"] == "ORDER_1_7_abcdef"
        assert payload["order_amount"] == 148.5
        assert payload["order_currency"] == "INR"
        assert payload["order_note"] == "Purchase of 2 test(s)"
        assert payload["customer_details"]["customer_phone"] == DEFAULT_CUSTOMER_PHONE
        assert payload["order_meta"]["return_url"] == (
            "https://app.example.com/payment/success?order_id=ORDER_1_7_abcdef"
        )
        assert payload["order_meta"]["notify_url"] == (
            "https://api.example.com/v1/purchases/payment-webhook"
        )

    def test_missing_session_id_raises(self, gateway, customer):
        with patch(CLIENT_PATH) as mock_client_class:
            _mock_http(mock_client_class, httpx.Response(200, json={"order_id": "x"}))

            with pytest.raises(PaymentGatewayError, match="payment_session_id"):
                gateway.create_order("ORDER_1", Decimal("10"), "INR", customer)

    def test_non_2xx_raises(self, gateway, customer):
        with patch(CLIENT_PATH) as mock_client_class:
            _mock_http(
                mock_client_class,
                httpx.Response(400, json={"message": "order_amount invalid"}),
            )

            with pytest.raises(PaymentGatewayError, match="HTTP 400"):
                gateway.create_order("ORDER_1", Decimal("10"), "INR", customer)

    def test_timeout_raises(self, gateway, customer):
        with patch(CLIENT_PATH) as mock_client_class:
            _mock_http(mock_client_class, error=httpx.ReadTimeout("read timed out"))

            with pytest.raises(PaymentGatewayError, match="timed out"):
                gateway.create_order("ORDER_1", Decimal("10"), "INR", customer)

    def test_connection_error_raises(self, gateway, customer):
        with patch(CLIENT_PATH) as mock_client_class:
            _mock_http(mock_client_class, error=httpx.ConnectError("refused"))

            with pytest.raises(PaymentGatewayError, match="connect"):
                gateway.create_order("ORDER_1", Decimal("10"), "INR", customer)

    def test_non_json_body_raises(self, gateway, customer):
        with patch(CLIENT_PATH) as mock_client_class:
            _mock_http(mock_client_class, httpx.Response(200, text="<html>oops</html>"))

            with pytest.raises(PaymentGatewayError, match="non-JSON"):
                gateway.create_order("ORDER_1", Decimal("10"), "INR", customer)

    def test_missing_credentials_raise_without_request(self, config, customer):
        unconfigured = PaymentGatewayClient(
            PaymentGatewayConfig(
                base_url=config.base_url,
                app_id="",
                secret_key="",
                webhook_url=config.webhook_url,
            )
        )

        with patch(CLIENT_PATH) as mock_client_class:
            with pytest.raises(PaymentGatewayError, match="not configured"):
                unconfigured.create_order("ORDER_1", Decimal("10"), "INR", customer)

        mock_client_class.assert_not_called()


class TestGetOrderStatus:
    """Tests for PaymentGatewayClient.get_order_status."""

    def test_paid_order(self, gateway):
        with patch(CLIENT_PATH) as mock_client_class:
            http = _mock_http(
                mock_client_class,
                httpx.Response(
                    200,
                    json={
                        "order_status": "PAID",
                        "payment_details": {"payment_id": 88123},
                    },
                ),
            )

            result = gateway.get_order_status("ORDER_9")

        assert result.status == GATEWAY_STATUS_PAID
        assert result.payment_id == "88123"
        assert result.gateway_status == "PAID"
        assert http.request.call_args.args == (
            "GET",
            "https://sandbox.gateway.test/pg/orders/ORDER_9",
        )

    def test_falls_back_to_cf_payment_id(self, gateway):
        with patch(CLIENT_PATH) as mock_client_class:
            _mock_http(
                mock_client_class,
                httpx.Response(200, json={"order_status": "PAID", "cf_payment_id": 5}),
            )

            result = gateway.get_order_status("ORDER_9")

        assert result.payment_id == "5"

    def test_active_order_is_pending(self, gateway):
        with patch(CLIENT_PATH) as mock_client_class:
            _mock_http(
                mock_client_class, httpx.Response(200, json={"order_status": "ACTIVE"})
            )

            result = gateway.get_order_status("ORDER_9")

        assert result.status == GATEWAY_STATUS_PENDING
        assert result.payment_id is None

    def test_missing_order_status_raises(self, gateway):
        with patch(CLIENT_PATH) as mock_client_class:
            _mock_http(mock_client_class, httpx.Response(200, json={"order_id": "x"}))

            with pytest.raises(PaymentGatewayError, match="order_status"):
                gateway.get_order_status("ORDER_9")

    def test_non_object_body_raises(self, gateway):
        with patch(CLIENT_PATH) as mock_client_class:
            _mock_http(mock_client_class, httpx.Response(200, json=["PAID"]))

            with pytest.raises(PaymentGatewayError, match="unexpected body"):
                gateway.get_order_status("ORDER_9")


class TestWebhookSignature:
    """Tests for webhook signature computation and verification."""

    def test_signature_round_trip(self, gateway):
        body = json.dumps({"orderId": "ORDER_1", "orderStatus": "PAID"}).encode()
        signature = gateway.compute_webhook_signature(body, SIGNED_AT)

        assert gateway.verify_webhook_signature(body, SIGNED_AT, signature, now=NOW)

    def test_known_signature(self, gateway):
        """HMAC-SHA256("secret-456", "1" + "{}") in base64."""
        expected = base64.b64encode(
            hmac.new(b"secret-456", b"1{}", hashlib.sha256).digest()
        ).decode()

        assert gateway.compute_webhook_signature(b"{}", "1") == expected

    def test_tampered_body_rejected(self, gateway):
        signature = gateway.compute_webhook_signature(b'{"a": 1}', SIGNED_AT)

        assert not gateway.verify_webhook_signature(
            b'{"a": 2}', SIGNED_AT, signature, now=NOW
        )

    def test_different_timestamp_rejected(self, gateway):
        signature = gateway.compute_webhook_signature(b"{}", SIGNED_AT)

        assert not gateway.verify_webhook_signature(
            b"{}", "1718000001", signature, now=NOW
        )

    def test_missing_headers_rejected(self, gateway):
        assert not gateway.verify_webhook_signature(b"{}", None, "sig")
        assert not gateway.verify_webhook_signature(b"{}", "1", None)

    def test_no_secret_rejects_everything(self, config):
        unsigned = PaymentGatewayClient(
            PaymentGatewayConfig(
                base_url=config.base_url,
                app_id="app",
                secret_key="",
                webhook_url=config.webhook_url,
            )
        )

        assert not unsigned.verify_webhook_signature(b"{}", "1", "anything")

    def test_stale_signed_delivery_rejected(self, gateway):
        signature = gateway.compute_webhook_signature(b"{}", SIGNED_AT)

        assert not gateway.verify_webhook_signature(
            b"{}", SIGNED_AT, signature, now=NOW + timedelta(minutes=6)
        )


class TestWebhookTimestamp:
    """Tests for the webhook timestamp freshness window."""

    @pytest.mark.parametrize(
        "timestamp,expected",
        [
            ("1718000000", True),
            ("1717999700", True),
            ("1717999699", False),
            ("1718000300", True),
            ("1718000301", False),
            ("1718000000000", True),
            ("1717999000000", False),
            (" 1718000000 ", True),
            ("yesterday", False),
            ("", False),
        ],
    )
    def test_window(self, gateway, timestamp, expected):
        assert gateway.is_fresh_webhook_timestamp(timestamp, now=NOW) is expected

    def test_zero_tolerance_disables_check(self, config):
        lenient = PaymentGatewayClient(
            dataclasses.replace(config, webhook_tolerance_seconds=0)
        )
        signature = lenient.compute_webhook_signature(b"{}", "1")

        assert lenient.is_fresh_webhook_timestamp("1", now=NOW)
        assert lenient.verify_webhook_signature(b"{}", "1", signature, now=NOW)


class TestGatewaySettings:
    """Tests for gateway settings and PaymentGatewayConfig.from_settings."""

    def test_from_settings(self):
        settings = Settings(
            _env_file=None,
            SECRET_KEY="s",
            JWT_SECRET_KEY="j",
            PAYMENT_GATEWAY_APP_ID="app",
            PAYMENT_GATEWAY_SECRET_KEY="secret",
            BACKEND_URL="https://api.example.com/",
            FRONTEND_URL="https://app.example.com",
        )

        config = PaymentGatewayConfig.from_settings(settings)

        assert config.base_url == PAYMENT_GATEWAY_SANDBOX_URL
        assert config.app_id == "app"
        assert config.secret_key == "secret"
        assert config.webhook_url == (
            "https://api.example.com/v1/purchases/payment-webhook"
        )
        assert config.return_url == "https://app.example.com/payment/success"
        assert config.currency == "INR"
        assert config.webhook_tolerance_seconds == 300

    def test_production_environment_uses_production_host(self):
        settings = Settings(
            _env_file=None,
            SECRET_KEY="s",
            JWT_SECRET_KEY="j",
            PAYMENT_GATEWAY_ENVIRONMENT="production",
        )

        assert settings.payment_gateway_base_url == PAYMENT_GATEWAY_PRODUCTION_URL

    def test_explicit_base_url_wins(self):
        settings = Settings(
            _env_file=None,
            SECRET_KEY="s",
            JWT_SECRET_KEY="j",
            PAYMENT_GATEWAY_BASE_URL="https://mock.gateway.test/",
        )

        assert settings.payment_gateway_base_url == "https://mock.gateway.test"

    def test_production_requires_credentials(self):
        with pytest.raises(ValueError, match="PAYMENT_GATEWAY_APP_ID"):
            Settings(
                _env_file=None,
                SECRET_KEY="s",
                JWT_SECRET_KEY="j",
                ENV="production",
                PAYMENT_GATEWAY_ENVIRONMENT="production",
            )
