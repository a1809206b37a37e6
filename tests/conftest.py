"""
Pytest configuration and shared fixtures for testing.
"""
import os
from pathlib import Path

# Settings and the engine are created at import time; configure them before
# importing anything from mockprep.
_TEST_DB = Path(__file__).parent / "test.db"
SQLALCHEMY_DATABASE_URL = f"sqlite:///{_TEST_DB}"

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key")
os.environ.setdefault("DATABASE_URL", SQLALCHEMY_DATABASE_URL)
os.environ.setdefault("DEBUG", "False")

from contextlib import asynccontextmanager  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import List  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from mockprep.api.v1.purchases import get_payment_gateway  # noqa: E402
from mockprep.core.security import create_access_token  # noqa: E402
from mockprep.main import app  # noqa: E402
from mockprep.models import Base, TestCategory, User, get_db  # noqa: E402
from mockprep.services.payment_gateway import (  # noqa: E402
    GATEWAY_STATUS_PAID,
    GatewayOrderStatus,
    PaymentGatewayClient,
    PaymentGatewayConfig,
    PaymentGatewayError,
)
from tests.factories import (  # noqa: E402
    WEBHOOK_SECRET,
    create_mock_test,
    create_user,
    grant_purchase,
)


@asynccontextmanager
async def _test_lifespan(app):
    """No-op lifespan for tests. Skips error tracking initialization."""
    yield


app.router.lifespan_context = _test_lifespan


engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakePaymentGateway(PaymentGatewayClient):
    """
    Gateway stand-in that records calls instead of making HTTP requests.

    Webhook signature checks use the real implementation with a known secret.
    """

    def __init__(self):
        super().__init__(
            PaymentGatewayConfig(
                base_url="https://gateway.test",
                app_id="test-app-id",
                secret_key=WEBHOOK_SECRET,
                webhook_url="http://testserver/v1/purchases/payment-webhook",
                return_url="http://localhost:3000/payment/success",
            )
        )
        self.created_orders: List[dict] = []
        self.status_requests: List[str] = []
        self.order_status = GatewayOrderStatus(
            status=GATEWAY_STATUS_PAID, payment_id="pay_123", gateway_status="PAID"
        )
        self.fail_create = False
        self.fail_status = False

    def create_order(self, order_id, amount, currency, customer, note=None):
        if self.fail_create:
            raise PaymentGatewayError("gateway unavailable")
        self.created_orders.append(
            {
                "order_id": order_id,
                "amount": amount,
                "currency": currency,
                "customer": customer,
            }
        )
        return f"session_{order_id}"

    def get_order_status(self, order_id):
        if self.fail_status:
            raise PaymentGatewayError("gateway unavailable")
        self.status_requests.append(order_id)
        return self.order_status


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    """
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_gateway():
    return FakePaymentGateway()


@pytest.fixture(scope="function")
def client(db_session, fake_gateway):
    """
    Create a test client with database and payment gateway overrides.
    """

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _headers_for(user: User) -> dict:
    access_token = create_access_token({"user_id": user.id, "email": user.email})
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture
def test_user(db_session):
    """
    Create a test user in the database.
    """
    return create_user(db_session, "test@example.com", "Test User")


@pytest.fixture
def auth_headers(test_user):
    """
    Create authentication headers for test user.
    """
    return _headers_for(test_user)


@pytest.fixture
def other_user(db_session):
    return create_user(db_session, "other@example.com", "Other User")


@pytest.fixture
def other_auth_headers(other_user):
    return _headers_for(other_user)


@pytest.fixture
def admin_user(db_session):
    return create_user(db_session, "admin@example.com", "Admin User", is_admin=True)


@pytest.fixture
def admin_headers(admin_user):
    return _headers_for(admin_user)


@pytest.fixture
def free_test(db_session):
    return create_mock_test(db_session, title="Free Polity Mock")


@pytest.fixture
def paid_test(db_session):
    return create_mock_test(
        db_session,
        title="Paid History Mock",
        price=Decimal("99.00"),
        category=TestCategory.HISTORY,
    )


@pytest.fixture
def purchased_test(db_session, test_user, paid_test):
    """The paid test with a successful purchase for test_user."""
    grant_purchase(db_session, test_user, paid_test)
    return paid_test
