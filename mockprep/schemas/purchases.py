"""
Pydantic schemas for checkout, payment verification and owned tests.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mockprep.models.models import PaymentStatus, TestCategory


class CreateOrderRequest(BaseModel):
    """Tests to buy in one checkout."""

    test_ids: List[int] = Field(..., min_length=1, description="Catalog test IDs")


class PurchaseRequest(BaseModel):
    """Direct checkout of free tests."""

    test_ids: List[int] = Field(..., min_length=1, description="Catalog test IDs")


class PurchaseResponse(BaseModel):
    id: int
    test_id: int
    order_id: Optional[str] = None
    payment_status: PaymentStatus
    amount: float
    purchased_at: Optional[datetime] = None

    class Config:
        """Pydantic configuration."""

        from_attributes = True


class OrderResponse(BaseModel):
    """Checkout result.

    requires_payment=False means the tests were granted immediately and no
    gateway order exists.
    """

    requires_payment: bool
    amount: float = Field(..., description="Total charged for the remaining tests")
    test_ids: List[int] = Field(..., description="Tests included in this checkout")
    order_id: Optional[str] = None
    payment_session_id: Optional[str] = Field(
        None, description="Token the client passes to the hosted checkout"
    )
    purchases: List[PurchaseResponse] = Field(default_factory=list)


class VerifyPaymentRequest(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=100)

    @field_validator("order_id")
    @classmethod
    def strip_order_id(cls, v: str) -> str:
        return v.strip()


class VerificationResponse(BaseModel):
    """Order state after a verification or webhook delivery."""

    order_id: str
    status: str = Field(..., description="success, failed or pending")
    already_processed: bool = Field(
        ..., description="True when the order had been resolved before this call"
    )
    payment_id: Optional[str] = None


class WebhookPayload(BaseModel):
    """Body of a gateway payment notification."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(..., alias="orderId", min_length=1)
    order_status: str = Field(..., alias="orderStatus", min_length=1)
    payment_id: Optional[str] = Field(None, alias="paymentId")

    @field_validator("payment_id", mode="before")
    @classmethod
    def coerce_payment_id(cls, v):
        """Gateways send numeric payment ids; store them as strings."""
        if v is None:
            return None
        return str(v)


class PurchasedTestResponse(BaseModel):
    """An owned test with its purchase record."""

    purchase_id: int
    test_id: int
    title: str
    category: TestCategory
    duration_minutes: int
    amount: float
    order_id: Optional[str] = None
    purchased_at: Optional[datetime] = None


class PurchaseListResponse(BaseModel):
    count: int
    purchases: List[PurchasedTestResponse]


class PurchaseCheckResponse(BaseModel):
    test_id: int
    is_purchased: bool
