"""
Purchase endpoints: checkout, payment verification, gateway webhook and
owned tests.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from mockprep.models import get_db, User
from mockprep.schemas.purchases import (
    CreateOrderRequest,
    OrderResponse,
    PurchaseCheckResponse,
    PurchaseListResponse,
    PurchaseRequest,
    PurchaseResponse,
    PurchasedTestResponse,
    VerificationResponse,
    VerifyPaymentRequest,
)
from mockprep.core import settings
from mockprep.core.auth import get_current_user
from mockprep.core.purchases import PurchaseLedger, ResolutionResult
from mockprep.services.payment_gateway import (
    PaymentGatewayClient,
    PaymentGatewayConfig,
)

router = APIRouter()


def get_payment_gateway() -> PaymentGatewayClient:
    """Gateway client built from application settings. Overridden in tests."""
    return PaymentGatewayClient(PaymentGatewayConfig.from_settings(settings))


def get_purchase_ledger(
    db: Session = Depends(get_db),
    gateway: PaymentGatewayClient = Depends(get_payment_gateway),
) -> PurchaseLedger:
    return PurchaseLedger(db, gateway)


def _verification_response(result: ResolutionResult) -> VerificationResponse:
    return VerificationResponse(
        order_id=result.order_id,
        status=result.status,
        already_processed=result.already_processed,
        payment_id=result.payment_id,
    )


@router.post("/create-order", response_model=OrderResponse)
def create_order(
    request: CreateOrderRequest,
    current_user: User = Depends(get_current_user),
    ledger: PurchaseLedger = Depends(get_purchase_ledger),
):
    """
    Start a checkout for one or more tests.

    Tests the user already owns are skipped. When the remaining total is
    zero the tests are granted immediately and requires_payment is False.
    Otherwise the response carries the gateway order id and the payment
    session token for the hosted checkout.

    Raises:
        DomainValidationError: Empty selection or all tests owned (400)
        NotFoundError: Missing or inactive test (404)
        UpstreamFailureError: Gateway order creation failed (502)
    """
    result = ledger.create_order(current_user, request.test_ids)
    return OrderResponse(
        requires_payment=result.requires_payment,
        amount=float(result.amount),
        test_ids=result.test_ids,
        order_id=result.order_id,
        payment_session_id=result.payment_session_id,
        purchases=[PurchaseResponse.model_validate(p) for p in result.purchases],
    )


@router.post("/verify-payment", response_model=VerificationResponse)
def verify_payment(
    request: VerifyPaymentRequest,
    current_user: User = Depends(get_current_user),
    ledger: PurchaseLedger = Depends(get_purchase_ledger),
):
    """
    Poll the gateway for an order and resolve its pending purchases.

    A failed payment is reported with status "failed", not as an error.

    Raises:
        NotFoundError: The user has no purchases for the order (404)
        UpstreamFailureError: Gateway lookup failed; purchases stay pending (502)
    """
    result = ledger.verify_payment(current_user, request.order_id)
    return _verification_response(result)


@router.post("/payment-webhook", response_model=VerificationResponse)
async def payment_webhook(
    request: Request,
    x_webhook_signature: Optional[str] = Header(None),
    x_webhook_timestamp: Optional[str] = Header(None),
    ledger: PurchaseLedger = Depends(get_purchase_ledger),
):
    """
    Gateway payment notification.

    The signature headers are checked against the raw body before the body
    is parsed. Replayed notifications are acknowledged without changes.

    Raises:
        ForbiddenError: Missing or invalid signature (403)
        DomainValidationError: Malformed notification body (400)
    """
    raw_body = await request.body()
    result = await run_in_threadpool(
        ledger.handle_webhook, raw_body, x_webhook_timestamp, x_webhook_signature
    )
    return _verification_response(result)


@router.post(
    "", response_model=PurchaseListResponse, status_code=status.HTTP_201_CREATED
)
def purchase_free_tests(
    request: PurchaseRequest,
    current_user: User = Depends(get_current_user),
    ledger: PurchaseLedger = Depends(get_purchase_ledger),
):
    """
    Direct checkout for free tests.

    Raises:
        DomainValidationError: Paid test in the selection, or all owned (400)
        NotFoundError: Missing or inactive test (404)
    """
    purchases = ledger.purchase_free_tests(current_user, request.test_ids)
    items = [
        PurchasedTestResponse(
            purchase_id=purchase.id,
            test_id=purchase.test_id,
            title=purchase.test.title,
            category=purchase.test.category,
            duration_minutes=purchase.test.duration_minutes,
            amount=float(purchase.amount),
            order_id=purchase.order_id,
            purchased_at=purchase.purchased_at,
        )
        for purchase in purchases
    ]
    return PurchaseListResponse(count=len(items), purchases=items)


@router.get("", response_model=PurchaseListResponse)
def list_purchases(
    current_user: User = Depends(get_current_user),
    ledger: PurchaseLedger = Depends(get_purchase_ledger),
):
    """List the tests the user owns, most recent purchase first."""
    items = [
        PurchasedTestResponse(
            purchase_id=purchase.id,
            test_id=test.id,
            title=test.title,
            category=test.category,
            duration_minutes=test.duration_minutes,
            amount=float(purchase.amount),
            order_id=purchase.order_id,
            purchased_at=purchase.purchased_at,
        )
        for purchase, test in ledger.list_purchased_tests(current_user)
    ]
    return PurchaseListResponse(count=len(items), purchases=items)


@router.get("/check/{test_id}", response_model=PurchaseCheckResponse)
def check_purchase(
    test_id: int,
    current_user: User = Depends(get_current_user),
    ledger: PurchaseLedger = Depends(get_purchase_ledger),
):
    """Whether the user holds a successful purchase for the test."""
    return PurchaseCheckResponse(
        test_id=test_id, is_purchased=ledger.is_purchased(current_user, test_id)
    )
