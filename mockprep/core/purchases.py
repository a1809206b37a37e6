"""
Purchase ledger: entitlement grants and payment reconciliation.

A paid checkout writes one PENDING row per test, all sharing the gateway
order id. The order is later resolved by either the user polling
(verify_payment) or the gateway pushing a webhook (handle_webhook); the two
race and either may run first.

Resolution is a single conditional UPDATE ... WHERE payment_status = PENDING
inside one transaction, so exactly one resolver moves the rows and every
later call updates zero rows and reports the order as already processed.
purchased_at is therefore stamped once.

A pending row whose (user, test) pair already holds a SUCCESS purchase (two
checkouts paid for the same test) is moved to CANCELLED instead, keeping the
partial unique index ix_purchases_user_test_success satisfied.

Gateway failures surface as UpstreamFailureError and never touch rows that
were already written.
"""
import logging
import secrets
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Set, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mockprep.core.datetime_utils import utc_now
from mockprep.core.error_responses import ErrorMessages
from mockprep.core.exceptions import (
    ConflictError,
    DomainValidationError,
    ForbiddenError,
    NotFoundError,
    UpstreamFailureError,
)
from mockprep.models import MockTest, PaymentStatus, Purchase, User
from mockprep.schemas.purchases import WebhookPayload
from mockprep.services.payment_gateway import (
    GATEWAY_STATUS_PAID,
    GATEWAY_STATUS_PENDING,
    GatewayCustomer,
    GatewayOrderStatus,
    PaymentGatewayClient,
    PaymentGatewayError,
    normalize_order_status,
)

logger = logging.getLogger(__name__)

# Order-level states reported to callers
ORDER_STATE_SUCCESS = "success"
ORDER_STATE_FAILED = "failed"
ORDER_STATE_PENDING = "pending"

# Resolution is retried once after a unique-index violation caused by a
# concurrent resolution of another order for the same (user, test)
_RESOLUTION_ATTEMPTS = 2


def has_successful_purchase(db: Session, user_id: int, test_id: int) -> bool:
    """True when the user holds a SUCCESS purchase for the test."""
    return (
        db.query(Purchase.id)
        .filter(
            Purchase.user_id == user_id,
            Purchase.test_id == test_id,
            Purchase.payment_status == PaymentStatus.SUCCESS,
        )
        .first()
        is not None
    )


def successful_test_ids(
    db: Session, user_id: int, test_ids: Optional[Iterable[int]] = None
) -> Set[int]:
    """Ids of tests the user holds with SUCCESS status, optionally limited."""
    query = db.query(Purchase.test_id).filter(
        Purchase.user_id == user_id,
        Purchase.payment_status == PaymentStatus.SUCCESS,
    )
    if test_ids is not None:
        query = query.filter(Purchase.test_id.in_(list(test_ids)))
    return {row.test_id for row in query.all()}


def generate_order_id(user_id: int) -> str:
    """Unique gateway order id, e.g. ORDER_1718000000000_42_a1b2c3."""
    timestamp_ms = int(utc_now().timestamp() * 1000)
    return f"ORDER_{timestamp_ms}_{user_id}_{secrets.token_hex(3)}"


def order_state(purchases: Iterable[Purchase]) -> str:
    """Collapse an order's rows into success, failed or pending."""
    statuses = {purchase.payment_status for purchase in purchases}
    if PaymentStatus.PENDING in statuses:
        return ORDER_STATE_PENDING
    if statuses and statuses <= {PaymentStatus.FAILED}:
        return ORDER_STATE_FAILED
    return ORDER_STATE_SUCCESS


@dataclass
class OrderResult:
    """Outcome of a checkout.

    For a free checkout requires_payment is False and purchases are already
    SUCCESS. For a paid checkout the client completes payment with
    payment_session_id.
    """

    requires_payment: bool
    amount: Decimal
    test_ids: List[int]
    purchases: List[Purchase] = field(default_factory=list)
    order_id: Optional[str] = None
    payment_session_id: Optional[str] = None


@dataclass
class ResolutionResult:
    order_id: str
    status: str
    already_processed: bool
    updated_rows: int = 0
    payment_id: Optional[str] = None


class PurchaseLedger:
    """Entitlement ledger bound to one database session and gateway client."""

    def __init__(self, db: Session, gateway: PaymentGatewayClient):
        self.db = db
        self.gateway = gateway

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def _load_active_tests(self, test_ids: List[int]) -> List[MockTest]:
        unique_ids = list(dict.fromkeys(test_ids))
        if not unique_ids:
            raise DomainValidationError(ErrorMessages.EMPTY_TEST_SELECTION)

        tests = (
            self.db.query(MockTest)
            .filter(MockTest.id.in_(unique_ids), MockTest.is_active.is_(True))
            .all()
        )
        if len(tests) != len(unique_ids):
            missing = sorted(set(unique_ids) - {test.id for test in tests})
            raise NotFoundError(
                ErrorMessages.TESTS_NOT_FOUND, context={"test_ids": missing}
            )

        by_id = {test.id: test for test in tests}
        return [by_id[test_id] for test_id in unique_ids]

    def _unowned(self, user: User, tests: List[MockTest]) -> List[MockTest]:
        owned = successful_test_ids(self.db, user.id, [test.id for test in tests])
        remaining = [test for test in tests if test.id not in owned]
        if not remaining:
            raise DomainValidationError(
                ErrorMessages.ALL_TESTS_PURCHASED, context={"user_id": user.id}
            )
        return remaining

    def _grant_free(self, user: User, test_ids: List[int]) -> List[Purchase]:
        """Write SUCCESS rows for free tests, skipping pairs granted meanwhile."""
        for attempt_no in range(1, _RESOLUTION_ATTEMPTS + 1):
            tests = self._unowned(user, self._load_active_tests(test_ids))
            now = utc_now()
            purchases = [
                Purchase(
                    user_id=user.id,
                    test_id=test.id,
                    amount=Decimal("0"),
                    payment_status=PaymentStatus.SUCCESS,
                    purchased_at=now,
                )
                for test in tests
            ]
            self.db.add_all(purchases)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning(
                    f"Concurrent free grant for user {user.id} "
                    f"(attempt {attempt_no}); re-checking ownership"
                )
                continue

            for purchase in purchases:
                self.db.refresh(purchase)
            logger.info(
                f"Granted {len(purchases)} free test(s) to user {user.id}: "
                f"{[p.test_id for p in purchases]}"
            )
            return purchases

        raise ConflictError(
            ErrorMessages.ALL_TESTS_PURCHASED, context={"user_id": user.id}
        )

    def create_order(self, user: User, test_ids: List[int]) -> OrderResult:
        """
        Start a checkout for the given tests.

        Tests the user already owns are skipped. A zero total grants the rest
        immediately without contacting the gateway. Otherwise a gateway order
        is created first and one PENDING row per test is written with that
        test's price.

        Raises:
            DomainValidationError: If test_ids is empty or every test is owned
            NotFoundError: If any test is missing or inactive
            UpstreamFailureError: If the gateway order could not be created
        """
        tests = self._unowned(user, self._load_active_tests(test_ids))
        total = sum((Decimal(test.price) for test in tests), Decimal("0"))
        remaining_ids = [test.id for test in tests]

        if total == 0:
            purchases = self._grant_free(user, remaining_ids)
            return OrderResult(
                requires_payment=False,
                amount=Decimal("0"),
                test_ids=[p.test_id for p in purchases],
                purchases=purchases,
            )

        order_id = generate_order_id(user.id)
        customer = GatewayCustomer(
            customer_id=f"user_{user.id}",
            name=user.name,
            email=user.email,
            phone=user.phone,
        )

        try:
            session_id = self.gateway.create_order(
                order_id=order_id,
                amount=total,
                currency=self.gateway.config.currency,
                customer=customer,
                note=f"Purchase of {len(tests)} test(s)",
            )
        except PaymentGatewayError as e:
            logger.error(f"Payment order {order_id} failed for user {user.id}: {e}")
            raise UpstreamFailureError(
                ErrorMessages.PAYMENT_ORDER_FAILED,
                original_error=e,
                context={"order_id": order_id},
            ) from e

        purchases = [
            Purchase(
                user_id=user.id,
                test_id=test.id,
                order_id=order_id,
                amount=test.price,
                payment_status=PaymentStatus.PENDING,
            )
            for test in tests
        ]
        self.db.add_all(purchases)
        self.db.commit()
        for purchase in purchases:
            self.db.refresh(purchase)

        logger.info(
            f"Created payment order {order_id} for user {user.id}: "
            f"{len(purchases)} test(s), amount {total}"
        )
        return OrderResult(
            requires_payment=True,
            amount=total,
            test_ids=remaining_ids,
            purchases=purchases,
            order_id=order_id,
            payment_session_id=session_id,
        )

    def purchase_free_tests(self, user: User, test_ids: List[int]) -> List[Purchase]:
        """
        Direct checkout for free tests only.

        Raises:
            DomainValidationError: If test_ids is empty, any test is paid, or
                every test is already owned
            NotFoundError: If any test is missing or inactive
        """
        tests = self._load_active_tests(test_ids)
        if any(Decimal(test.price) > 0 for test in tests):
            raise DomainValidationError(ErrorMessages.PAID_TESTS_REQUIRE_GATEWAY)
        return self._grant_free(user, [test.id for test in tests])

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _pending_query(self, order_id: str):
        return self.db.query(Purchase).filter(
            Purchase.order_id == order_id,
            Purchase.payment_status == PaymentStatus.PENDING,
        )

    def _cancel_duplicates(self, order_id: str, payment_id: Optional[str]) -> int:
        """Move pending rows whose pair is already owned to CANCELLED."""
        pending_pairs: List[Tuple[int, int, int]] = [
            (row.id, row.user_id, row.test_id)
            for row in self.db.query(
                Purchase.id, Purchase.user_id, Purchase.test_id
            ).filter(
                Purchase.order_id == order_id,
                Purchase.payment_status == PaymentStatus.PENDING,
            )
        ]
        duplicate_ids = [
            purchase_id
            for purchase_id, user_id, test_id in pending_pairs
            if has_successful_purchase(self.db, user_id, test_id)
        ]
        if not duplicate_ids:
            return 0

        cancelled = (
            self.db.query(Purchase)
            .filter(
                Purchase.id.in_(duplicate_ids),
                Purchase.payment_status == PaymentStatus.PENDING,
            )
            .update(
                {
                    Purchase.payment_status: PaymentStatus.CANCELLED,
                    Purchase.payment_id: payment_id,
                },
                synchronize_session=False,
            )
        )
        logger.warning(
            f"Order {order_id} paid for already-owned tests; cancelled "
            f"{cancelled} purchase row(s) {duplicate_ids} for refund"
        )
        return cancelled

    def _apply_outcome(self, order_id: str, outcome: GatewayOrderStatus) -> int:
        if outcome.status == GATEWAY_STATUS_PAID:
            cancelled = self._cancel_duplicates(order_id, outcome.payment_id)
            granted = self._pending_query(order_id).update(
                {
                    Purchase.payment_status: PaymentStatus.SUCCESS,
                    Purchase.payment_id: outcome.payment_id,
                    Purchase.purchased_at: utc_now(),
                },
                synchronize_session=False,
            )
            return cancelled + granted

        return self._pending_query(order_id).update(
            {
                Purchase.payment_status: PaymentStatus.FAILED,
                Purchase.payment_id: outcome.payment_id,
            },
            synchronize_session=False,
        )

    def _resolve(self, order_id: str, outcome: GatewayOrderStatus) -> int:
        """Move the order's pending rows to a terminal state. Returns rows moved."""
        if outcome.status == GATEWAY_STATUS_PENDING:
            return 0

        for attempt_no in range(1, _RESOLUTION_ATTEMPTS + 1):
            try:
                updated = self._apply_outcome(order_id, outcome)
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning(
                    f"Concurrent resolution conflict on order {order_id} "
                    f"(attempt {attempt_no})"
                )
                continue

            logger.info(
                f"Resolved order {order_id} as {outcome.status}: "
                f"{updated} row(s) updated"
            )
            return updated

        raise ConflictError(
            ErrorMessages.database_operation_failed("resolve payment order"),
            context={"order_id": order_id},
        )

    def _order_rows(self, order_id: str, user_id: Optional[int] = None) -> List[Purchase]:
        query = self.db.query(Purchase).filter(Purchase.order_id == order_id)
        if user_id is not None:
            query = query.filter(Purchase.user_id == user_id)
        return query.all()

    def verify_payment(self, user: User, order_id: str) -> ResolutionResult:
        """
        Resolve an order by asking the gateway for its status.

        An order with no pending rows is already resolved and its current
        state is returned without contacting the gateway.

        Raises:
            NotFoundError: If the user has no purchase rows for the order
            UpstreamFailureError: If the gateway call fails; pending rows are
                left as they are
        """
        rows = self._order_rows(order_id, user.id)
        if not rows:
            raise NotFoundError(
                ErrorMessages.ORDER_NOT_FOUND,
                context={"order_id": order_id, "user_id": user.id},
            )

        if all(row.payment_status != PaymentStatus.PENDING for row in rows):
            return ResolutionResult(
                order_id=order_id,
                status=order_state(rows),
                already_processed=True,
                payment_id=rows[0].payment_id,
            )

        try:
            outcome = self.gateway.get_order_status(order_id)
        except PaymentGatewayError as e:
            logger.error(f"Payment verification failed for order {order_id}: {e}")
            raise UpstreamFailureError(
                ErrorMessages.PAYMENT_VERIFICATION_FAILED,
                original_error=e,
                context={"order_id": order_id},
            ) from e

        updated = self._resolve(order_id, outcome)
        rows = self._order_rows(order_id, user.id)
        return ResolutionResult(
            order_id=order_id,
            status=order_state(rows),
            already_processed=updated == 0 and outcome.status != GATEWAY_STATUS_PENDING,
            updated_rows=updated,
            payment_id=outcome.payment_id,
        )

    def handle_webhook(
        self,
        raw_body: bytes,
        timestamp: Optional[str],
        signature: Optional[str],
    ) -> ResolutionResult:
        """
        Resolve an order from a gateway notification.

        The signature is checked against the raw body before anything in the
        body is trusted.

        Raises:
            ForbiddenError: If the signature is missing or invalid
            DomainValidationError: If the body is not a valid notification
        """
        if not self.gateway.verify_webhook_signature(raw_body, timestamp, signature):
            logger.warning("Rejected payment webhook with invalid signature")
            raise ForbiddenError(ErrorMessages.INVALID_WEBHOOK_SIGNATURE)

        try:
            payload = WebhookPayload.model_validate_json(raw_body)
        except PydanticValidationError as e:
            raise DomainValidationError(
                "Invalid webhook payload.", original_error=e
            ) from e

        outcome = GatewayOrderStatus(
            status=normalize_order_status(payload.order_status),
            payment_id=payload.payment_id,
            gateway_status=payload.order_status,
        )

        if self._pending_query(payload.order_id).first() is None:
            logger.info(f"Webhook for order {payload.order_id}: already processed")
            rows = self._order_rows(payload.order_id)
            return ResolutionResult(
                order_id=payload.order_id,
                status=order_state(rows) if rows else outcome.status,
                already_processed=True,
            )

        updated = self._resolve(payload.order_id, outcome)
        rows = self._order_rows(payload.order_id)
        return ResolutionResult(
            order_id=payload.order_id,
            status=order_state(rows),
            already_processed=updated == 0 and outcome.status != GATEWAY_STATUS_PENDING,
            updated_rows=updated,
            payment_id=outcome.payment_id,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_purchased_tests(self, user: User) -> List[Tuple[Purchase, MockTest]]:
        """SUCCESS purchases with their tests, most recent first."""
        rows = (
            self.db.query(Purchase, MockTest)
            .join(MockTest, Purchase.test_id == MockTest.id)
            .filter(
                Purchase.user_id == user.id,
                Purchase.payment_status == PaymentStatus.SUCCESS,
            )
            .order_by(Purchase.purchased_at.desc(), Purchase.id.desc())
            .all()
        )
        return [(purchase, test) for purchase, test in rows]

    def is_purchased(self, user: User, test_id: int) -> bool:
        return has_successful_purchase(self.db, user.id, test_id)

