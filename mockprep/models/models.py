"""
Database models for the MockPrep application.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Text,
    Enum,
    Numeric,
    Index,
    CheckConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSON
from datetime import datetime, timezone
import enum

from .base import Base


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TestCategory(str, enum.Enum):
    """Subject category of a mock test."""

    __test__ = False  # not a pytest test class

    POLITY = "polity"
    HISTORY = "history"
    GEOGRAPHY = "geography"
    ECONOMY = "economy"
    SCIENCE = "science"
    CURRENT_AFFAIRS = "current-affairs"


class PaymentStatus(str, enum.Enum):
    """Purchase payment status enumeration.

    PENDING rows move to exactly one of SUCCESS, FAILED or CANCELLED.
    CANCELLED marks a paid row whose (user, test) pair already held a
    successful purchase when the payment resolved.
    """

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class User(Base):
    """User model for authentication and profile."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    last_login_at = Column(DateTime(timezone=True))

    # Relationships
    purchases = relationship(
        "Purchase", back_populates="user", cascade="all, delete-orphan"
    )
    attempts = relationship(
        "Attempt", back_populates="user", cascade="all, delete-orphan"
    )


class MockTest(Base):
    """Catalog entry for a purchasable, timed mock test.

    Tests are never hard-deleted; is_active=False hides them from the catalog
    while keeping historical purchases and attempts resolvable.
    """

    __tablename__ = "mock_tests"

    id = Column(Integer, primary_key=True, index=True)
    # Optional human-friendly identifier assigned by admins (e.g. "POL-2024-01")
    test_code = Column(String(50), unique=True, nullable=True)
    title = Column(String(200), nullable=False)
    description = Column(String(1000), nullable=True)
    category = Column(
        Enum(TestCategory), default=TestCategory.POLITY, nullable=False, index=True
    )
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), default=0, nullable=False)
    # List of {"title", "description", "icon"} dicts
    highlights = Column(JSON, nullable=True)
    # List of instruction strings shown before an attempt starts
    instructions = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False
    )

    # Relationships
    questions = relationship(
        "Question",
        back_populates="test",
        order_by="Question.position",
        cascade="all, delete-orphan",
    )
    purchases = relationship("Purchase", back_populates="test")
    attempts = relationship("Attempt", back_populates="test")

    __table_args__ = (
        CheckConstraint("duration_minutes >= 1", name="ck_mock_tests_duration"),
        CheckConstraint("price >= 0", name="ck_mock_tests_price"),
    )


class Question(Base):
    """A multiple-choice question belonging to one test.

    The primary key is the stable question identity: answers, marked and
    visited entries on an Attempt are keyed by str(question.id), so editing
    or reordering positions never shifts which answer belongs to which question.
    """

    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    test_id = Column(
        Integer, ForeignKey("mock_tests.id", ondelete="CASCADE"), nullable=False
    )
    position = Column(Integer, nullable=False)
    text = Column(Text, nullable=False)
    options = Column(JSON, nullable=False)  # ordered list of 2-6 strings
    correct_answer = Column(Integer, nullable=False)  # 0-based index into options

    test = relationship("MockTest", back_populates="questions")

    __table_args__ = (
        Index("ix_questions_test_position", "test_id", "position"),
        CheckConstraint("correct_answer >= 0", name="ck_questions_correct_answer"),
    )

    @property
    def key(self) -> str:
        return str(self.id)


class Purchase(Base):
    """Entitlement grant for one user on one test.

    Paid purchases share an order_id across every test bought in one checkout.
    """

    __tablename__ = "purchases"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    test_id = Column(Integer, ForeignKey("mock_tests.id"), nullable=False, index=True)
    order_id = Column(String(100), nullable=True, index=True)
    payment_id = Column(String(100), nullable=True)
    payment_status = Column(
        Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False
    )
    amount = Column(Numeric(10, 2), default=0, nullable=False)
    purchased_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False
    )

    user = relationship("User", back_populates="purchases")
    test = relationship("MockTest", back_populates="purchases")

    __table_args__ = (
        # At most one SUCCESS purchase per (user, test). Enum columns store
        # member names, hence the uppercase literal.
        Index(
            "ix_purchases_user_test_success",
            "user_id",
            "test_id",
            unique=True,
            postgresql_where=text("payment_status = 'SUCCESS'"),
            sqlite_where=text("payment_status = 'SUCCESS'"),
        ),
        Index("ix_purchases_order_status", "order_id", "payment_status"),
    )


class Attempt(Base):
    """One user's run through one test.

    Open while submitted_at is NULL; immutable afterwards.
    """

    __tablename__ = "attempts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    test_id = Column(Integer, ForeignKey("mock_tests.id"), nullable=False, index=True)
    # {question_key: selected option index}; absent keys are unanswered
    answers = Column(JSON, nullable=False, default=dict)
    marked_questions = Column(JSON, nullable=False, default=list)
    current_question_index = Column(Integer, nullable=False, default=0)
    visited_questions = Column(JSON, nullable=False, default=list)
    started_at = Column(DateTime(timezone=True), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True, index=True)
    score = Column(Integer, nullable=True)
    percentage = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False
    )

    user = relationship("User", back_populates="attempts")
    test = relationship("MockTest", back_populates="attempts")

    __table_args__ = (
        # Only one open attempt per (user, test)
        Index(
            "ix_attempts_user_test_open",
            "user_id",
            "test_id",
            unique=True,
            postgresql_where=text("submitted_at IS NULL"),
            sqlite_where=text("submitted_at IS NULL"),
        ),
        CheckConstraint(
            "current_question_index >= 0", name="ck_attempts_question_index"
        ),
        CheckConstraint(
            "percentage IS NULL OR (percentage >= 0 AND percentage <= 100)",
            name="ck_attempts_percentage_range",
        ),
    )
