"""
Models package for the MockPrep backend.
"""
from .base import Base, engine, SessionLocal, get_db
from .models import (
    User,
    MockTest,
    Question,
    Purchase,
    Attempt,
    TestCategory,
    PaymentStatus,
)

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "User",
    "MockTest",
    "Question",
    "Purchase",
    "Attempt",
    "TestCategory",
    "PaymentStatus",
]
