"""
Standardized error response messages and builders.

This module provides consistent error messages and HTTPException builders
for the entire API. Services raise domain exceptions (mockprep.core.exceptions)
carrying these messages; the HTTP layer uses the raise_* builders directly for
authentication and authorization failures.

Error Message Format Guidelines:
- Use sentence case (capitalize first letter only)
- End with a period for complete sentences
- Include relevant IDs in parentheses when helpful for debugging: "(ID: 123)"
- Use "Please try again later." for transient server errors

Usage:
    from mockprep.core.error_responses import ErrorMessages, raise_unauthorized

    if payload is None:
        raise_unauthorized(ErrorMessages.INVALID_TOKEN)
"""

from typing import Iterable, NoReturn

from fastapi import HTTPException, status


class ErrorMessages:
    """Centralized error message constants and templates.

    Naming Convention:
    - Constants: SCREAMING_SNAKE_CASE for static messages
    - Methods: snake_case for templates that accept parameters
    """

    # ==========================================================================
    # Authentication Errors (401)
    # ==========================================================================
    INVALID_CREDENTIALS = "Invalid email or password."
    INVALID_TOKEN = "Invalid authentication token."
    INVALID_TOKEN_TYPE = "Invalid token type."
    INVALID_TOKEN_PAYLOAD = "Invalid token payload."
    USER_NOT_FOUND_AUTH = "User not found."

    # ==========================================================================
    # Authorization Errors (403)
    # ==========================================================================
    ADMIN_REQUIRED = "Admin access required."
    TEST_NOT_PURCHASED = "Please purchase this test before attempting it."
    INVALID_WEBHOOK_SIGNATURE = "Invalid webhook signature."

    # ==========================================================================
    # Not Found Errors (404)
    # ==========================================================================
    TEST_NOT_FOUND = "Test not found."
    TESTS_NOT_FOUND = "One or more tests not found."
    ATTEMPT_NOT_FOUND = "Attempt not found."
    ORDER_NOT_FOUND = "Order not found."

    # ==========================================================================
    # Conflict / Invalid State Errors (409)
    # ==========================================================================
    EMAIL_ALREADY_REGISTERED = "Email already registered."
    ATTEMPT_ALREADY_SUBMITTED = "Attempt has already been submitted."
    CANNOT_UPDATE_SUBMITTED_ATTEMPT = "Cannot update a submitted attempt."
    CANNOT_START_SUBMITTED_ATTEMPT = "Cannot start a submitted attempt."
    QUESTIONS_LOCKED = (
        "Questions cannot be replaced once attempts exist for this test. "
        "Please create a new test instead."
    )
    ATTEMPT_CREATION_CONFLICT = (
        "An attempt for this test is being created. Please try again."
    )

    # ==========================================================================
    # Validation Errors (400)
    # ==========================================================================
    EMPTY_TEST_SELECTION = "Please select at least one test."
    ALL_TESTS_PURCHASED = "All selected tests are already purchased."
    PAID_TESTS_REQUIRE_GATEWAY = "Please use payment gateway for paid tests."
    QUESTIONS_REQUIRED = "Test must have at least one question."

    # ==========================================================================
    # Upstream Errors (502)
    # ==========================================================================
    PAYMENT_ORDER_FAILED = "Failed to create payment order. Please try again later."
    PAYMENT_VERIFICATION_FAILED = (
        "Failed to verify payment with the gateway. Please try again later."
    )

    # ==========================================================================
    # Template Methods for Dynamic Messages
    # ==========================================================================
    @staticmethod
    def invalid_correct_answer(position: int, option_count: int) -> str:
        """Message when a question's answer key is outside its options."""
        return (
            f"Question {position + 1} must have a correct answer between 0 "
            f"and {option_count - 1}."
        )

    @staticmethod
    def invalid_option_count(position: int, option_count: int) -> str:
        return (
            f"Question {position + 1} must have between 2 and 6 options "
            f"(got {option_count})."
        )

    @staticmethod
    def unknown_question_keys(keys: Iterable[str]) -> str:
        """Message when submitted answer keys don't belong to the test."""
        keys_str = ", ".join(sorted(keys))
        return (
            f"Invalid question keys: {keys_str}. "
            "These questions do not belong to this test."
        )

    @staticmethod
    def invalid_answer_index(question_key: str, option_count: int) -> str:
        return (
            f"Answer for question {question_key} must be an option index between "
            f"0 and {option_count - 1}."
        )

    @staticmethod
    def database_operation_failed(operation: str) -> str:
        """Generic message for database operation failures."""
        return f"Failed to {operation}. Please try again later."


# ==============================================================================
# HTTPException Builder Functions
# ==============================================================================


def raise_unauthorized(
    detail: str,
    include_www_authenticate: bool = True,
) -> NoReturn:
    """Raise a 401 Unauthorized exception.

    Use for authentication failures (invalid/missing credentials).

    Args:
        detail: User-facing error message
        include_www_authenticate: Whether to include WWW-Authenticate header

    Raises:
        HTTPException: 401 Unauthorized
    """
    headers = {"WWW-Authenticate": "Bearer"} if include_www_authenticate else None
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers=headers,
    )


def raise_forbidden(detail: str) -> NoReturn:
    """Raise a 403 Forbidden exception.

    Use for authorization failures (valid credentials but insufficient permissions).

    Args:
        detail: User-facing error message

    Raises:
        HTTPException: 403 Forbidden
    """
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=detail,
    )


def raise_conflict(detail: str) -> NoReturn:
    """Raise a 409 Conflict exception.

    Use when the request conflicts with current state (e.g., duplicate creation).

    Args:
        detail: User-facing error message

    Raises:
        HTTPException: 409 Conflict
    """
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=detail,
    )
