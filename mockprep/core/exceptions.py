"""
Domain exceptions raised by the attempt, purchase and catalog services.

Services raise these instead of HTTPException so they stay usable outside a
request (scripts, tests). The application maps each class to an HTTP status
in main.py via DOMAIN_ERROR_STATUS.
"""
from typing import Any, Dict, Optional


class MockPrepError(Exception):
    """Base class for domain errors."""

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.original_error = original_error
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            msg = f"{msg} (context: {ctx_str})"
        if self.original_error:
            msg = f"{msg} - caused by: {str(self.original_error)}"
        return msg


class NotFoundError(MockPrepError):
    """Test, attempt or purchase is absent or not owned by the caller."""


class InvalidStateError(MockPrepError):
    """Operation not permitted in the entity's current state."""


class ForbiddenError(MockPrepError):
    """Caller lacks entitlement or role for the operation."""


class DomainValidationError(MockPrepError):
    """Malformed input data (question content, answer index, empty list)."""


class ConflictError(MockPrepError):
    """A concurrent write won a race that could not be resolved."""


class UpstreamFailureError(MockPrepError):
    """The payment gateway was unreachable or returned an unexpected shape."""
