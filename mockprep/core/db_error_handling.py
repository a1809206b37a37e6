"""
Database error handling utilities.

Centralizes the common pattern for endpoint-level writes:
1. Rolling back the database session on error
2. Logging the error with context
3. Raising an appropriate HTTPException

Usage:
    from mockprep.core.db_error_handling import handle_db_error

    with handle_db_error(db, "create test"):
        db.add(test)
        db.commit()
        db.refresh(test)
        return test
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mockprep.core.error_responses import ErrorMessages


logger = logging.getLogger(__name__)


@contextmanager
def handle_db_error(
    db: Session,
    operation_name: str,
    *,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    detail: Optional[str] = None,
    log_level: int = logging.ERROR,
) -> Generator[None, None, None]:
    """Context manager for handling database errors consistently.

    Only SQLAlchemy errors are converted; HTTPExceptions and domain errors
    raised inside the block propagate unchanged.

    Args:
        db: The SQLAlchemy database session to rollback on error.
        operation_name: Human-readable name of the operation for error messages
            and logging (e.g., "create test", "register user").
        status_code: HTTP status code to use in the raised HTTPException.
        detail: Optional user-facing message. Defaults to
            ErrorMessages.database_operation_failed(operation_name).
        log_level: Logging level for error messages. Defaults to logging.ERROR.

    Raises:
        HTTPException: On SQLAlchemyError, with the session rolled back.
    """
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()

        logger.log(
            log_level,
            f"Database error during {operation_name}: {e}",
            exc_info=True,
        )

        raise HTTPException(
            status_code=status_code,
            detail=detail or ErrorMessages.database_operation_failed(operation_name),
        ) from e
