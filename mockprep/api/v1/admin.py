"""
Admin endpoints for catalog maintenance and platform statistics.

Every route requires an authenticated user with is_admin set.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from mockprep.models import get_db
from mockprep.schemas.catalog import AdminTestResponse, TestCreate, TestUpdate
from mockprep.schemas.performance import AdminAttemptResponse, AdminStatsResponse
from mockprep.core import settings
from mockprep.core.attempts import list_recent_attempts
from mockprep.core.auth import require_admin
from mockprep.core.catalog import (
    create_test,
    deactivate_test,
    get_test_for_admin,
    list_all_tests,
    update_test,
)
from mockprep.core.db_error_handling import handle_db_error
from mockprep.core.leaderboard import build_admin_stats

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])

TEST_CODE_CONFLICT = "A test with this test code already exists."


@router.post(
    "/tests", response_model=AdminTestResponse, status_code=status.HTTP_201_CREATED
)
def create_test_endpoint(data: TestCreate, db: Session = Depends(get_db)):
    """
    Create a test with its questions.

    Raises:
        DomainValidationError: Malformed question content (400)
        HTTPException: 409 if the test code is taken
    """
    with handle_db_error(
        db,
        "create test",
        status_code=status.HTTP_409_CONFLICT,
        detail=TEST_CODE_CONFLICT,
        log_level=logging.WARNING,
    ):
        return create_test(db, data)


@router.get("/tests", response_model=List[AdminTestResponse])
def list_tests_endpoint(db: Session = Depends(get_db)):
    """All tests including deactivated ones, with answer keys."""
    return list_all_tests(db)


@router.get("/tests/{test_id}", response_model=AdminTestResponse)
def get_test_endpoint(test_id: int, db: Session = Depends(get_db)):
    return get_test_for_admin(db, test_id)


@router.put("/tests/{test_id}", response_model=AdminTestResponse)
def update_test_endpoint(
    test_id: int, data: TestUpdate, db: Session = Depends(get_db)
):
    """
    Partially update a test.

    Raises:
        NotFoundError: Unknown test (404)
        DomainValidationError: Malformed replacement questions (400)
        InvalidStateError: Questions replaced on a test with attempts (409)
    """
    test = get_test_for_admin(db, test_id)
    with handle_db_error(
        db,
        "update test",
        status_code=status.HTTP_409_CONFLICT,
        detail=TEST_CODE_CONFLICT,
        log_level=logging.WARNING,
    ):
        return update_test(db, test, data)


@router.delete("/tests/{test_id}", response_model=AdminTestResponse)
def delete_test_endpoint(test_id: int, db: Session = Depends(get_db)):
    """Deactivate a test. Tests are never hard-deleted."""
    test = get_test_for_admin(db, test_id)
    return deactivate_test(db, test)


@router.get("/stats", response_model=AdminStatsResponse)
def get_stats(db: Session = Depends(get_db)):
    """Platform-wide counts."""
    return build_admin_stats(db)


@router.get("/attempts", response_model=List[AdminAttemptResponse])
def list_attempts_endpoint(
    limit: int = Query(settings.ADMIN_ATTEMPTS_LIMIT, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Most recent attempts across all users."""
    return list_recent_attempts(db, limit=limit)
