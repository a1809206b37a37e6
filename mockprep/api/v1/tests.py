"""
Public test catalog endpoints.

Both endpoints work without authentication; a valid bearer token adds the
caller's purchase flags. Answer keys are never returned here.
"""
from typing import Iterable, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from mockprep.models import get_db, MockTest, TestCategory, User
from mockprep.schemas.catalog import (
    PublicQuestionResponse,
    TestDetail,
    TestDetailResponse,
    TestListResponse,
    TestSummaryResponse,
)
from mockprep.core.auth import get_current_user_optional
from mockprep.core.catalog import (
    default_highlights,
    default_instructions,
    get_active_test,
    list_active_tests,
)
from mockprep.core.purchases import successful_test_ids

router = APIRouter()


def build_test_summary(test: MockTest, purchased_ids: Iterable[int]) -> TestSummaryResponse:
    return TestSummaryResponse(
        id=test.id,
        test_code=test.test_code,
        title=test.title,
        description=test.description,
        category=test.category,
        duration_minutes=test.duration_minutes,
        price=float(test.price),
        total_questions=len(test.questions),
        is_purchased=test.id in set(purchased_ids),
    )


@router.get("", response_model=TestListResponse)
def list_tests(
    category: Optional[TestCategory] = Query(None, description="Filter by category"),
    search: Optional[str] = Query(
        None, max_length=100, description="Substring of title or description"
    ),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    """
    List active tests, newest first.

    Returns:
        Tests with question counts and, for signed-in users, is_purchased
    """
    tests = list_active_tests(db, category=category, search=search)
    purchased = (
        successful_test_ids(db, current_user.id, [t.id for t in tests])
        if current_user is not None
        else set()
    )
    summaries = [build_test_summary(test, purchased) for test in tests]
    return TestListResponse(count=len(summaries), tests=summaries)


@router.get("/{test_id}", response_model=TestDetailResponse)
def get_test(
    test_id: int,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    """
    Get a test's landing page content and questions without answer keys.

    Raises:
        NotFoundError: If the test does not exist or is inactive (404)
    """
    test = get_active_test(db, test_id)
    purchased = (
        successful_test_ids(db, current_user.id, [test.id])
        if current_user is not None
        else set()
    )
    summary = build_test_summary(test, purchased)
    detail = TestDetail(
        **summary.model_dump(),
        highlights=test.highlights or default_highlights(test),
        instructions=test.instructions or default_instructions(test),
    )
    questions = [
        PublicQuestionResponse(
            key=question.key,
            position=question.position,
            text=question.text,
            options=list(question.options),
        )
        for question in test.questions
    ]
    return TestDetailResponse(test=detail, questions=questions)
