"""
Test catalog: listing, lookup and admin maintenance of mock tests.

Answer keys never leave this module through the public read helpers; only
the admin serializers include correct_answer.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING

from sqlalchemy import or_
from sqlalchemy.orm import Session

from mockprep.core.error_responses import ErrorMessages
from mockprep.core.exceptions import (
    DomainValidationError,
    InvalidStateError,
    NotFoundError,
)
from mockprep.models import Attempt, MockTest, Question, TestCategory

if TYPE_CHECKING:
    from mockprep.schemas.catalog import QuestionCreate, TestCreate, TestUpdate

logger = logging.getLogger(__name__)

MIN_OPTIONS = 2
MAX_OPTIONS = 6


def default_highlights(test: MockTest) -> List[Dict[str, str]]:
    """Highlights shown for tests whose admins did not configure any."""
    question_count = len(test.questions)
    return [
        {
            "title": "Comprehensive Question Bank",
            "description": (
                f"{question_count} carefully curated questions covering all "
                "important topics"
            ),
            "icon": "✅",
        },
        {
            "title": "Instant Results & Analytics",
            "description": "Get detailed performance analysis and track your progress",
            "icon": "📊",
        },
        {
            "title": "Timed Practice",
            "description": (
                "Practice under real exam conditions with "
                f"{test.duration_minutes}-minute timer"
            ),
            "icon": "⏰",
        },
        {
            "title": "Detailed Solutions",
            "description": "Review every question and your selected answers after submission",
            "icon": "📖",
        },
    ]


def default_instructions(test: MockTest) -> List[str]:
    question_count = len(test.questions)
    return [
        "Read each question carefully before selecting your answer.",
        "You can review and change your answers before submitting. "
        "Use the navigation to move between questions freely.",
        "The timer will start once you begin the test. You have "
        f"{test.duration_minutes} minutes to complete all {question_count} questions.",
        "Make sure you have a stable internet connection throughout the test "
        "to avoid any interruptions.",
        "Once submitted, an attempt cannot be changed. Review your answers "
        "carefully before final submission.",
    ]


def list_active_tests(
    db: Session,
    category: Optional[TestCategory] = None,
    search: Optional[str] = None,
) -> List[MockTest]:
    """
    List catalog tests visible to users.

    Args:
        db: Database session
        category: Optional category filter
        search: Optional case-insensitive substring matched against title
            and description

    Returns:
        Active tests, newest first
    """
    query = db.query(MockTest).filter(MockTest.is_active.is_(True))
    if category is not None:
        query = query.filter(MockTest.category == category)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(MockTest.title.ilike(pattern), MockTest.description.ilike(pattern))
        )
    return query.order_by(MockTest.created_at.desc(), MockTest.id.desc()).all()


def get_active_test(db: Session, test_id: int) -> MockTest:
    """Return an active test or raise NotFoundError."""
    test = (
        db.query(MockTest)
        .filter(MockTest.id == test_id, MockTest.is_active.is_(True))
        .first()
    )
    if test is None:
        raise NotFoundError(ErrorMessages.TEST_NOT_FOUND, context={"test_id": test_id})
    return test


def get_test_for_admin(db: Session, test_id: int) -> MockTest:
    """Return a test regardless of its active flag, or raise NotFoundError."""
    test = db.query(MockTest).filter(MockTest.id == test_id).first()
    if test is None:
        raise NotFoundError(ErrorMessages.TEST_NOT_FOUND, context={"test_id": test_id})
    return test


def validate_questions(questions: Sequence["QuestionCreate"]) -> None:
    """
    Check question content before it is written.

    Raises:
        DomainValidationError: If the list is empty, a question has fewer
            than 2 or more than 6 options, or its correct answer is not a
            valid option index
    """
    if not questions:
        raise DomainValidationError(ErrorMessages.QUESTIONS_REQUIRED)

    for position, question in enumerate(questions):
        option_count = len(question.options)
        if option_count < MIN_OPTIONS or option_count > MAX_OPTIONS:
            raise DomainValidationError(
                ErrorMessages.invalid_option_count(position, option_count)
            )
        if not 0 <= question.correct_answer < option_count:
            raise DomainValidationError(
                ErrorMessages.invalid_correct_answer(position, option_count)
            )


def _build_questions(questions: Sequence["QuestionCreate"]) -> List[Question]:
    return [
        Question(
            position=position,
            text=question.text,
            options=list(question.options),
            correct_answer=question.correct_answer,
        )
        for position, question in enumerate(questions)
    ]


def _clean_highlights(highlights: Optional[Sequence[Any]]) -> Optional[List[Dict]]:
    if highlights is None:
        return None
    return [
        {
            "title": item.title,
            "description": item.description,
            "icon": item.icon or "",
        }
        for item in highlights
    ]


def _clean_instructions(instructions: Optional[Sequence[str]]) -> Optional[List[str]]:
    if instructions is None:
        return None
    return [item.strip() for item in instructions if item and item.strip()]


def create_test(db: Session, data: "TestCreate") -> MockTest:
    """
    Create a catalog test with its questions.

    Raises:
        DomainValidationError: If any question is malformed
    """
    validate_questions(data.questions)

    test = MockTest(
        test_code=data.test_code,
        title=data.title,
        description=data.description,
        category=data.category,
        duration_minutes=data.duration_minutes,
        price=data.price,
        highlights=_clean_highlights(data.highlights),
        instructions=_clean_instructions(data.instructions),
        is_active=True,
    )
    test.questions = _build_questions(data.questions)
    db.add(test)
    db.commit()
    db.refresh(test)

    logger.info(
        f"Created test {test.id} '{test.title}' with {len(test.questions)} questions"
    )
    return test


def update_test(db: Session, test: MockTest, data: "TestUpdate") -> MockTest:
    """
    Apply a partial update to a test.

    Replacing questions is refused once any attempt references the test,
    since stored answers and scores were computed against the existing set.

    Raises:
        DomainValidationError: If replacement questions are malformed
        InvalidStateError: If questions are replaced on a test with attempts
    """
    changes = data.model_dump(exclude_unset=True)

    if "questions" in changes and data.questions is not None:
        validate_questions(data.questions)
        has_attempts = (
            db.query(Attempt.id).filter(Attempt.test_id == test.id).first() is not None
        )
        if has_attempts:
            raise InvalidStateError(
                ErrorMessages.QUESTIONS_LOCKED, context={"test_id": test.id}
            )
        test.questions = _build_questions(data.questions)

    for field in ("test_code", "title", "description", "category", "is_active"):
        if field in changes and changes[field] is not None:
            setattr(test, field, changes[field])
    if "duration_minutes" in changes and data.duration_minutes is not None:
        test.duration_minutes = data.duration_minutes
    if "price" in changes and data.price is not None:
        test.price = data.price
    if "highlights" in changes:
        test.highlights = _clean_highlights(data.highlights)
    if "instructions" in changes:
        test.instructions = _clean_instructions(data.instructions)

    db.commit()
    db.refresh(test)
    logger.info(f"Updated test {test.id}: fields={sorted(changes.keys())}")
    return test


def deactivate_test(db: Session, test: MockTest) -> MockTest:
    """Soft-delete a test. Purchases and attempts keep referencing it."""
    test.is_active = False
    db.commit()
    db.refresh(test)
    logger.info(f"Deactivated test {test.id}")
    return test


def list_all_tests(db: Session) -> List[MockTest]:
    """All tests including inactive ones, newest first."""
    return db.query(MockTest).order_by(
        MockTest.created_at.desc(), MockTest.id.desc()
    ).all()
