"""
Attempt engine: lifecycle of a user's run through one test.

States: uncreated -> open (started_at unset) -> open (started) -> submitted.

Question keys are stable question ids rendered as strings. Answer keys are
never positions, so a stored answer always refers to the same question.

Concurrency:
    - At most one open attempt per (user, test). create_attempt checks in the
      application and the partial unique index ix_attempts_user_test_open
      catches the race where two requests pass the check together. The loser
      rolls back and returns the winner's attempt.
    - Progress updates lock the attempt row (SELECT ... FOR UPDATE on
      PostgreSQL) so they serialize with submission.
    - Submission is a conditional UPDATE guarded by submitted_at IS NULL; a
      second submitter updates zero rows and receives InvalidStateError.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mockprep.core.catalog import get_active_test
from mockprep.core.datetime_utils import ensure_timezone_aware, utc_now
from mockprep.core.error_responses import ErrorMessages
from mockprep.core.exceptions import (
    ConflictError,
    DomainValidationError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)
from mockprep.core.purchases import has_successful_purchase
from mockprep.core.scoring import score_answers
from mockprep.models import Attempt, MockTest, User

if TYPE_CHECKING:
    from mockprep.models import Question

logger = logging.getLogger(__name__)


@dataclass
class ProgressUpdate:
    """Partial progress change. None means the field was not supplied."""

    answers: Optional[Dict[str, int]] = None
    marked_questions: Optional[List[str]] = None
    current_question_index: Optional[int] = None
    visited_questions: Optional[List[str]] = None


@dataclass
class AttemptQuestionView:
    key: str
    position: int
    text: str
    options: List[str]
    selected_answer: Optional[int]


@dataclass
class AttemptDetail:
    """Read model for taking or reviewing an attempt. Holds no answer key."""

    attempt: Attempt
    test: MockTest
    questions: List[AttemptQuestionView] = field(default_factory=list)

    @property
    def instructions(self) -> List[str]:
        return list(self.test.instructions or [])


def _find_open_attempt(db: Session, user_id: int, test_id: int) -> Optional[Attempt]:
    return (
        db.query(Attempt)
        .filter(
            Attempt.user_id == user_id,
            Attempt.test_id == test_id,
            Attempt.submitted_at.is_(None),
        )
        .first()
    )


def get_owned_attempt(
    db: Session, user: User, attempt_id: int, *, for_update: bool = False
) -> Attempt:
    """
    Load an attempt owned by user.

    Attempts belonging to other users are reported as not found.

    Raises:
        NotFoundError: If the attempt does not exist or is not owned by user
    """
    query = db.query(Attempt).filter(
        Attempt.id == attempt_id, Attempt.user_id == user.id
    )
    if for_update:
        query = query.with_for_update()
    attempt = query.first()
    if attempt is None:
        raise NotFoundError(
            ErrorMessages.ATTEMPT_NOT_FOUND, context={"attempt_id": attempt_id}
        )
    return attempt


def create_attempt(db: Session, user: User, test_id: int) -> Tuple[Attempt, bool]:
    """
    Create an attempt, or return the user's open attempt for the test.

    Args:
        db: Database session
        user: Authenticated user
        test_id: Catalog test to attempt

    Returns:
        Tuple of (attempt, created). created is False when an open attempt
        already existed.

    Raises:
        NotFoundError: If the test does not exist or is inactive
        ForbiddenError: If the user holds no successful purchase for the test
        ConflictError: If a concurrent create won and its row is not visible
    """
    test = get_active_test(db, test_id)

    if not has_successful_purchase(db, user.id, test.id):
        raise ForbiddenError(
            ErrorMessages.TEST_NOT_PURCHASED,
            context={"user_id": user.id, "test_id": test.id},
        )

    existing = _find_open_attempt(db, user.id, test.id)
    if existing is not None:
        return existing, False

    attempt = Attempt(
        user_id=user.id,
        test_id=test.id,
        answers={},
        marked_questions=[],
        current_question_index=0,
        visited_questions=[],
    )
    db.add(attempt)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(
            f"Concurrent attempt creation detected for user {user.id} "
            f"on test {test.id}; returning the existing open attempt"
        )
        existing = _find_open_attempt(db, user.id, test.id)
        if existing is None:
            raise ConflictError(
                ErrorMessages.ATTEMPT_CREATION_CONFLICT,
                context={"user_id": user.id, "test_id": test.id},
            )
        return existing, False

    db.refresh(attempt)
    logger.info(f"Created attempt {attempt.id} for user {user.id} on test {test.id}")
    return attempt, True


def start_attempt(db: Session, user: User, attempt_id: int) -> Attempt:
    """
    Stamp started_at on first call. Later calls return the original value.

    Raises:
        NotFoundError: If the attempt is absent or not owned by user
        InvalidStateError: If the attempt is already submitted
    """
    attempt = get_owned_attempt(db, user, attempt_id, for_update=True)

    if attempt.submitted_at is not None:
        db.rollback()
        raise InvalidStateError(
            ErrorMessages.CANNOT_START_SUBMITTED_ATTEMPT,
            context={"attempt_id": attempt.id},
        )

    if attempt.started_at is None:
        attempt.started_at = utc_now()
        db.commit()
        db.refresh(attempt)
        logger.info(f"Attempt {attempt.id} started")
    else:
        db.rollback()

    return attempt


def _validate_keys(keys: List[str], known_keys: Dict[str, "Question"]) -> None:
    unknown = {key for key in keys if key not in known_keys}
    if unknown:
        raise DomainValidationError(ErrorMessages.unknown_question_keys(unknown))


def _validate_answers(
    answers: Dict[str, int], questions_by_key: Dict[str, "Question"]
) -> None:
    _validate_keys(list(answers.keys()), questions_by_key)
    for key, selected in answers.items():
        option_count = len(questions_by_key[key].options)
        if (
            isinstance(selected, bool)
            or not isinstance(selected, int)
            or not 0 <= selected < option_count
        ):
            raise DomainValidationError(
                ErrorMessages.invalid_answer_index(key, option_count)
            )


def _clamp_index(index: int, question_count: int) -> int:
    if question_count == 0:
        return 0
    return max(0, min(index, question_count - 1))


def _union_preserving_order(current: List[str], extra: List[str]) -> List[str]:
    merged = list(current)
    for key in extra:
        if key not in merged:
            merged.append(key)
    return merged


def update_attempt(
    db: Session, user: User, attempt_id: int, changes: ProgressUpdate
) -> Attempt:
    """
    Save progress on an open attempt.

    - answers replaces the stored mapping wholesale
    - marked_questions replaces the stored list
    - current_question_index is clamped to the test's bounds and the question
      at that position is recorded as visited
    - visited_questions is merged into the stored list (it never shrinks)

    Raises:
        NotFoundError: If the attempt is absent or not owned by user
        InvalidStateError: If the attempt is submitted, whatever the fields
        DomainValidationError: If a key is not a question of the test or an
            answer is not a valid option index
    """
    attempt = get_owned_attempt(db, user, attempt_id, for_update=True)

    if attempt.submitted_at is not None:
        db.rollback()
        raise InvalidStateError(
            ErrorMessages.CANNOT_UPDATE_SUBMITTED_ATTEMPT,
            context={"attempt_id": attempt.id},
        )

    questions = attempt.test.questions
    questions_by_key = {question.key: question for question in questions}

    try:
        if changes.answers is not None:
            _validate_answers(changes.answers, questions_by_key)
        if changes.marked_questions is not None:
            _validate_keys(changes.marked_questions, questions_by_key)
        if changes.visited_questions is not None:
            _validate_keys(changes.visited_questions, questions_by_key)
    except DomainValidationError:
        db.rollback()
        raise

    # JSON columns are replaced with new objects so changes are flushed
    if changes.answers is not None:
        attempt.answers = dict(changes.answers)

    if changes.marked_questions is not None:
        attempt.marked_questions = _union_preserving_order(
            [], changes.marked_questions
        )

    visited = list(attempt.visited_questions or [])

    if changes.current_question_index is not None:
        index = _clamp_index(changes.current_question_index, len(questions))
        attempt.current_question_index = index
        if questions:
            visited = _union_preserving_order(visited, [questions[index].key])

    if changes.visited_questions is not None:
        visited = _union_preserving_order(visited, changes.visited_questions)

    attempt.visited_questions = visited

    db.commit()
    db.refresh(attempt)
    return attempt


def submit_attempt(db: Session, user: User, attempt_id: int) -> Attempt:
    """
    Score and finalize an attempt. Terminal.

    Raises:
        NotFoundError: If the attempt is absent or not owned by user
        InvalidStateError: If the attempt was already submitted, including by
            a concurrent request that finalized it first
    """
    attempt = get_owned_attempt(db, user, attempt_id)

    if attempt.submitted_at is not None:
        raise InvalidStateError(
            ErrorMessages.ATTEMPT_ALREADY_SUBMITTED,
            context={"attempt_id": attempt.id},
        )

    result = score_answers(attempt.test.questions, attempt.answers or {})
    submitted_at = utc_now()

    updated = (
        db.query(Attempt)
        .filter(Attempt.id == attempt.id, Attempt.submitted_at.is_(None))
        .update(
            {
                Attempt.score: result.score,
                Attempt.percentage: result.percentage,
                Attempt.submitted_at: submitted_at,
            },
            synchronize_session=False,
        )
    )
    if updated == 0:
        db.rollback()
        raise InvalidStateError(
            ErrorMessages.ATTEMPT_ALREADY_SUBMITTED,
            context={"attempt_id": attempt.id},
        )

    db.commit()
    db.refresh(attempt)
    logger.info(
        f"Attempt {attempt.id} submitted: score={result.score}/"
        f"{result.total_questions} ({result.percentage}%)"
    )
    return attempt


def get_attempt_detail(db: Session, user: User, attempt_id: int) -> AttemptDetail:
    """
    Build the question view for an attempt.

    Each question carries its key, text, options and the stored selection.
    The answer key is never included, before or after submission.

    Raises:
        NotFoundError: If the attempt is absent or not owned by user
    """
    attempt = get_owned_attempt(db, user, attempt_id)
    answers = attempt.answers or {}
    questions = [
        AttemptQuestionView(
            key=question.key,
            position=question.position,
            text=question.text,
            options=list(question.options),
            selected_answer=answers.get(question.key),
        )
        for question in attempt.test.questions
    ]
    return AttemptDetail(attempt=attempt, test=attempt.test, questions=questions)


def list_user_attempts(db: Session, user: User) -> List[Dict[str, Any]]:
    """
    Summaries of the user's attempts, most recent submission first.

    Open attempts (no submission time) are listed after submitted ones.
    """
    attempts = (
        db.query(Attempt)
        .filter(Attempt.user_id == user.id)
        .order_by(Attempt.created_at.desc(), Attempt.id.desc())
        .all()
    )

    def sort_key(attempt: Attempt) -> Tuple[int, float]:
        submitted_at = ensure_timezone_aware(attempt.submitted_at)
        if submitted_at is None:
            return (1, 0.0)
        return (0, -submitted_at.timestamp())

    return [
        {
            "attempt_id": attempt.id,
            "test_id": attempt.test_id,
            "test_title": attempt.test.title,
            "started_at": attempt.started_at,
            "submitted_at": attempt.submitted_at,
            "score": attempt.score,
            "percentage": attempt.percentage,
            "total_questions": len(attempt.test.questions),
        }
        for attempt in sorted(attempts, key=sort_key)
    ]


def list_recent_attempts(db: Session, limit: int = 100) -> List[Dict[str, Any]]:
    """Latest attempts across all users, for the admin dashboard."""
    rows = (
        db.query(Attempt, User, MockTest)
        .join(User, Attempt.user_id == User.id)
        .join(MockTest, Attempt.test_id == MockTest.id)
        .order_by(Attempt.created_at.desc(), Attempt.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": attempt.id,
            "user_id": user.id,
            "user_name": user.name,
            "user_email": user.email,
            "test_id": test.id,
            "test_title": test.title,
            "started_at": attempt.started_at,
            "submitted_at": attempt.submitted_at,
            "score": attempt.score,
            "percentage": attempt.percentage,
        }
        for attempt, user, test in rows
    ]
