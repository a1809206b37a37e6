"""
Attempt endpoints: create, resume, save progress, submit and leaderboard.
"""
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from mockprep.models import get_db, User
from mockprep.schemas.attempts import (
    AttemptDetailResponse,
    AttemptListResponse,
    AttemptQuestionResponse,
    AttemptResponse,
    AttemptSummaryResponse,
    AttemptTestInfo,
    AttemptUpdateRequest,
    CreateAttemptRequest,
    CreateAttemptResponse,
    SubmitAttemptResponse,
)
from mockprep.schemas.performance import LeaderboardEntryResponse, LeaderboardResponse
from mockprep.core import settings
from mockprep.core.attempts import (
    ProgressUpdate,
    create_attempt,
    get_attempt_detail,
    list_user_attempts,
    start_attempt,
    submit_attempt,
    update_attempt,
)
from mockprep.core.auth import get_current_user
from mockprep.core.leaderboard import build_leaderboard

router = APIRouter()


@router.post(
    "",
    response_model=CreateAttemptResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_attempt_endpoint(
    request: CreateAttemptRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create an attempt for a purchased test.

    If the user already has an open attempt for the test it is returned
    unchanged with created=False and status 200.

    Raises:
        NotFoundError: Missing or inactive test (404)
        ForbiddenError: Test not purchased (403)
    """
    attempt, created = create_attempt(db, current_user, request.test_id)
    if not created:
        response.status_code = status.HTTP_200_OK
    return CreateAttemptResponse(
        attempt=AttemptResponse.model_validate(attempt), created=created
    )


@router.get("", response_model=AttemptListResponse)
def list_attempts(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the user's attempts, most recent submission first."""
    attempts = [
        AttemptSummaryResponse(**item) for item in list_user_attempts(db, current_user)
    ]
    return AttemptListResponse(count=len(attempts), attempts=attempts)


@router.get("/leaderboard", response_model=LeaderboardResponse)
def get_leaderboard(
    limit: int = Query(
        settings.LEADERBOARD_DEFAULT_LIMIT,
        ge=1,
        le=100,
        description="Number of top performers to return",
    ),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Rank users by best percentage, then average percentage.

    The caller's own entry is always included as user_stats.
    """
    board = build_leaderboard(db, current_user, limit=limit)
    return LeaderboardResponse(
        top_performers=[
            LeaderboardEntryResponse(**entry.to_dict()) for entry in board.top_performers
        ],
        user_stats=LeaderboardEntryResponse(**board.user_stats.to_dict()),
        total_users=board.total_users,
    )


@router.get("/{attempt_id}", response_model=AttemptDetailResponse)
def get_attempt(
    attempt_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Get an attempt with its questions and the user's selections.

    Correct answers are not included, before or after submission.

    Raises:
        NotFoundError: Attempt missing or owned by another user (404)
    """
    detail = get_attempt_detail(db, current_user, attempt_id)
    return AttemptDetailResponse(
        attempt=AttemptResponse.model_validate(detail.attempt),
        test=AttemptTestInfo(
            id=detail.test.id,
            title=detail.test.title,
            category=detail.test.category,
            duration_minutes=detail.test.duration_minutes,
            total_questions=len(detail.questions),
        ),
        instructions=detail.instructions,
        questions=[
            AttemptQuestionResponse(
                key=q.key,
                position=q.position,
                text=q.text,
                options=q.options,
                selected_answer=q.selected_answer,
            )
            for q in detail.questions
        ],
    )


@router.put("/{attempt_id}", response_model=AttemptResponse)
def update_attempt_endpoint(
    attempt_id: int,
    request: AttemptUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Save progress on an open attempt.

    Raises:
        NotFoundError: Attempt missing or owned by another user (404)
        InvalidStateError: Attempt already submitted (409)
        DomainValidationError: Unknown question key or invalid option (400)
    """
    changes = ProgressUpdate(
        answers=request.answers,
        marked_questions=request.marked_questions,
        current_question_index=request.current_question_index,
        visited_questions=request.visited_questions,
    )
    attempt = update_attempt(db, current_user, attempt_id, changes)
    return attempt


@router.post("/{attempt_id}/start", response_model=AttemptResponse)
def start_attempt_endpoint(
    attempt_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Start the attempt timer. Repeated calls keep the first start time.

    Raises:
        NotFoundError: Attempt missing or owned by another user (404)
        InvalidStateError: Attempt already submitted (409)
    """
    return start_attempt(db, current_user, attempt_id)


@router.post("/{attempt_id}/submit", response_model=SubmitAttemptResponse)
def submit_attempt_endpoint(
    attempt_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Score and finalize the attempt.

    Raises:
        NotFoundError: Attempt missing or owned by another user (404)
        InvalidStateError: Attempt already submitted (409)
    """
    attempt = submit_attempt(db, current_user, attempt_id)
    return SubmitAttemptResponse(
        attempt=AttemptResponse.model_validate(attempt),
        total_questions=len(attempt.test.questions),
    )
