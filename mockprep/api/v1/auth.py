"""
Authentication endpoints for user registration and login.
"""
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from mockprep.models import get_db, User
from mockprep.schemas.auth import UserRegister, UserLogin, Token, UserResponse
from mockprep.core.auth import get_current_user
from mockprep.core.datetime_utils import utc_now
from mockprep.core.db_error_handling import handle_db_error
from mockprep.core.error_responses import (
    ErrorMessages,
    raise_conflict,
    raise_unauthorized,
)
from mockprep.core.security import (
    hash_password,
    verify_password,
    create_access_token,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _token_response(user: User) -> dict:
    token_data = {"user_id": user.id, "email": user.email}
    return {
        "access_token": create_access_token(token_data),
        "token_type": "bearer",
        "user": user,
    }


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
def register_user(user_data: UserRegister, db: Session = Depends(get_db)):
    """
    Register a new user account.

    Args:
        user_data: User registration data
        db: Database session

    Returns:
        Access token and the created user

    Raises:
        HTTPException: 409 if email already exists
    """
    existing_user = db.query(User).filter(User.email == user_data.email).first()
    if existing_user:
        raise_conflict(ErrorMessages.EMAIL_ALREADY_REGISTERED)

    new_user = User(
        name=user_data.name,
        email=user_data.email,
        password_hash=hash_password(user_data.password),
        phone=user_data.phone,
    )

    # Unique email index catches concurrent registrations
    with handle_db_error(
        db,
        "register user",
        status_code=status.HTTP_409_CONFLICT,
        detail=ErrorMessages.EMAIL_ALREADY_REGISTERED,
        log_level=logging.WARNING,
    ):
        db.add(new_user)
        db.commit()
        db.refresh(new_user)

    logger.info(f"Registered user {new_user.id}")
    return _token_response(new_user)


@router.post("/login", response_model=Token)
def login_user(credentials: UserLogin, db: Session = Depends(get_db)):
    """
    Authenticate user and return an access token.

    Raises:
        HTTPException: 401 if credentials are invalid
    """
    user = db.query(User).filter(User.email == credentials.email).first()
    if not user or not verify_password(credentials.password, user.password_hash):  # type: ignore
        raise_unauthorized(ErrorMessages.INVALID_CREDENTIALS)

    user.last_login_at = utc_now()  # type: ignore
    db.commit()
    db.refresh(user)

    return _token_response(user)


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    """Return the authenticated user's profile."""
    return current_user
