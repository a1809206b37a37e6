"""
FastAPI authentication dependencies.
"""
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from mockprep.models import get_db, User
from .security import decode_token, verify_token_type
from .error_responses import ErrorMessages, raise_forbidden, raise_unauthorized

# HTTP Bearer token scheme
security = HTTPBearer()
# HTTP Bearer token scheme that doesn't fail on missing auth
security_optional = HTTPBearer(auto_error=False)


def _decode_and_validate_token(token: str) -> int:
    """
    Decode and validate an access token, returning the user_id.

    Raises:
        HTTPException: 401 if token is invalid, wrong type, or missing user_id
    """
    payload = decode_token(token)
    if payload is None:
        raise_unauthorized(ErrorMessages.INVALID_TOKEN)

    if not verify_token_type(payload, "access"):
        raise_unauthorized(ErrorMessages.INVALID_TOKEN_TYPE)

    user_id = payload.get("user_id")
    if user_id is None:
        raise_unauthorized(ErrorMessages.INVALID_TOKEN_PAYLOAD)

    return user_id


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Get the current authenticated user from JWT token.

    Raises:
        HTTPException: 401 if token is invalid or user not found
    """
    user_id = _decode_and_validate_token(credentials.credentials)
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise_unauthorized(ErrorMessages.USER_NOT_FOUND_AUTH)
    return user


def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_optional),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """
    Get the current authenticated user if a valid token is provided.

    Used by the public catalog endpoints, which add purchase flags for
    signed-in users. Returns None when the token is absent or unusable.
    """
    if credentials is None:
        return None

    payload = decode_token(credentials.credentials)
    if payload is None or not verify_token_type(payload, "access"):
        return None
    user_id = payload.get("user_id")
    if user_id is None:
        return None
    return db.query(User).filter(User.id == user_id).first()


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """
    Dependency for admin-only routes.

    Raises:
        HTTPException: 403 if the authenticated user is not an admin
    """
    if not current_user.is_admin:
        raise_forbidden(ErrorMessages.ADMIN_REQUIRED)
    return current_user
