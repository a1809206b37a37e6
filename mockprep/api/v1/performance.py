"""
User performance summary endpoint.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from mockprep.models import get_db, User
from mockprep.schemas.performance import PerformanceResponse
from mockprep.core.auth import get_current_user
from mockprep.core.leaderboard import build_performance

router = APIRouter()


@router.get("", response_model=PerformanceResponse)
def get_performance(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Overview, per-category averages and recent results for the caller.

    Only submitted attempts are counted.
    """
    return build_performance(db, current_user)
