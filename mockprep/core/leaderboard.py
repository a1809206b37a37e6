"""
Leaderboard and performance aggregation.

Read-only statistics over submitted attempts (submitted_at and score set).
Nothing here writes to the database.

Leaderboard ordering:
    1. best percentage, descending
    2. average percentage (round half up), descending
    Ties beyond that keep first-seen order, where attempts are scanned by
    percentage then score descending. Rank is the 1-based position.

A user's best score is the score of the attempt that set the best
percentage, not an independent maximum.
"""
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from mockprep.core.scoring import average_rounded
from mockprep.models import Attempt, MockTest, PaymentStatus, Purchase, User

logger = logging.getLogger(__name__)

RECENT_ATTEMPTS_LIMIT = 5


@dataclass
class LeaderboardEntry:
    user_id: int
    user_name: str
    total_attempts: int = 0
    best_percentage: int = 0
    best_score: int = 0
    average_percentage: int = 0
    rank: Optional[int] = None
    _percentages: List[int] = field(default_factory=list, repr=False)

    def record(self, percentage: int, score: int) -> None:
        if self.total_attempts == 0 or percentage > self.best_percentage:
            self.best_percentage = percentage
            self.best_score = score
        self.total_attempts += 1
        self._percentages.append(percentage)

    def finalize(self) -> None:
        self.average_percentage = average_rounded(self._percentages)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("_percentages")
        return data


@dataclass
class Leaderboard:
    top_performers: List[LeaderboardEntry]
    user_stats: LeaderboardEntry
    total_users: int


def _submitted_attempts_query(db: Session):
    return db.query(Attempt).filter(
        Attempt.submitted_at.isnot(None), Attempt.score.isnot(None)
    )


def build_leaderboard(db: Session, user: User, limit: int = 10) -> Leaderboard:
    """
    Rank every user with at least one submitted attempt.

    Args:
        db: Database session
        user: Requesting user; their entry is returned even outside the top
            ``limit``, or synthesized with zero values and rank None when they
            have no submitted attempts
        limit: Size of the top performers window

    Returns:
        Leaderboard with top performers, the caller's entry and user count
    """
    rows = (
        _submitted_attempts_query(db)
        .join(User, Attempt.user_id == User.id)
        .with_entities(Attempt.user_id, User.name, Attempt.percentage, Attempt.score)
        .order_by(Attempt.percentage.desc(), Attempt.score.desc(), Attempt.id.asc())
        .all()
    )

    entries: Dict[int, LeaderboardEntry] = {}
    for row in rows:
        entry = entries.get(row.user_id)
        if entry is None:
            entry = LeaderboardEntry(
                user_id=row.user_id, user_name=row.name or "Anonymous"
            )
            entries[row.user_id] = entry
        entry.record(row.percentage or 0, row.score or 0)

    ranked = list(entries.values())
    for entry in ranked:
        entry.finalize()
    # sort is stable, so equal keys keep first-seen order
    ranked.sort(key=lambda e: (-e.best_percentage, -e.average_percentage))
    for position, entry in enumerate(ranked, start=1):
        entry.rank = position

    own_entry = entries.get(user.id)
    if own_entry is None:
        own_entry = LeaderboardEntry(user_id=user.id, user_name=user.name or "You")
        own_entry.finalize()

    return Leaderboard(
        top_performers=ranked[:limit],
        user_stats=own_entry,
        total_users=len(ranked),
    )


def build_performance(db: Session, user: User) -> Dict[str, Any]:
    """
    Summarize one user's results.

    Returns:
        Dict with ``overview`` (purchased tests, submitted attempts, average
        score and percentage), ``category_performance`` (per category attempt
        count and averages) and ``recent_attempts`` (latest five submissions)
    """
    attempts = (
        _submitted_attempts_query(db)
        .filter(Attempt.user_id == user.id)
        .join(MockTest, Attempt.test_id == MockTest.id)
        .with_entities(
            MockTest.title,
            MockTest.category,
            Attempt.score,
            Attempt.percentage,
            Attempt.submitted_at,
        )
        .order_by(Attempt.submitted_at.desc(), Attempt.id.desc())
        .all()
    )

    total_purchased = (
        db.query(func.count(Purchase.id))
        .filter(
            Purchase.user_id == user.id,
            Purchase.payment_status == PaymentStatus.SUCCESS,
        )
        .scalar()
    ) or 0

    by_category: Dict[str, Dict[str, List[int]]] = {}
    for row in attempts:
        category = row.category.value if row.category is not None else "other"
        stats = by_category.setdefault(category, {"scores": [], "percentages": []})
        stats["scores"].append(row.score or 0)
        stats["percentages"].append(row.percentage or 0)

    category_performance = [
        {
            "category": category,
            "attempts": len(stats["scores"]),
            "average_score": average_rounded(stats["scores"]),
            "average_percentage": average_rounded(stats["percentages"]),
        }
        for category, stats in sorted(by_category.items())
    ]

    recent_attempts = [
        {
            "test_title": row.title,
            "score": row.score,
            "percentage": row.percentage,
            "submitted_at": row.submitted_at,
        }
        for row in attempts[:RECENT_ATTEMPTS_LIMIT]
    ]

    return {
        "overview": {
            "total_purchased_tests": total_purchased,
            "total_attempts": len(attempts),
            "average_score": average_rounded([row.score or 0 for row in attempts]),
            "average_percentage": average_rounded(
                [row.percentage or 0 for row in attempts]
            ),
        },
        "category_performance": category_performance,
        "recent_attempts": recent_attempts,
    }


def build_admin_stats(db: Session) -> Dict[str, int]:
    """Platform-wide counts for the admin dashboard."""
    return {
        "total_tests": db.query(func.count(MockTest.id)).scalar() or 0,
        "active_tests": db.query(func.count(MockTest.id))
        .filter(MockTest.is_active.is_(True))
        .scalar()
        or 0,
        "total_attempts": db.query(func.count(Attempt.id)).scalar() or 0,
        "submitted_attempts": db.query(func.count(Attempt.id))
        .filter(Attempt.submitted_at.isnot(None))
        .scalar()
        or 0,
        "total_users": db.query(func.count(User.id)).scalar() or 0,
        "total_purchases": db.query(func.count(Purchase.id))
        .filter(Purchase.payment_status == PaymentStatus.SUCCESS)
        .scalar()
        or 0,
    }
