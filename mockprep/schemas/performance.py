"""
Pydantic schemas for leaderboard, performance and admin statistics.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class LeaderboardEntryResponse(BaseModel):
    user_id: int
    user_name: str
    total_attempts: int
    best_percentage: int
    best_score: int = Field(
        ..., description="Score of the attempt that set best_percentage"
    )
    average_percentage: int
    rank: Optional[int] = Field(
        None, description="1-based rank; null when the user has no submitted attempts"
    )


class LeaderboardResponse(BaseModel):
    top_performers: List[LeaderboardEntryResponse]
    user_stats: LeaderboardEntryResponse
    total_users: int


class PerformanceOverview(BaseModel):
    total_purchased_tests: int
    total_attempts: int
    average_score: int
    average_percentage: int


class CategoryPerformance(BaseModel):
    category: str
    attempts: int
    average_score: int
    average_percentage: int


class RecentAttempt(BaseModel):
    test_title: str
    score: int
    percentage: int
    submitted_at: datetime


class PerformanceResponse(BaseModel):
    overview: PerformanceOverview
    category_performance: List[CategoryPerformance]
    recent_attempts: List[RecentAttempt]


class AdminStatsResponse(BaseModel):
    total_tests: int
    active_tests: int
    total_attempts: int
    submitted_attempts: int
    total_users: int
    total_purchases: int = Field(..., description="Successful purchases")


class AdminAttemptResponse(BaseModel):
    id: int
    user_id: int
    user_name: str
    user_email: str
    test_id: int
    test_title: str
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    score: Optional[int] = None
    percentage: Optional[int] = None
