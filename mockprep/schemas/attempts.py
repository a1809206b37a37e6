"""
Pydantic schemas for attempt endpoints.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, StrictInt

from mockprep.models.models import TestCategory


class CreateAttemptRequest(BaseModel):
    test_id: int = Field(..., description="Purchased test to attempt")


class AttemptUpdateRequest(BaseModel):
    """Partial progress update. Omitted fields are left unchanged."""

    answers: Optional[Dict[str, StrictInt]] = Field(
        None,
        description="Complete answer mapping of question key to option index; "
        "replaces the stored answers",
    )
    marked_questions: Optional[List[str]] = Field(
        None, description="Question keys marked for review; replaces the stored list"
    )
    current_question_index: Optional[int] = Field(
        None, description="Position of the question on screen; clamped to the test"
    )
    visited_questions: Optional[List[str]] = Field(
        None, description="Question keys to add to the visited set"
    )


class AttemptResponse(BaseModel):
    """Attempt state. Score fields are null until submission."""

    id: int
    test_id: int
    answers: Dict[str, int] = Field(default_factory=dict)
    marked_questions: List[str] = Field(default_factory=list)
    current_question_index: int = 0
    visited_questions: List[str] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    score: Optional[int] = None
    percentage: Optional[int] = None
    created_at: datetime

    class Config:
        """Pydantic configuration."""

        from_attributes = True


class CreateAttemptResponse(BaseModel):
    attempt: AttemptResponse
    created: bool = Field(
        ..., description="False when the open attempt for this test was returned"
    )


class SubmitAttemptResponse(BaseModel):
    attempt: AttemptResponse
    total_questions: int


class AttemptQuestionResponse(BaseModel):
    """Question as shown during an attempt. Never carries the answer key."""

    key: str
    position: int
    text: str
    options: List[str]
    selected_answer: Optional[int] = None


class AttemptTestInfo(BaseModel):
    id: int
    title: str
    category: TestCategory
    duration_minutes: int
    total_questions: int


class AttemptDetailResponse(BaseModel):
    attempt: AttemptResponse
    test: AttemptTestInfo
    instructions: List[str]
    questions: List[AttemptQuestionResponse]


class AttemptSummaryResponse(BaseModel):
    attempt_id: int
    test_id: int
    test_title: str
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    score: Optional[int] = None
    percentage: Optional[int] = None
    total_questions: int


class AttemptListResponse(BaseModel):
    count: int
    attempts: List[AttemptSummaryResponse]
