"""
Pydantic schemas for the test catalog and admin test management.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from mockprep.models.models import TestCategory


class HighlightSchema(BaseModel):
    """Feature highlight shown on a test's landing page."""

    title: str = Field(..., min_length=1, max_length=120)
    description: str = Field(..., min_length=1, max_length=200)
    icon: Optional[str] = Field(None, max_length=10)


class QuestionCreate(BaseModel):
    """Question content submitted by an admin.

    Option count (2-6) and the answer index are checked by the catalog
    service so malformed content is reported as a 400 with the question
    position.
    """

    text: str = Field(..., min_length=1, description="Question text")
    options: List[str] = Field(..., description="Answer options in display order")
    correct_answer: int = Field(..., description="0-based index of the correct option")

    @field_validator("options")
    @classmethod
    def validate_options(cls, v: List[str]) -> List[str]:
        """Options must be non-blank strings."""
        cleaned = [option.strip() for option in v]
        if any(not option for option in cleaned):
            raise ValueError("Options cannot be empty")
        return cleaned


class TestCreate(BaseModel):
    """Schema for creating a catalog test."""

    __test__ = False

    test_code: Optional[str] = Field(
        None, max_length=50, description="Optional admin-facing identifier"
    )
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    category: TestCategory = Field(default=TestCategory.POLITY)
    duration_minutes: int = Field(..., ge=1, le=600)
    price: Decimal = Field(default=Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    highlights: Optional[List[HighlightSchema]] = None
    instructions: Optional[List[str]] = None
    questions: List[QuestionCreate] = Field(..., description="Ordered questions")


class TestUpdate(BaseModel):
    """Schema for a partial test update. Omitted fields are left unchanged."""

    __test__ = False

    test_code: Optional[str] = Field(None, max_length=50)
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    category: Optional[TestCategory] = None
    duration_minutes: Optional[int] = Field(None, ge=1, le=600)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    highlights: Optional[List[HighlightSchema]] = None
    instructions: Optional[List[str]] = None
    questions: Optional[List[QuestionCreate]] = None
    is_active: Optional[bool] = None


class TestSummaryResponse(BaseModel):
    """Catalog listing entry."""

    __test__ = False

    id: int = Field(..., description="Test ID")
    test_code: Optional[str] = None
    title: str
    description: Optional[str] = None
    category: TestCategory
    duration_minutes: int
    price: float
    total_questions: int
    is_purchased: bool = Field(
        False, description="Whether the requesting user owns this test"
    )


class TestListResponse(BaseModel):
    __test__ = False

    count: int
    tests: List[TestSummaryResponse]


class TestDetail(TestSummaryResponse):
    """Catalog detail with landing page content."""

    highlights: List[HighlightSchema]
    instructions: List[str]


class PublicQuestionResponse(BaseModel):
    """Question as shown before an attempt. Carries no answer key."""

    key: str = Field(..., description="Stable question key used in attempt answers")
    position: int
    text: str
    options: List[str]


class TestDetailResponse(BaseModel):
    __test__ = False

    test: TestDetail
    questions: List[PublicQuestionResponse]


class AdminQuestionResponse(BaseModel):
    id: int
    position: int
    text: str
    options: List[str]
    correct_answer: int

    class Config:
        """Pydantic configuration."""

        from_attributes = True


class AdminTestResponse(BaseModel):
    """Full test record for admins, including answer keys."""

    id: int
    test_code: Optional[str] = None
    title: str
    description: Optional[str] = None
    category: TestCategory
    duration_minutes: int
    price: float
    is_active: bool
    highlights: Optional[List[HighlightSchema]] = None
    instructions: Optional[List[str]] = None
    created_at: datetime
    updated_at: datetime
    questions: List[AdminQuestionResponse]

    class Config:
        """Pydantic configuration."""

        from_attributes = True
