"""
Pydantic schemas for request/response validation.
"""
from .auth import (
    UserRegister,
    UserLogin,
    Token,
    UserResponse,
)
from .catalog import (
    HighlightSchema,
    QuestionCreate,
    TestCreate,
    TestUpdate,
    TestSummaryResponse,
    TestListResponse,
    TestDetail,
    TestDetailResponse,
    PublicQuestionResponse,
    AdminQuestionResponse,
    AdminTestResponse,
)
from .purchases import (
    CreateOrderRequest,
    PurchaseRequest,
    PurchaseResponse,
    OrderResponse,
    VerifyPaymentRequest,
    VerificationResponse,
    WebhookPayload,
    PurchasedTestResponse,
    PurchaseListResponse,
    PurchaseCheckResponse,
)
from .attempts import (
    CreateAttemptRequest,
    AttemptUpdateRequest,
    AttemptResponse,
    CreateAttemptResponse,
    SubmitAttemptResponse,
    AttemptQuestionResponse,
    AttemptTestInfo,
    AttemptDetailResponse,
    AttemptSummaryResponse,
    AttemptListResponse,
)
from .performance import (
    LeaderboardEntryResponse,
    LeaderboardResponse,
    PerformanceOverview,
    CategoryPerformance,
    RecentAttempt,
    PerformanceResponse,
    AdminStatsResponse,
    AdminAttemptResponse,
)

__all__ = [
    "UserRegister",
    "UserLogin",
    "Token",
    "UserResponse",
    "HighlightSchema",
    "QuestionCreate",
    "TestCreate",
    "TestUpdate",
    "TestSummaryResponse",
    "TestListResponse",
    "TestDetail",
    "TestDetailResponse",
    "PublicQuestionResponse",
    "AdminQuestionResponse",
    "AdminTestResponse",
    "CreateOrderRequest",
    "PurchaseRequest",
    "PurchaseResponse",
    "OrderResponse",
    "VerifyPaymentRequest",
    "VerificationResponse",
    "WebhookPayload",
    "PurchasedTestResponse",
    "PurchaseListResponse",
    "PurchaseCheckResponse",
    "CreateAttemptRequest",
    "AttemptUpdateRequest",
    "AttemptResponse",
    "CreateAttemptResponse",
    "SubmitAttemptResponse",
    "AttemptQuestionResponse",
    "AttemptTestInfo",
    "AttemptDetailResponse",
    "AttemptSummaryResponse",
    "AttemptListResponse",
    "LeaderboardEntryResponse",
    "LeaderboardResponse",
    "PerformanceOverview",
    "CategoryPerformance",
    "RecentAttempt",
    "PerformanceResponse",
    "AdminStatsResponse",
    "AdminAttemptResponse",
]
