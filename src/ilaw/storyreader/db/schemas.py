"""Pydantic schemas for data validation.

These schemas define the structure of platform records (users, books,
pages, questions) and the camelCase wire format used by the REST API.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class UserRole(str, Enum):
    """Platform account roles."""

    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class ApprovalStatus(str, Enum):
    """Account approval state."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class BookType(str, Enum):
    """Kind of book in the library."""

    STORYBOOK = "storybook"
    EDUCATIONAL = "educational"


class AnswerType(str, Enum):
    """How a question expects to be answered."""

    TEXT = "text"
    MULTIPLE_CHOICE = "multiple_choice"


class GradeLevel(str, Enum):
    """Supported grade levels."""

    K = "K"
    G1 = "1"
    G2 = "2"
    G3 = "3"
    G4 = "4"
    G5 = "5"
    G6 = "6"


class CamelModel(BaseModel):
    """Base for API models serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    @field_validator("*", mode="after")
    @classmethod
    def attach_utc(cls, value):
        # SQLite hands datetimes back without tzinfo; they are stored as UTC
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


# ============================================================================
# Record Schemas
# ============================================================================


class UserCreate(BaseModel):
    """Fields for creating a user account."""

    username: str = Field(..., min_length=3)
    email: str = Field(..., min_length=3)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    role: UserRole = UserRole.STUDENT
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    grade_level: Optional[GradeLevel] = None


class QuestionCreate(BaseModel):
    """Fields for creating a question on a page."""

    question_text: str = Field(..., min_length=5)
    answer_type: AnswerType = AnswerType.TEXT
    correct_answer: Optional[str] = None
    options: Optional[str] = Field(None, description="Newline- or comma-separated choices")

    @field_validator("options")
    @classmethod
    def options_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class PageCreate(BaseModel):
    """Fields for creating a book page."""

    page_number: int = Field(..., ge=1)
    title: Optional[str] = None
    content: str = Field(..., min_length=1)
    image_url: Optional[str] = None
    questions: list[QuestionCreate] = Field(default_factory=list)


class BookCreate(BaseModel):
    """Fields for creating a book."""

    title: str = Field(..., min_length=2)
    description: str = Field(..., min_length=10)
    type: BookType = BookType.STORYBOOK
    subject: Optional[str] = None
    grade: Optional[str] = None
    cover_image: Optional[str] = None
    music_url: Optional[str] = None


# ============================================================================
# API Request Schemas
# ============================================================================


class SessionRequest(CamelModel):
    """Body of the reading-session start/end calls."""

    book_id: int = Field(..., gt=0)


class SessionEndRequest(SessionRequest):
    """Body of the session end call; beacons carry the token in the body."""

    token: Optional[str] = None


class ProgressUpdate(CamelModel):
    """Body of a progress post."""

    book_id: int = Field(..., gt=0)
    percent_complete: float
    current_page: Optional[int] = Field(None, ge=0)
    user_id: Optional[int] = None


# ============================================================================
# API Response Schemas
# ============================================================================


class QuestionResponse(CamelModel):
    """A question as served to the reader."""

    id: int
    page_id: int
    question_text: str
    answer_type: AnswerType
    correct_answer: Optional[str] = None
    options: Optional[str] = None


class PageResponse(CamelModel):
    """A page with its questions."""

    id: int
    book_id: int
    page_number: int
    title: Optional[str] = None
    content: str
    image_url: Optional[str] = None
    questions: list[QuestionResponse] = Field(default_factory=list)


class BookResponse(CamelModel):
    """Book metadata."""

    id: int
    title: str
    description: str
    type: BookType
    subject: Optional[str] = None
    grade: Optional[str] = None
    cover_image: Optional[str] = None
    music_url: Optional[str] = None
    page_count: int = 0


class ProgressResponse(CamelModel):
    """A progress row."""

    id: int
    user_id: int
    book_id: int
    current_page: Optional[int] = None
    percent_complete: int
    total_reading_time: int
    last_read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class SessionStartResponse(CamelModel):
    """Result of opening (or re-using) a reading session."""

    success: bool = True
    message: str
    session_id: int
    start_time: datetime


class SessionEndResponse(CamelModel):
    """Result of closing a reading session."""

    success: bool
    message: str
    session_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total_seconds: Optional[int] = None


class StatsResponse(CamelModel):
    """Platform-wide reading statistics."""

    total_sessions: int
    total_reading_seconds: int
    avg_session_seconds: int
    completion_rate: int
    book_completion_rate: int
    books_completed: int
