"""SQLAlchemy ORM models for the platform database.

Tables:
- users: Student, teacher and admin accounts
- books: Storybooks and educational books
- pages: Ordered pages of a book
- questions: Comprehension questions attached to pages
- reading_sessions: Open/closed reading intervals per (user, book)
- progress: Cumulative completion state per (user, book)
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .schemas import ApprovalStatus, AnswerType, BookType, UserRole


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to datetimes read back without tzinfo (SQLite)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class User(Base):
    """Platform account."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.STUDENT.value, index=True)
    approval_status: Mapped[str] = mapped_column(
        String(20), default=ApprovalStatus.PENDING.value
    )
    grade_level: Mapped[Optional[str]] = mapped_column(String(2))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    # Account deletion removes the user's reading history
    progress_records: Mapped[list["Progress"]] = relationship(
        "Progress", back_populates="user", cascade="all, delete-orphan"
    )
    reading_sessions: Mapped[list["ReadingSession"]] = relationship(
        "ReadingSession", back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', role={self.role})>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Book(Base):
    """Book in the reading library."""

    __tablename__ = "books"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(20), default=BookType.STORYBOOK.value, index=True)
    subject: Mapped[Optional[str]] = mapped_column(String(100))
    grade: Mapped[Optional[str]] = mapped_column(String(10))
    cover_image: Mapped[Optional[str]] = mapped_column(Text)
    music_url: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    pages: Mapped[list["Page"]] = relationship(
        "Page",
        back_populates="book",
        cascade="all, delete-orphan",
        order_by="Page.page_number",
    )

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title='{self.title}')>"


class Page(Base):
    """A single page of a book."""

    __tablename__ = "pages"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    book_id: Mapped[int] = mapped_column(
        ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-based
    title: Mapped[Optional[str]] = mapped_column(String(500))
    content: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    book: Mapped["Book"] = relationship("Book", back_populates="pages")
    questions: Mapped[list["Question"]] = relationship(
        "Question",
        back_populates="page",
        cascade="all, delete-orphan",
        order_by="Question.id",
    )

    __table_args__ = (
        UniqueConstraint("book_id", "page_number", name="uq_page_book_number"),
    )

    def __repr__(self) -> str:
        return f"<Page(id={self.id}, book_id={self.book_id}, page_number={self.page_number})>"

    @property
    def has_questions(self) -> bool:
        return bool(self.questions)


class Question(Base):
    """Comprehension question gating a page."""

    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    page_id: Mapped[int] = mapped_column(
        ForeignKey("pages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    answer_type: Mapped[str] = mapped_column(String(20), default=AnswerType.TEXT.value)
    correct_answer: Mapped[Optional[str]] = mapped_column(Text)
    options: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    page: Mapped["Page"] = relationship("Page", back_populates="questions")

    def __repr__(self) -> str:
        return f"<Question(id={self.id}, page_id={self.page_id}, type={self.answer_type})>"


class ReadingSession(Base):
    """A single continuous interval with a book open."""

    __tablename__ = "reading_sessions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    book_id: Mapped[int] = mapped_column(
        ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    elapsed_seconds: Mapped[Optional[int]] = mapped_column(Integer)
    reaped: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped["User"] = relationship("User", back_populates="reading_sessions")

    __table_args__ = (
        # At most one open session per (user, book)
        Index(
            "uq_reading_sessions_open",
            "user_id",
            "book_id",
            unique=True,
            sqlite_where=text("end_time IS NULL"),
            postgresql_where=text("end_time IS NULL"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ReadingSession(id={self.id}, user_id={self.user_id}, "
            f"book_id={self.book_id}, open={self.is_open})>"
        )

    @property
    def is_open(self) -> bool:
        return self.end_time is None


class Progress(Base):
    """Cumulative reading state for a (user, book) pair."""

    __tablename__ = "progress"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    book_id: Mapped[int] = mapped_column(
        ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )
    current_page: Mapped[Optional[int]] = mapped_column(Integer)
    percent_complete: Mapped[int] = mapped_column(Integer, default=0)
    total_reading_time: Mapped[int] = mapped_column(Integer, default=0)  # seconds
    last_read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped["User"] = relationship("User", back_populates="progress_records")
    book: Mapped["Book"] = relationship("Book")

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_progress_user_book"),
    )

    def __repr__(self) -> str:
        return (
            f"<Progress(user_id={self.user_id}, book_id={self.book_id}, "
            f"percent={self.percent_complete}, seconds={self.total_reading_time})>"
        )
