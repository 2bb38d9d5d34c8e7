"""Pytest configuration and shared fixtures.

This module provides fixtures for testing the story reader, including an
in-memory database, demo accounts, the "Sun and Moon" storybook, and
controllable clocks.
"""

from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest

from ilaw.storyreader.config import reset_config
from ilaw.storyreader.db.models import Book, User
from ilaw.storyreader.db.schemas import (
    ApprovalStatus,
    BookCreate,
    PageCreate,
    UserCreate,
    UserRole,
)
from ilaw.storyreader.db.sqlite import Database, reset_db
from ilaw.storyreader.seed import SUN_AND_MOON_TITLE, sun_and_moon_pages


class FakeClock:
    """Aware UTC clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeMonotonic:
    """Monotonic seconds that only move when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def db() -> Generator[Database, None, None]:
    """Create an in-memory test database."""
    reset_db()
    reset_config()

    database = Database(":memory:")
    database.create_tables()
    yield database

    reset_db()
    reset_config()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


# ============================================================================
# Sample Data Fixtures
# ============================================================================


def make_user(db: Database, username: str, role: UserRole, status=ApprovalStatus.APPROVED) -> User:
    return db.create_user(
        UserCreate(
            username=username,
            email=f"{username}@example.com",
            first_name=username.title(),
            last_name="Tester",
            role=role,
            approval_status=status,
        )
    )


@pytest.fixture
def student(db: Database) -> User:
    return make_user(db, "juan", UserRole.STUDENT)


@pytest.fixture
def other_student(db: Database) -> User:
    return make_user(db, "ana", UserRole.STUDENT)


@pytest.fixture
def pending_student(db: Database) -> User:
    return make_user(db, "pedro", UserRole.STUDENT, ApprovalStatus.PENDING)


@pytest.fixture
def teacher(db: Database) -> User:
    return make_user(db, "maria", UserRole.TEACHER)


@pytest.fixture
def admin(db: Database) -> User:
    return make_user(db, "admin", UserRole.ADMIN)


@pytest.fixture
def sun_and_moon(db: Database) -> Book:
    """The eight-page storybook with one question per page."""
    return db.create_book(
        BookCreate(
            title=SUN_AND_MOON_TITLE,
            description="How Apolaqui and Mayari came to share the sky.",
        ),
        pages=sun_and_moon_pages(),
    )


@pytest.fixture
def picture_book(db: Database) -> Book:
    """A short book without questions."""
    return db.create_book(
        BookCreate(title="Si Pagong at si Matsing", description="A tale of the turtle and the monkey."),
        pages=[
            PageCreate(page_number=n, content=f"Page {n} of the story.") for n in range(1, 4)
        ],
    )
