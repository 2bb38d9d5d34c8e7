"""Database module for local SQLite storage."""

from .models import Book, Page, Progress, Question, ReadingSession, User
from .schemas import BookCreate, PageCreate, QuestionCreate, UserCreate
from .sqlite import (
    BookNotFoundError,
    Database,
    UserNotFoundError,
    get_db,
    reset_db,
)

__all__ = [
    "Book",
    "Page",
    "Progress",
    "Question",
    "ReadingSession",
    "User",
    "BookCreate",
    "PageCreate",
    "QuestionCreate",
    "UserCreate",
    "BookNotFoundError",
    "UserNotFoundError",
    "Database",
    "get_db",
    "reset_db",
]
