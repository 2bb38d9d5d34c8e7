"""SQLite database operations.

Handles database connection, session management, and CRUD operations
for accounts and the book library.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, func, select
from sqlalchemy.orm import Session, selectinload, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base, Book, Page, Question, User
from .schemas import BookCreate, PageCreate, UserCreate


class BookNotFoundError(Exception):
    """Raised when a book id does not exist."""

    pass


class UserNotFoundError(Exception):
    """Raised when a user id does not exist."""

    pass


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     STORYREADER_DB_PATH via the app config.
        """
        if db_path is None:
            from ..config import get_config

            db_path = str(get_config().db_path)

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # This ensures all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        event.listen(self.engine, "connect", _enable_foreign_keys)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        # Import settings models to register them with Base
        from ..settings.models import SystemSetting  # noqa: F401

        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        from ..settings.models import SystemSetting  # noqa: F401

        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # User Operations
    # ========================================================================

    def create_user(self, user: UserCreate, session: Optional[Session] = None) -> User:
        """Create a new user account."""

        def _create(s: Session) -> User:
            db_user = User(
                username=user.username,
                email=user.email,
                first_name=user.first_name,
                last_name=user.last_name,
                role=user.role.value,
                approval_status=user.approval_status.value,
                grade_level=user.grade_level.value if user.grade_level else None,
            )
            s.add(db_user)
            s.flush()
            return db_user

        if session:
            return _create(session)
        else:
            with self.get_session() as s:
                db_user = _create(s)
                s.expunge(db_user)
                return db_user

    def get_user(self, user_id: int, session: Optional[Session] = None) -> Optional[User]:
        """Get a user by ID."""

        def _get(s: Session) -> Optional[User]:
            return s.get(User, user_id)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                user = _get(s)
                if user:
                    s.expunge(user)
                return user

    def get_user_by_username(
        self, username: str, session: Optional[Session] = None
    ) -> Optional[User]:
        """Get a user by username."""

        def _get(s: Session) -> Optional[User]:
            stmt = select(User).where(User.username == username)
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                user = _get(s)
                if user:
                    s.expunge(user)
                return user

    def get_users(
        self, role: Optional[str] = None, session: Optional[Session] = None
    ) -> list[User]:
        """Get all users, optionally filtered by role."""

        def _get(s: Session) -> list[User]:
            stmt = select(User).order_by(User.id)
            if role:
                stmt = stmt.where(User.role == role)
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                users = _get(s)
                for user in users:
                    s.expunge(user)
                return users

    def delete_user(self, user_id: int, session: Optional[Session] = None) -> bool:
        """Delete a user together with their progress and reading sessions."""

        def _delete(s: Session) -> bool:
            user = s.get(User, user_id)
            if not user:
                return False
            s.delete(user)
            return True

        if session:
            return _delete(session)
        else:
            with self.get_session() as s:
                return _delete(s)

    # ========================================================================
    # Book Operations
    # ========================================================================

    def create_book(
        self,
        book: BookCreate,
        pages: Optional[list[PageCreate]] = None,
        session: Optional[Session] = None,
    ) -> Book:
        """Create a new book, optionally with its pages and questions."""

        def _create(s: Session) -> Book:
            db_book = Book(
                title=book.title,
                description=book.description,
                type=book.type.value,
                subject=book.subject,
                grade=book.grade,
                cover_image=book.cover_image,
                music_url=book.music_url,
            )
            s.add(db_book)
            s.flush()

            for page in pages or []:
                self._add_page(s, db_book.id, page)

            return db_book

        if session:
            return _create(session)
        else:
            with self.get_session() as s:
                db_book = _create(s)
                s.expunge(db_book)
                return db_book

    def _add_page(self, s: Session, book_id: int, page: PageCreate) -> Page:
        db_page = Page(
            book_id=book_id,
            page_number=page.page_number,
            title=page.title,
            content=page.content,
            image_url=page.image_url,
        )
        s.add(db_page)
        s.flush()

        for question in page.questions:
            s.add(
                Question(
                    page_id=db_page.id,
                    question_text=question.question_text,
                    answer_type=question.answer_type.value,
                    correct_answer=question.correct_answer,
                    options=question.options,
                )
            )
        s.flush()
        return db_page

    def add_page(
        self, book_id: int, page: PageCreate, session: Optional[Session] = None
    ) -> Page:
        """Append a page (with its questions) to an existing book."""

        def _add(s: Session) -> Page:
            return self._add_page(s, book_id, page)

        if session:
            return _add(session)
        else:
            with self.get_session() as s:
                db_page = _add(s)
                s.expunge(db_page)
                return db_page

    def get_book(self, book_id: int, session: Optional[Session] = None) -> Optional[Book]:
        """Get a book by ID."""

        def _get(s: Session) -> Optional[Book]:
            return s.get(Book, book_id)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                book = _get(s)
                if book:
                    s.expunge(book)
                return book

    def get_book_by_title(
        self, title: str, session: Optional[Session] = None
    ) -> Optional[Book]:
        """Get a book by exact title."""

        def _get(s: Session) -> Optional[Book]:
            stmt = select(Book).where(Book.title == title).limit(1)
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                book = _get(s)
                if book:
                    s.expunge(book)
                return book

    def get_all_books(
        self, book_type: Optional[str] = None, session: Optional[Session] = None
    ) -> list[Book]:
        """Get all books, optionally filtered by type."""

        def _get(s: Session) -> list[Book]:
            stmt = select(Book).order_by(Book.title)
            if book_type:
                stmt = stmt.where(Book.type == book_type)
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                books = _get(s)
                for book in books:
                    s.expunge(book)
                return books

    def get_pages_for_book(
        self, book_id: int, session: Optional[Session] = None
    ) -> list[Page]:
        """Get a book's pages in reading order, with questions loaded."""

        def _get(s: Session) -> list[Page]:
            stmt = (
                select(Page)
                .where(Page.book_id == book_id)
                .options(selectinload(Page.questions))
                .order_by(Page.page_number)
            )
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                pages = _get(s)
                for page in pages:
                    for question in page.questions:
                        s.expunge(question)
                    s.expunge(page)
                return pages

    def count_pages(self, book_id: int, session: Optional[Session] = None) -> int:
        """Count the pages of a book."""

        def _count(s: Session) -> int:
            stmt = select(func.count()).select_from(Page).where(Page.book_id == book_id)
            return s.execute(stmt).scalar() or 0

        if session:
            return _count(session)
        else:
            with self.get_session() as s:
                return _count(s)


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None
