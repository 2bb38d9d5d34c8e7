"""Reading progress tracking and statistics.

Computes completion percentages, upserts progress rows, folds session
time into cumulative reading time, and provides platform analytics.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import distinct, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db.models import Book, Progress, ReadingSession, User, utcnow
from ..db.schemas import ApprovalStatus, UserRole
from ..db.sqlite import BookNotFoundError, Database, UserNotFoundError, get_db

logger = logging.getLogger(__name__)

COMPLETE_PERCENT = 100


class InvalidProgressError(Exception):
    """Raised when a posted progress value cannot be stored."""

    pass


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def calculate_percent_complete(visited_count: int, total_pages: int) -> int:
    """Percent of a book visited, capped at 100.

    Args:
        visited_count: Number of distinct page indices visited
        total_pages: Number of pages in the book

    Returns:
        Integer percent in [0, 100]
    """
    if total_pages <= 0:
        return 0
    return min(round_half_up(visited_count / total_pages * 100), COMPLETE_PERCENT)


def clamp_percent(value: float) -> int:
    """Clamp a client-posted percent to an integer in [0, 100]."""
    if value is None or not math.isfinite(value):
        raise InvalidProgressError(f"Invalid percentComplete: {value}")
    return max(0, min(COMPLETE_PERCENT, round_half_up(value)))


def format_reading_time(seconds: int) -> str:
    """Format seconds as H:MM:SS (an hour or more) or M:SS."""
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


@dataclass
class ReadingStats:
    """Platform-wide reading statistics."""

    total_sessions: int = 0
    total_reading_seconds: int = 0
    avg_session_seconds: int = 0

    # Percentages, 0-100
    completion_rate: int = 0
    book_completion_rate: int = 0

    books_completed: int = 0


class ProgressTracker:
    """Tracks and reconciles per-(user, book) reading progress."""

    def __init__(
        self,
        db: Optional[Database] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize progress tracker.

        Args:
            db: Database instance
            clock: Returns the current aware UTC time (injectable for tests)
        """
        self.db = db or get_db()
        self._clock = clock or utcnow

    def _now(self) -> datetime:
        return self._clock()

    def _find(self, s: Session, user_id: int, book_id: int) -> Optional[Progress]:
        stmt = select(Progress).where(
            Progress.user_id == user_id, Progress.book_id == book_id
        )
        return s.execute(stmt).scalar_one_or_none()

    def _check_refs(self, s: Session, user_id: int, book_id: int) -> None:
        if s.get(Book, book_id) is None:
            raise BookNotFoundError(f"Book not found: {book_id}")
        if s.get(User, user_id) is None:
            raise UserNotFoundError(f"User not found: {user_id}")

    def _run(self, apply: Callable[[Session], tuple[Progress, bool]]) -> tuple[Progress, bool]:
        with self.db.get_session() as s:
            progress, created = apply(s)
            s.flush()
            s.expunge(progress)
            return progress, created

    def _upsert(self, apply: Callable[[Session], tuple[Progress, bool]]) -> tuple[Progress, bool]:
        """Run an upsert, retrying once if a concurrent insert won the race."""
        try:
            return self._run(apply)
        except IntegrityError:
            logger.info("Concurrent progress insert detected, retrying as update")
            return self._run(apply)

    def get_progress(self, user_id: int, book_id: int) -> Optional[Progress]:
        """Get the progress row for a (user, book) pair, if any."""
        with self.db.get_session() as s:
            progress = self._find(s, user_id, book_id)
            if progress:
                s.expunge(progress)
            return progress

    def record_progress(
        self,
        user_id: int,
        book_id: int,
        percent_complete: float,
        current_page: Optional[int] = None,
    ) -> tuple[Progress, bool]:
        """Upsert a client-posted progress value.

        The latest post always wins, so an out-of-order arrival can move
        the percent backwards. Reading time is never touched here.

        Returns:
            (progress row, True if the row was created)

        Raises:
            BookNotFoundError: If the book does not exist
            InvalidProgressError: If the percent is not a finite number
        """
        percent = clamp_percent(percent_complete)
        now = self._now()

        def _apply(s: Session) -> tuple[Progress, bool]:
            self._check_refs(s, user_id, book_id)
            progress = self._find(s, user_id, book_id)
            created = progress is None
            if created:
                progress = Progress(
                    user_id=user_id,
                    book_id=book_id,
                    total_reading_time=0,
                )
                s.add(progress)
            progress.percent_complete = percent
            if current_page is not None:
                progress.current_page = current_page
            progress.last_read_at = now
            return progress, created

        progress, created = self._upsert(_apply)
        logger.info(
            "Progress %s for user %s book %s: %s%%",
            "created" if created else "updated",
            user_id,
            book_id,
            percent,
        )
        return progress, created

    def mark_complete(self, user_id: int, book_id: int) -> tuple[Progress, bool]:
        """Force a book to 100% complete for a user.

        Calling this again leaves the percent at 100 and only advances
        last_read_at.
        """
        now = self._now()

        def _apply(s: Session) -> tuple[Progress, bool]:
            self._check_refs(s, user_id, book_id)
            progress = self._find(s, user_id, book_id)
            created = progress is None
            if created:
                progress = Progress(user_id=user_id, book_id=book_id, total_reading_time=0)
                s.add(progress)
            progress.percent_complete = COMPLETE_PERCENT
            progress.last_read_at = now
            return progress, created

        progress, created = self._upsert(_apply)
        logger.info("Book %s marked complete for user %s", book_id, user_id)
        return progress, created

    def add_reading_time(
        self,
        user_id: int,
        book_id: int,
        seconds: int,
        read_at: Optional[datetime] = None,
        session: Optional[Session] = None,
    ) -> Progress:
        """Add seconds to a pair's cumulative reading time.

        Creates the row at 0% when the pair has no progress yet. The
        increment runs in SQL so concurrent folds never overwrite each
        other. When a session is passed, the change joins that transaction
        and a lost insert race surfaces as ``IntegrityError`` to the caller.
        """
        read_at = read_at or self._now()
        seconds = max(0, int(seconds))

        def _add(s: Session) -> tuple[Progress, bool]:
            progress = self._find(s, user_id, book_id)
            created = progress is None
            if created:
                progress = Progress(
                    user_id=user_id,
                    book_id=book_id,
                    percent_complete=0,
                    total_reading_time=0,
                )
                s.add(progress)
                s.flush()
            s.execute(
                update(Progress)
                .where(Progress.id == progress.id)
                .values(
                    total_reading_time=func.coalesce(Progress.total_reading_time, 0) + seconds,
                    last_read_at=read_at,
                )
                .execution_options(synchronize_session=False)
            )
            s.refresh(progress)
            return progress, created

        if session:
            return _add(session)[0]
        return self._upsert(_add)[0]

    def list_progress(self, viewer, student_id: Optional[int] = None) -> list[Progress]:
        """List progress rows visible to a viewer.

        Args:
            viewer: Object with ``id`` and ``role`` attributes
            student_id: Restrict an admin's view to one student

        Returns:
            Progress rows, most recently read first
        """
        role = getattr(viewer.role, "value", viewer.role)

        with self.db.get_session() as s:
            stmt = select(Progress)
            if role == UserRole.ADMIN.value:
                if student_id is not None:
                    stmt = stmt.where(Progress.user_id == student_id)
            elif role == UserRole.TEACHER.value:
                stmt = stmt.join(User, Progress.user_id == User.id).where(
                    User.role == UserRole.STUDENT.value,
                    User.approval_status == ApprovalStatus.APPROVED.value,
                )
            else:
                stmt = stmt.where(Progress.user_id == viewer.id)

            stmt = stmt.order_by(Progress.last_read_at.desc(), Progress.id.desc())
            rows = list(s.execute(stmt).scalars().all())
            for row in rows:
                s.expunge(row)
            return rows

    def get_reading_stats(self) -> ReadingStats:
        """Aggregate reading statistics across the platform."""
        stats = ReadingStats()

        with self.db.get_session() as s:
            closed = ReadingSession.end_time.is_not(None)
            stats.total_sessions = s.execute(
                select(func.count()).select_from(ReadingSession).where(
                    closed, ReadingSession.reaped.is_(False)
                )
            ).scalar() or 0

            timed = s.execute(
                select(
                    func.count(ReadingSession.id),
                    func.coalesce(func.sum(ReadingSession.elapsed_seconds), 0),
                ).where(closed, ReadingSession.elapsed_seconds > 0)
            ).one()
            timed_count, timed_total = int(timed[0] or 0), int(timed[1] or 0)
            stats.total_reading_seconds = timed_total
            if timed_count:
                stats.avg_session_seconds = round_half_up(timed_total / timed_count)

            total_rows = s.execute(select(func.count()).select_from(Progress)).scalar() or 0
            completed_rows = s.execute(
                select(func.count())
                .select_from(Progress)
                .where(Progress.percent_complete >= COMPLETE_PERCENT)
            ).scalar() or 0
            readers = s.execute(select(func.count(distinct(Progress.user_id)))).scalar() or 0
            finishers = s.execute(
                select(func.count(distinct(Progress.user_id))).where(
                    Progress.percent_complete >= COMPLETE_PERCENT
                )
            ).scalar() or 0

        stats.books_completed = completed_rows
        if total_rows:
            stats.book_completion_rate = round_half_up(completed_rows / total_rows * 100)
        if readers:
            stats.completion_rate = round_half_up(finishers / readers * 100)

        return stats

    def get_user_summary(self, user_id: int) -> dict:
        """Summarize a single reader's progress.

        Returns:
            Dictionary with:
            - books_started: Progress rows for the user
            - books_completed: Rows at 100%
            - in_progress: Rows above 0% and below 100%
            - total_reading_seconds: Sum of reading time
            - completion_rate: Completed share of started books (0-100)
        """
        with self.db.get_session() as s:
            user = s.get(User, user_id)
            if user is None:
                raise UserNotFoundError(f"User not found: {user_id}")

            rows = list(
                s.execute(select(Progress).where(Progress.user_id == user_id)).scalars().all()
            )

            started = len(rows)
            completed = sum(1 for r in rows if r.percent_complete >= COMPLETE_PERCENT)
            in_progress = sum(1 for r in rows if 0 < r.percent_complete < COMPLETE_PERCENT)
            total_seconds = sum(r.total_reading_time or 0 for r in rows)

            return {
                "user_id": user_id,
                "username": user.username,
                "books_started": started,
                "books_completed": completed,
                "in_progress": in_progress,
                "total_reading_seconds": total_seconds,
                "completion_rate": round_half_up(completed / started * 100) if started else 0,
            }
