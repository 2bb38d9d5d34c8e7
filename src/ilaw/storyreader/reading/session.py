"""Reading session management.

Handles opening and closing reading sessions per (user, book), folding
closed session time into progress, and reaping sessions left open by
readers who never came back.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db.models import Book, ReadingSession, User, as_utc, utcnow
from ..db.sqlite import BookNotFoundError, Database, UserNotFoundError, get_db
from .progress import ProgressTracker

logger = logging.getLogger(__name__)

# Four hours is longer than any plausible sitting with a storybook
DEFAULT_MAX_SESSION_SECONDS = 4 * 60 * 60

SESSION_STARTED = "Reading session started"
SESSION_EXISTS = "Active session already exists"
SESSION_ENDED = "Reading session ended"
NO_ACTIVE_SESSION = "No active reading session found"


@dataclass
class SessionStart:
    """Result of starting (or re-using) a session."""

    session_id: int
    start_time: datetime
    created: bool

    @property
    def message(self) -> str:
        return SESSION_STARTED if self.created else SESSION_EXISTS


@dataclass
class SessionEnd:
    """Result of ending a session."""

    success: bool
    message: str
    session_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total_seconds: Optional[int] = None


class SessionTracker:
    """Tracks open and closed reading sessions."""

    def __init__(
        self,
        db: Optional[Database] = None,
        max_session_seconds: int = DEFAULT_MAX_SESSION_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize session tracker.

        Args:
            db: Database instance
            max_session_seconds: Age after which an open session is an orphan
            clock: Returns the current aware UTC time (injectable for tests)
        """
        self.db = db or get_db()
        self.max_session_seconds = max_session_seconds
        self._clock = clock or utcnow
        self.progress = ProgressTracker(self.db, clock=self._clock)

    def _now(self) -> datetime:
        return self._clock()

    def _find_open(self, s: Session, user_id: int, book_id: int) -> Optional[ReadingSession]:
        stmt = select(ReadingSession).where(
            ReadingSession.user_id == user_id,
            ReadingSession.book_id == book_id,
            ReadingSession.end_time.is_(None),
        )
        return s.execute(stmt).scalar_one_or_none()

    def _is_stale(self, reading_session: ReadingSession, now: datetime) -> bool:
        age = now - as_utc(reading_session.start_time)
        return age > timedelta(seconds=self.max_session_seconds)

    def _reap(self, reading_session: ReadingSession, now: datetime) -> None:
        reading_session.end_time = now
        reading_session.elapsed_seconds = 0
        reading_session.reaped = True
        logger.info(
            "Reaped orphaned session %s (user %s, book %s, started %s)",
            reading_session.id,
            reading_session.user_id,
            reading_session.book_id,
            reading_session.start_time,
        )

    def get_active_session(self, user_id: int, book_id: int) -> Optional[ReadingSession]:
        """Get the open session for a (user, book) pair, if any."""
        with self.db.get_session() as s:
            reading_session = self._find_open(s, user_id, book_id)
            if reading_session:
                s.expunge(reading_session)
            return reading_session

    def start_session(self, user_id: int, book_id: int) -> SessionStart:
        """Open a reading session.

        Returns the already-open session for the pair instead of creating a
        second one. An open session older than the orphan TTL is reaped and
        replaced.

        Raises:
            BookNotFoundError: If the book does not exist
            UserNotFoundError: If the user does not exist
        """
        now = self._now()

        try:
            with self.db.get_session() as s:
                if s.get(Book, book_id) is None:
                    raise BookNotFoundError(f"Book not found: {book_id}")
                if s.get(User, user_id) is None:
                    raise UserNotFoundError(f"User not found: {user_id}")

                existing = self._find_open(s, user_id, book_id)
                if existing is not None:
                    if not self._is_stale(existing, now):
                        logger.debug(
                            "Re-using open session %s for user %s book %s",
                            existing.id,
                            user_id,
                            book_id,
                        )
                        return SessionStart(existing.id, as_utc(existing.start_time), False)
                    self._reap(existing, now)
                    s.flush()

                reading_session = ReadingSession(
                    user_id=user_id,
                    book_id=book_id,
                    start_time=now,
                )
                s.add(reading_session)
                s.flush()
                session_id = reading_session.id
        except IntegrityError:
            # Another request opened the session between our read and insert
            with self.db.get_session() as s:
                winner = self._find_open(s, user_id, book_id)
                if winner is None:
                    raise
                logger.info("Concurrent start for user %s book %s resolved to session %s",
                            user_id, book_id, winner.id)
                return SessionStart(winner.id, as_utc(winner.start_time), False)

        logger.info("Started session %s for user %s book %s", session_id, user_id, book_id)
        return SessionStart(session_id, now, True)

    def _close_open(self, user_id: int, book_id: int, now: datetime) -> SessionEnd:
        with self.db.get_session() as s:
            reading_session = self._find_open(s, user_id, book_id)
            if reading_session is None:
                logger.warning("No open session to end for user %s book %s", user_id, book_id)
                return SessionEnd(success=False, message=NO_ACTIVE_SESSION)

            session_id = reading_session.id
            start_time = as_utc(reading_session.start_time)
            stale = self._is_stale(reading_session, now)
            elapsed = 0 if stale else max(0, int((now - start_time).total_seconds()))

            # Only the request that flips end_time from NULL gets to credit time
            closed = s.execute(
                update(ReadingSession)
                .where(ReadingSession.id == session_id, ReadingSession.end_time.is_(None))
                .values(end_time=now, elapsed_seconds=elapsed, reaped=stale)
                .execution_options(synchronize_session=False)
            )
            if closed.rowcount != 1:
                logger.warning("Session %s was already closed by another request", session_id)
                return SessionEnd(success=False, message=NO_ACTIVE_SESSION)

            if stale:
                logger.info(
                    "Reaped orphaned session %s on end (user %s, book %s, started %s)",
                    session_id,
                    user_id,
                    book_id,
                    start_time,
                )
                return SessionEnd(success=False, message=NO_ACTIVE_SESSION)

            self.progress.add_reading_time(user_id, book_id, elapsed, read_at=now, session=s)

        logger.info(
            "Ended session %s for user %s book %s after %ss",
            session_id,
            user_id,
            book_id,
            elapsed,
        )
        return SessionEnd(
            success=True,
            message=SESSION_ENDED,
            session_id=session_id,
            start_time=start_time,
            end_time=now,
            total_seconds=elapsed,
        )

    def end_session(self, user_id: int, book_id: int) -> SessionEnd:
        """Close the open session and credit its time to progress.

        With no open session this is a no-op that reports
        ``success=False``; nothing is written. Overlapping ends of the same
        session (an unload beacon racing an awaited call) credit the time
        once; the loser sees no open session. A session already past the
        orphan TTL is reaped instead, exactly as the sweep would have done.
        """
        now = self._now()

        try:
            return self._close_open(user_id, book_id, now)
        except IntegrityError:
            # A concurrent first progress post inserted the row; the rollback
            # left the session open, so close it again against that row
            logger.info("Concurrent progress insert while ending session for user %s book %s",
                        user_id, book_id)
            return self._close_open(user_id, book_id, now)

    def list_sessions(
        self, user_id: int, book_id: Optional[int] = None
    ) -> list[ReadingSession]:
        """List a user's sessions, newest first."""
        with self.db.get_session() as s:
            stmt = select(ReadingSession).where(ReadingSession.user_id == user_id)
            if book_id is not None:
                stmt = stmt.where(ReadingSession.book_id == book_id)
            stmt = stmt.order_by(ReadingSession.start_time.desc(), ReadingSession.id.desc())
            sessions = list(s.execute(stmt).scalars().all())
            for reading_session in sessions:
                s.expunge(reading_session)
            return sessions

    def reap_orphaned_sessions(self, now: Optional[datetime] = None) -> int:
        """Close every open session older than the orphan TTL.

        Reaped sessions record zero elapsed time and add nothing to
        progress.

        Returns:
            Number of sessions reaped
        """
        now = now or self._now()

        with self.db.get_session() as s:
            stmt = select(ReadingSession).where(ReadingSession.end_time.is_(None))
            reaped = 0
            for reading_session in s.execute(stmt).scalars().all():
                if self._is_stale(reading_session, now):
                    self._reap(reading_session, now)
                    reaped += 1

        if reaped:
            logger.info("Reaped %d orphaned session(s)", reaped)
        return reaped
