"""Tests for reading session tracking."""

import threading
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from ilaw.storyreader.db.models import ReadingSession
from ilaw.storyreader.db.schemas import ApprovalStatus, BookCreate, UserCreate, UserRole
from ilaw.storyreader.db.sqlite import BookNotFoundError, Database, UserNotFoundError
from ilaw.storyreader.reading.session import (
    DEFAULT_MAX_SESSION_SECONDS,
    NO_ACTIVE_SESSION,
    SESSION_EXISTS,
    SESSION_STARTED,
    SessionTracker,
)
from ilaw.storyreader.seed import SUN_AND_MOON_TITLE, sun_and_moon_pages


@pytest.fixture
def tracker(db, clock) -> SessionTracker:
    return SessionTracker(db, clock=clock)


class TestStartSession:
    """Tests for opening sessions."""

    def test_start_creates_session(self, tracker, student, sun_and_moon, clock):
        """Test starting a session records the start time."""
        started = tracker.start_session(student.id, sun_and_moon.id)

        assert started.created is True
        assert started.start_time == clock.now
        assert started.message == SESSION_STARTED

        active = tracker.get_active_session(student.id, sun_and_moon.id)
        assert active is not None
        assert active.id == started.session_id
        assert active.end_time is None

    def test_second_start_returns_same_session(self, tracker, student, sun_and_moon, clock):
        """Test starting twice re-uses the open session instead of adding a row."""
        first = tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(30)
        second = tracker.start_session(student.id, sun_and_moon.id)

        assert second.session_id == first.session_id
        assert second.created is False
        assert second.start_time == first.start_time
        assert second.message == SESSION_EXISTS
        assert len(tracker.list_sessions(student.id, sun_and_moon.id)) == 1

    def test_sessions_are_per_user_and_book(
        self, tracker, student, other_student, sun_and_moon, picture_book
    ):
        """Test different pairs get their own open sessions."""
        a = tracker.start_session(student.id, sun_and_moon.id)
        b = tracker.start_session(student.id, picture_book.id)
        c = tracker.start_session(other_student.id, sun_and_moon.id)

        assert len({a.session_id, b.session_id, c.session_id}) == 3

    def test_start_after_end_opens_new_session(self, tracker, student, sun_and_moon, clock):
        """Test a closed session does not block a new one."""
        first = tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(10)
        tracker.end_session(student.id, sun_and_moon.id)
        clock.advance(10)
        second = tracker.start_session(student.id, sun_and_moon.id)

        assert second.created is True
        assert second.session_id != first.session_id

    def test_start_unknown_book(self, tracker, student):
        """Test starting a session for a missing book raises."""
        with pytest.raises(BookNotFoundError):
            tracker.start_session(student.id, 999)

    def test_start_unknown_user(self, tracker, sun_and_moon):
        """Test starting a session for a missing user raises."""
        with pytest.raises(UserNotFoundError):
            tracker.start_session(999, sun_and_moon.id)

    def test_concurrent_start_resolves_to_winner(self, tracker, student, sun_and_moon):
        """Test a start that loses the insert race returns the winner's session."""
        winner = tracker.start_session(student.id, sun_and_moon.id)

        real_find = tracker._find_open
        calls = {"count": 0}

        def racing_find(s, user_id, book_id):
            # First lookup misses, as if the winner had not committed yet
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return real_find(s, user_id, book_id)

        with patch.object(tracker, "_find_open", side_effect=racing_find):
            loser = tracker.start_session(student.id, sun_and_moon.id)

        assert loser.session_id == winner.session_id
        assert loser.created is False
        assert len(tracker.list_sessions(student.id, sun_and_moon.id)) == 1

    def test_database_rejects_second_open_session(self, db, student, sun_and_moon, clock):
        """Test the partial unique index forbids two open sessions for a pair."""
        with pytest.raises(IntegrityError):
            with db.get_session() as s:
                s.add(ReadingSession(user_id=student.id, book_id=sun_and_moon.id, start_time=clock.now))
                s.add(ReadingSession(user_id=student.id, book_id=sun_and_moon.id, start_time=clock.now))

    def test_database_allows_many_closed_sessions(self, db, student, sun_and_moon, clock):
        """Test the index only covers open sessions."""
        with db.get_session() as s:
            for _ in range(3):
                s.add(
                    ReadingSession(
                        user_id=student.id,
                        book_id=sun_and_moon.id,
                        start_time=clock.now,
                        end_time=clock.now,
                        elapsed_seconds=0,
                    )
                )
            s.add(ReadingSession(user_id=student.id, book_id=sun_and_moon.id, start_time=clock.now))


class TestEndSession:
    """Tests for closing sessions."""

    def test_elapsed_seconds(self, tracker, student, sun_and_moon, clock):
        """Test a session ended 125s after it started reports 125 seconds."""
        started = tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(125)

        ended = tracker.end_session(student.id, sun_and_moon.id)

        assert ended.success is True
        assert ended.total_seconds == 125
        assert ended.session_id == started.session_id
        assert ended.start_time == started.start_time
        assert ended.end_time == clock.now

    def test_elapsed_seconds_floor(self, tracker, student, sun_and_moon, clock):
        """Test partial seconds are dropped."""
        tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(125.9)

        ended = tracker.end_session(student.id, sun_and_moon.id)

        assert ended.total_seconds == 125

    def test_end_closes_session(self, tracker, student, sun_and_moon, clock):
        """Test the session row is closed with its elapsed time."""
        tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(42)
        tracker.end_session(student.id, sun_and_moon.id)

        assert tracker.get_active_session(student.id, sun_and_moon.id) is None
        [closed] = tracker.list_sessions(student.id, sun_and_moon.id)
        assert closed.elapsed_seconds == 42
        assert closed.reaped is False

    def test_end_creates_progress_row(self, tracker, student, sun_and_moon, clock):
        """Test the first session end creates progress at 0%."""
        tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(90)
        tracker.end_session(student.id, sun_and_moon.id)

        progress = tracker.progress.get_progress(student.id, sun_and_moon.id)
        assert progress is not None
        assert progress.total_reading_time == 90
        assert progress.percent_complete == 0

    def test_end_adds_to_reading_time(self, tracker, student, sun_and_moon, clock):
        """Test ending a 60s session on 300s of history yields 360s."""
        tracker.progress.add_reading_time(student.id, sun_and_moon.id, 300)
        tracker.progress.record_progress(student.id, sun_and_moon.id, 50)

        tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(60)
        tracker.end_session(student.id, sun_and_moon.id)

        progress = tracker.progress.get_progress(student.id, sun_and_moon.id)
        assert progress.total_reading_time == 360
        assert progress.percent_complete == 50
        assert progress.last_read_at.replace(tzinfo=None) == clock.now.replace(tzinfo=None)

    def test_end_without_open_session(self, tracker, student, sun_and_moon):
        """Test ending with nothing open is a no-op that reports failure."""
        tracker.progress.add_reading_time(student.id, sun_and_moon.id, 300)

        ended = tracker.end_session(student.id, sun_and_moon.id)

        assert ended.success is False
        assert ended.message == NO_ACTIVE_SESSION
        assert ended.total_seconds is None
        progress = tracker.progress.get_progress(student.id, sun_and_moon.id)
        assert progress.total_reading_time == 300

    def test_end_twice(self, tracker, student, sun_and_moon, clock):
        """Test a second end after a successful one does not double count."""
        tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(20)
        assert tracker.end_session(student.id, sun_and_moon.id).success is True
        clock.advance(20)
        assert tracker.end_session(student.id, sun_and_moon.id).success is False

        progress = tracker.progress.get_progress(student.id, sun_and_moon.id)
        assert progress.total_reading_time == 20

    def test_end_after_ttl_reaps(self, tracker, student, sun_and_moon, clock):
        """Test ending a session past the TTL reaps it without credit, like the sweep."""
        started = tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(DEFAULT_MAX_SESSION_SECONDS + 3600)

        ended = tracker.end_session(student.id, sun_and_moon.id)

        assert ended.success is False
        assert ended.message == NO_ACTIVE_SESSION
        [closed] = tracker.list_sessions(student.id, sun_and_moon.id)
        assert closed.id == started.session_id
        assert closed.reaped is True
        assert closed.elapsed_seconds == 0
        assert tracker.progress.get_progress(student.id, sun_and_moon.id) is None

    def test_end_at_ttl_is_credited(self, tracker, student, sun_and_moon, clock):
        """Test a session ended exactly at the TTL still counts."""
        tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(DEFAULT_MAX_SESSION_SECONDS)

        ended = tracker.end_session(student.id, sun_and_moon.id)

        assert ended.success is True
        assert ended.total_seconds == DEFAULT_MAX_SESSION_SECONDS

    def test_end_retries_after_progress_insert_race(self, tracker, student, sun_and_moon, clock):
        """Test a progress row inserted mid-end is updated on retry, not duplicated."""
        tracker.progress.add_reading_time(student.id, sun_and_moon.id, 300)
        tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(60)

        find = tracker.progress._find
        calls = []

        def _missing_once(s, user_id, book_id):
            calls.append(user_id)
            return None if len(calls) == 1 else find(s, user_id, book_id)

        with patch.object(tracker.progress, "_find", side_effect=_missing_once):
            ended = tracker.end_session(student.id, sun_and_moon.id)

        assert ended.success is True
        assert ended.total_seconds == 60
        assert len(calls) == 2
        progress = tracker.progress.get_progress(student.id, sun_and_moon.id)
        assert progress.total_reading_time == 360
        assert tracker.get_active_session(student.id, sun_and_moon.id) is None


class TestOverlappingEnds:
    """Tests for a beacon and an awaited call ending the same session at once."""

    @pytest.fixture
    def file_db(self, tmp_path):
        database = Database(str(tmp_path / "reader.db"))
        database.create_tables()
        yield database
        database.engine.dispose()

    @pytest.fixture
    def reader(self, file_db):
        return file_db.create_user(
            UserCreate(
                username="juan",
                email="juan@example.com",
                first_name="Juan",
                last_name="Tester",
                role=UserRole.STUDENT,
                approval_status=ApprovalStatus.APPROVED,
            )
        )

    @pytest.fixture
    def book(self, file_db):
        return file_db.create_book(
            BookCreate(title=SUN_AND_MOON_TITLE, description="How the sun and moon share the sky."),
            pages=sun_and_moon_pages(),
        )

    def end_together(self, tracker, user_id, book_id) -> list:
        """End the session from two threads that both see it open."""
        both_found = threading.Barrier(2, timeout=10)
        find_open = tracker._find_open

        def _find_then_wait(s, uid, bid):
            found = find_open(s, uid, bid)
            both_found.wait()
            return found

        tracker._find_open = _find_then_wait
        results = [None, None]

        def _end(slot):
            results[slot] = tracker.end_session(user_id, book_id)

        threads = [threading.Thread(target=_end, args=(slot,)) for slot in (0, 1)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        tracker._find_open = find_open
        return results

    def test_time_credited_once(self, file_db, reader, book, clock):
        """Test 300s of history plus a 60s session ended twice at once yields 360s."""
        tracker = SessionTracker(file_db, clock=clock)
        tracker.progress.add_reading_time(reader.id, book.id, 300)
        tracker.start_session(reader.id, book.id)
        clock.advance(60)

        results = self.end_together(tracker, reader.id, book.id)

        assert sorted(r.success for r in results) == [False, True]
        loser = next(r for r in results if not r.success)
        assert loser.message == NO_ACTIVE_SESSION
        progress = tracker.progress.get_progress(reader.id, book.id)
        assert progress.total_reading_time == 360
        [closed] = tracker.list_sessions(reader.id, book.id)
        assert closed.elapsed_seconds == 60

    def test_first_credit_creates_one_row(self, file_db, reader, book, clock):
        """Test overlapping ends with no progress yet create a single row."""
        tracker = SessionTracker(file_db, clock=clock)
        tracker.start_session(reader.id, book.id)
        clock.advance(45)

        results = self.end_together(tracker, reader.id, book.id)

        assert sorted(r.success for r in results) == [False, True]
        rows = tracker.progress.list_progress(reader)
        assert len(rows) == 1
        assert rows[0].total_reading_time == 45


class TestReaping:
    """Tests for closing orphaned sessions."""

    def test_reap_closes_stale_sessions(self, tracker, student, other_student, sun_and_moon, clock):
        """Test only sessions older than the TTL are reaped."""
        tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(DEFAULT_MAX_SESSION_SECONDS - 60)
        tracker.start_session(other_student.id, sun_and_moon.id)
        clock.advance(120)

        assert tracker.reap_orphaned_sessions() == 1
        assert tracker.get_active_session(student.id, sun_and_moon.id) is None
        assert tracker.get_active_session(other_student.id, sun_and_moon.id) is not None

    def test_reaped_time_not_credited(self, tracker, student, sun_and_moon, clock):
        """Test a reaped session records zero time and leaves progress alone."""
        tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(DEFAULT_MAX_SESSION_SECONDS + 1)
        tracker.reap_orphaned_sessions()

        [reaped] = tracker.list_sessions(student.id, sun_and_moon.id)
        assert reaped.reaped is True
        assert reaped.elapsed_seconds == 0
        assert reaped.end_time is not None
        assert tracker.progress.get_progress(student.id, sun_and_moon.id) is None

    def test_start_replaces_stale_session(self, tracker, student, sun_and_moon, clock):
        """Test starting over a stale open session reaps it and opens a new one."""
        stale = tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(DEFAULT_MAX_SESSION_SECONDS + 1)

        fresh = tracker.start_session(student.id, sun_and_moon.id)

        assert fresh.created is True
        assert fresh.session_id != stale.session_id
        sessions = {s.id: s for s in tracker.list_sessions(student.id, sun_and_moon.id)}
        assert sessions[stale.session_id].reaped is True
        assert sessions[fresh.session_id].end_time is None

    def test_custom_ttl(self, db, student, sun_and_moon, clock):
        """Test the TTL is configurable."""
        tracker = SessionTracker(db, max_session_seconds=60, clock=clock)
        tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(61)

        assert tracker.reap_orphaned_sessions() == 1

    def test_reap_nothing(self, tracker):
        """Test reaping an empty table."""
        assert tracker.reap_orphaned_sessions() == 0


class TestListSessions:
    """Tests for listing sessions."""

    def test_newest_first(self, tracker, student, sun_and_moon, picture_book, clock):
        """Test sessions are listed newest first and can be filtered by book."""
        tracker.start_session(student.id, sun_and_moon.id)
        clock.advance(10)
        tracker.end_session(student.id, sun_and_moon.id)
        clock.advance(10)
        latest = tracker.start_session(student.id, picture_book.id)

        sessions = tracker.list_sessions(student.id)
        assert [s.id for s in sessions][0] == latest.session_id
        assert len(sessions) == 2
        assert len(tracker.list_sessions(student.id, picture_book.id)) == 1
