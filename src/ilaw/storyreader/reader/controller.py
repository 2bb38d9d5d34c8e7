"""Reader-side coordination between navigation and the platform API.

The controller owns one reading pass: it opens a session when the book is
opened, posts the visited percent after every page visit, finishes the
book, and closes the session when the reader leaves. Network failures are
logged and collected in ``notices``; navigation never waits on them.
"""

import logging
from enum import Enum
from typing import Callable, Optional, Sequence

from ..api.platform import PlatformClient, PlatformError
from ..reading.progress import COMPLETE_PERCENT
from .navigation import DEFAULT_FLIP_SECONDS, BookReader, NavResult

logger = logging.getLogger(__name__)


class CloseReason(str, Enum):
    """Why the reader is leaving the book."""

    EXIT = "exit"
    NAVIGATION = "navigation"
    UNLOAD = "unload"


class ReadingController:
    """Drives a BookReader and keeps the server in step with it."""

    def __init__(
        self,
        client: PlatformClient,
        book_id: int,
        pages: Sequence,
        flip_seconds: float = DEFAULT_FLIP_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.client = client
        self.book_id = book_id
        self.reader = BookReader(pages, flip_seconds=flip_seconds, clock=clock)
        self.session_active = False
        self.session_id: Optional[int] = None
        self.last_posted_percent: Optional[int] = None
        self.notices: list[str] = []

    @classmethod
    def load(cls, client: PlatformClient, book_id: int, **kwargs) -> "ReadingController":
        """Fetch a book's pages and build a controller for it.

        The flip duration defaults to the configured ``flip_seconds``.
        """
        if "flip_seconds" not in kwargs:
            from ..config import get_config

            kwargs["flip_seconds"] = get_config().flip_seconds
        pages = client.get_book_pages(book_id)
        return cls(client, book_id, pages, **kwargs)

    def _notice(self, message: str, error: Exception) -> None:
        logger.warning("%s (book %s): %s", message, self.book_id, error)
        self.notices.append(f"{message}: {error}")

    # ========================================================================
    # Server calls
    # ========================================================================

    def _start_session(self) -> None:
        try:
            result = self.client.start_session(self.book_id)
        except PlatformError as e:
            self.session_active = False
            self._notice("Could not start reading session", e)
            return
        self.session_active = True
        self.session_id = result.get("sessionId")

    def _end_session(self) -> None:
        try:
            result = self.client.end_session(self.book_id)
        except PlatformError as e:
            self._notice("Could not end reading session", e)
        else:
            if not result.get("success"):
                logger.warning(
                    "Session end for book %s was a no-op: %s", self.book_id, result.get("message")
                )
        self.session_active = False
        self.session_id = None

    def _post_progress(self, percent: Optional[int] = None) -> None:
        if percent is None:
            percent = self.reader.percent_complete
        try:
            self.client.post_progress(
                self.book_id,
                percent,
                current_page=self.reader.current_page + 1,
            )
        except PlatformError as e:
            self._notice("Could not save progress", e)
            return
        self.last_posted_percent = percent

    def _complete(self) -> None:
        self._post_progress(COMPLETE_PERCENT)
        try:
            self.client.complete_book(self.book_id)
        except PlatformError as e:
            self._notice("Could not mark book complete", e)
        if self.session_active:
            self._end_session()

    # ========================================================================
    # Reader actions
    # ========================================================================

    def open(self) -> bool:
        """Open the book: start a session and post the first page visit.

        Returns:
            True if a server session is active
        """
        if not self.session_active:
            self._start_session()
        self._post_progress()
        return self.session_active

    def next(self) -> NavResult:
        result = self.reader.next_page()
        if result == NavResult.ADVANCED:
            self._post_progress()
        elif result == NavResult.COMPLETED:
            self._complete()
        return result

    def prev(self) -> NavResult:
        result = self.reader.prev_page()
        if result == NavResult.WENT_BACK:
            self._post_progress()
        return result

    def answer(self, question_id: int, answer: str) -> bool:
        return self.reader.submit_answer(question_id, answer)

    def finish(self) -> NavResult:
        """Finish the book once every page has been visited."""
        if not self.reader.can_finish:
            return NavResult.BLOCKED
        result = self.reader.finish()
        if result == NavResult.COMPLETED:
            self._complete()
        return result

    def read_again(self) -> NavResult:
        """Start over with a fresh visited set and a fresh session."""
        result = self.reader.read_again()
        if result == NavResult.RESET:
            if self.session_active:
                self._end_session()
            self._start_session()
            self._post_progress()
        return result

    def close(self, reason: CloseReason = CloseReason.EXIT) -> None:
        """Leave the book, ending the session if one is open.

        On unload the end is sent as a fire-and-forget beacon; otherwise it
        is a best-effort call whose failure is only recorded.
        """
        if not self.session_active:
            return
        if reason == CloseReason.UNLOAD:
            self.client.send_beacon(self.book_id)
            self.session_active = False
            self.session_id = None
        else:
            self._end_session()
