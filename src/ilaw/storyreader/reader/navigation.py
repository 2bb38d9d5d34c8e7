"""Page navigation state machine for reading a book.

A reader moves page by page. Pages with questions put up a question gate
that must be answered correctly before moving on. After any page turn the
reader ignores navigation input for ``flip_seconds`` while the flip plays.

States::

    READING(i) --next--> QUESTION_GATE(i) --next (all correct)--> READING(i+1)
    READING(last) --next/finish--> COMPLETE --read_again--> READING(0)
"""

import time
from enum import Enum
from typing import Callable, Optional, Sequence

from ..reading.progress import calculate_percent_complete
from .answers import check_answer

DEFAULT_FLIP_SECONDS = 1.25


class Phase(str, Enum):
    """Where the reader is in the book."""

    READING = "reading"
    QUESTION_GATE = "question_gate"
    COMPLETE = "complete"


class NavResult(str, Enum):
    """Outcome of a navigation input."""

    ADVANCED = "advanced"
    GATED = "gated"
    BLOCKED = "blocked"
    GATE_CANCELLED = "gate_cancelled"
    WENT_BACK = "went_back"
    COMPLETED = "completed"
    IGNORED = "ignored"
    AT_START = "at_start"
    RESET = "reset"


class BookReader:
    """Ephemeral navigation state for one reading pass of a book."""

    def __init__(
        self,
        pages: Sequence,
        flip_seconds: float = DEFAULT_FLIP_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Initialize reader.

        Args:
            pages: Pages in reading order; each has a ``questions`` list
            flip_seconds: How long input is ignored after a page turn
            clock: Monotonic seconds (injectable for tests)
        """
        if not pages:
            raise ValueError("A book needs at least one page to read")
        self.pages = list(pages)
        self.flip_seconds = flip_seconds
        self._clock = clock or time.monotonic
        self._reset()

    def _reset(self) -> None:
        self.current_page = 0
        self.visited_pages: set[int] = {0}
        self.phase = Phase.READING
        self.answers: dict[int, str] = {}
        self.answer_feedback: dict[int, bool] = {}
        self.cleared_pages: set[int] = set()
        self._flip_until: Optional[float] = None

    # ========================================================================
    # State
    # ========================================================================

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    @property
    def last_page(self) -> int:
        return self.total_pages - 1

    @property
    def is_flipping(self) -> bool:
        return self._flip_until is not None and self._clock() < self._flip_until

    @property
    def show_questions(self) -> bool:
        return self.phase == Phase.QUESTION_GATE

    @property
    def is_completed(self) -> bool:
        return self.phase == Phase.COMPLETE

    @property
    def percent_complete(self) -> int:
        return calculate_percent_complete(len(self.visited_pages), self.total_pages)

    @property
    def can_finish(self) -> bool:
        """True once every page index has been visited."""
        return all(index in self.visited_pages for index in range(self.total_pages))

    @property
    def current_questions(self) -> list:
        return list(getattr(self.pages[self.current_page], "questions", None) or [])

    def all_answered_correctly(self) -> bool:
        questions = self.current_questions
        return all(self.answer_feedback.get(q.id) for q in questions)

    # ========================================================================
    # Transitions
    # ========================================================================

    def _turn_to(self, index: int) -> None:
        self.current_page = index
        self.visited_pages.add(index)
        self.answers = {}
        self.answer_feedback = {}
        self._flip_until = self._clock() + self.flip_seconds

    def _needs_gate(self) -> bool:
        return bool(self.current_questions) and self.current_page not in self.cleared_pages

    def _leave_page(self) -> NavResult:
        """Move past the current (cleared or question-free) page."""
        self.phase = Phase.READING
        if self.current_page >= self.last_page:
            if not self.can_finish:
                return NavResult.BLOCKED
            self.phase = Phase.COMPLETE
            return NavResult.COMPLETED
        self._turn_to(self.current_page + 1)
        return NavResult.ADVANCED

    def next_page(self) -> NavResult:
        """Advance, opening the question gate first if the page has one."""
        if self.is_flipping or self.phase == Phase.COMPLETE:
            return NavResult.IGNORED

        if self.phase == Phase.QUESTION_GATE:
            if not self.all_answered_correctly():
                return NavResult.BLOCKED
            self.cleared_pages.add(self.current_page)
            return self._leave_page()

        if self._needs_gate():
            self.phase = Phase.QUESTION_GATE
            return NavResult.GATED

        return self._leave_page()

    def finish(self) -> NavResult:
        """Finish the book from the last page."""
        if self.phase == Phase.COMPLETE:
            return NavResult.IGNORED
        if self.current_page != self.last_page or not self.can_finish:
            return NavResult.BLOCKED
        return self.next_page()

    def prev_page(self) -> NavResult:
        """Go back a page, or close an open question gate."""
        if self.is_flipping:
            return NavResult.IGNORED

        if self.phase == Phase.QUESTION_GATE:
            self.phase = Phase.READING
            return NavResult.GATE_CANCELLED

        if self.phase == Phase.COMPLETE:
            self.phase = Phase.READING
            return NavResult.WENT_BACK

        if self.current_page == 0:
            return NavResult.AT_START

        self._turn_to(self.current_page - 1)
        return NavResult.WENT_BACK

    def submit_answer(self, question_id: int, answer: str) -> bool:
        """Record and check an answer at the open question gate.

        Returns:
            True if the answer is correct

        Raises:
            ValueError: If no gate is open or the question is not on this page
        """
        if self.phase != Phase.QUESTION_GATE:
            raise ValueError("No question gate is open")

        question = next((q for q in self.current_questions if q.id == question_id), None)
        if question is None:
            raise ValueError(f"Question {question_id} is not on page {self.current_page + 1}")

        correct = check_answer(question, answer)
        self.answers[question_id] = answer
        self.answer_feedback[question_id] = correct
        return correct

    def read_again(self) -> NavResult:
        """Start a fresh pass from the first page."""
        if self.phase != Phase.COMPLETE:
            return NavResult.IGNORED
        self._reset()
        return NavResult.RESET
