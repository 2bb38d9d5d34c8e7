"""Reader-side navigation, answer checking and server coordination."""

from .answers import check_answer, parse_options
from .controller import CloseReason, ReadingController
from .navigation import BookReader, NavResult, Phase

__all__ = [
    "check_answer",
    "parse_options",
    "CloseReason",
    "ReadingController",
    "BookReader",
    "NavResult",
    "Phase",
]
