"""Comprehension question answer checking."""

from typing import Optional

from ..db.schemas import AnswerType


def parse_options(options: Optional[str]) -> list[str]:
    """Split a stored options string into choices.

    Options are one per line when the text contains a newline, otherwise
    comma separated. Choices are trimmed and blanks dropped.
    """
    if not options:
        return []
    separator = "\n" if "\n" in options else ","
    return [choice.strip() for choice in options.split(separator) if choice.strip()]


def normalize_answer(answer: Optional[str]) -> str:
    return (answer or "").strip().lower()


def check_answer(question, answer: Optional[str]) -> bool:
    """Check a reader's answer against a question.

    Args:
        question: Object with ``answer_type``, ``correct_answer`` and ``options``
        answer: The reader's answer

    Returns:
        True if the answer is accepted
    """
    given = normalize_answer(answer)
    if not given:
        return False

    correct = normalize_answer(question.correct_answer)
    if not correct:
        # Open-ended question with no key: any answer clears it
        return True

    answer_type = getattr(question.answer_type, "value", question.answer_type)
    if answer_type == AnswerType.MULTIPLE_CHOICE.value:
        choices = [normalize_answer(choice) for choice in parse_options(question.options)]
        if choices and given not in choices:
            return False

    return given == correct
