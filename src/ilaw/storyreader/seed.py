"""Demo accounts and the "Sun and Moon" storybook.

Used by ``storyreader seed`` to get a fresh database into a readable state.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .db.models import Book, User
from .db.schemas import (
    AnswerType,
    ApprovalStatus,
    BookCreate,
    BookType,
    GradeLevel,
    PageCreate,
    QuestionCreate,
    UserCreate,
    UserRole,
)
from .db.sqlite import Database

logger = logging.getLogger(__name__)

SUN_AND_MOON_TITLE = "The Sun and the Moon"

# (title, narration, dialogue, question, options, correct answer)
SUN_AND_MOON_PAGES = [
    (
        "The Creator and His Children",
        "Long ago, the world was created by Bathala, the great god. "
        "He had two children: Apolaqui and Mayari.",
        'Bathala: "My children, you are the light of this world."',
        "Who were Bathala's children?",
        ["Apolaqui and Mayari", "Lakan and Lakambini", "Tala and Hanan"],
        "Apolaqui and Mayari",
    ),
    (
        "Bringing Light to the World",
        "From the eyes of Apolaqui and Mayari came the first light. "
        "The world rejoiced in their brightness.",
        'People: "Look! The children\'s eyes bring light to our world!"',
        "What did Apolaqui and Mayari give to the world?",
        ["Rain and thunder", "Light and joy", "Wind and fire"],
        "Light and joy",
    ),
    (
        "Bathala's Request",
        "Bathala loved his children dearly and wished they would stay close. "
        "As he grew older, he asked them to remain by his side.",
        'Bathala: "Please stay with me, my dear children. I need you near."',
        "Did Apolaqui and Mayari listen to their father's wish?",
        [
            "Yes, they stayed with him",
            "No, they continued their adventures",
            "They left the world entirely",
        ],
        "No, they continued their adventures",
    ),
    (
        "The Passing of Bathala",
        "One day, Bathala fell ill and passed away, leaving no instructions "
        "on who should rule the earth.",
        'Narrator: "The great creator was gone, and the world was without a ruler."',
        "What happened after Bathala's death?",
        [
            "The earth was left in darkness",
            "Apolaqui and Mayari agreed to rule together",
            "A conflict arose between the siblings",
        ],
        "A conflict arose between the siblings",
    ),
    (
        "The Siblings' Dispute",
        "Apolaqui wanted to rule alone, but Mayari insisted on sharing power. "
        "Their disagreement led to a fierce battle.",
        'Apolaqui: "I should rule alone!" Mayari: "We must share the power!"',
        "Why did Apolaqui and Mayari fight?",
        [
            "They disagreed on who should rule the earth",
            "They wanted to explore the sky",
            "They were playing a game",
        ],
        "They disagreed on who should rule the earth",
    ),
    (
        "Mayari's Injury",
        "During the fight, Apolaqui accidentally struck Mayari, injuring her eye. "
        "Realizing his mistake, he felt deep remorse.",
        'Apolaqui: "Sister! I\'m so sorry! I didn\'t mean to hurt you!"',
        "What did Apolaqui do after hurting Mayari?",
        [
            "Continued fighting",
            "Apologized and suggested they share power",
            "Left the earth",
        ],
        "Apologized and suggested they share power",
    ),
    (
        "A New Agreement",
        "They decided to rule the earth equally but at different times. "
        "Apolaqui would shine during the day, and Mayari would glow at night.",
        'Mayari: "Let us share the responsibility. You take the day, I\'ll take the night."',
        "Why is Mayari's light fainter than Apolaqui's?",
        ["She only has one eye", "She is shy", "She uses a lantern"],
        "She only has one eye",
    ),
    (
        "The Sun and the Moon Today",
        "To this day, Apolaqui, the Sun, rules the day, and Mayari, the Moon, "
        "watches over the night, each taking turns to light our world.",
        'Narrator: "And they lived happily ever after, sharing the sky in harmony."',
        "What can we learn from Apolaqui and Mayari's story?",
        [
            "Sharing power can bring harmony",
            "Fighting solves problems",
            "It's better to rule alone",
        ],
        "Sharing power can bring harmony",
    ),
]

DEMO_USERS = [
    UserCreate(
        username="admin",
        email="admin@ilawngbayan.edu.ph",
        first_name="Ilaw",
        last_name="Admin",
        role=UserRole.ADMIN,
        approval_status=ApprovalStatus.APPROVED,
    ),
    UserCreate(
        username="teacher",
        email="teacher@ilawngbayan.edu.ph",
        first_name="Maria",
        last_name="Santos",
        role=UserRole.TEACHER,
        approval_status=ApprovalStatus.APPROVED,
    ),
    UserCreate(
        username="student",
        email="student@ilawngbayan.edu.ph",
        first_name="Juan",
        last_name="Dela Cruz",
        role=UserRole.STUDENT,
        approval_status=ApprovalStatus.APPROVED,
        grade_level=GradeLevel.G3,
    ),
]


def sun_and_moon_pages() -> list[PageCreate]:
    """The eight pages of the story, each gated by one multiple-choice question."""
    pages = []
    for number, (title, narration, dialogue, question, options, answer) in enumerate(
        SUN_AND_MOON_PAGES, start=1
    ):
        pages.append(
            PageCreate(
                page_number=number,
                title=title,
                content=f"{narration}\n\n{dialogue}",
                questions=[
                    QuestionCreate(
                        question_text=question,
                        answer_type=AnswerType.MULTIPLE_CHOICE,
                        correct_answer=answer,
                        options="\n".join(options),
                    )
                ],
            )
        )
    return pages


@dataclass
class SeedResult:
    """What a seed run created or found."""

    users: list[User] = field(default_factory=list)
    book: Optional[Book] = None
    created_users: int = 0
    created_book: bool = False


def seed_database(db: Database) -> SeedResult:
    """Create the demo accounts and storybook if they are missing."""
    result = SeedResult()

    for user in DEMO_USERS:
        existing = db.get_user_by_username(user.username)
        if existing:
            result.users.append(existing)
            continue
        result.users.append(db.create_user(user))
        result.created_users += 1

    book = db.get_book_by_title(SUN_AND_MOON_TITLE)
    if book is None:
        book = db.create_book(
            BookCreate(
                title=SUN_AND_MOON_TITLE,
                description="A Filipino legend of how Apolaqui and Mayari came "
                "to share the sky as the Sun and the Moon.",
                type=BookType.STORYBOOK,
                grade=GradeLevel.G3.value,
            ),
            pages=sun_and_moon_pages(),
        )
        result.created_book = True
    result.book = book

    logger.info(
        "Seeded %d user(s); storybook %s",
        result.created_users,
        "created" if result.created_book else "already present",
    )
    return result
