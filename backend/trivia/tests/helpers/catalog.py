"""Small deterministic catalogs for state machine tests."""

from trivia.catalog.catalog import QuestionCatalog
from trivia.catalog.models import Question, QuestionOption, RoundKind


def make_question(
    correct: str,
    letters: str = "ABCD",
    *,
    kind: RoundKind = RoundKind.NORMAL,
    text: str | None = None,
) -> Question:
    return Question(
        text=text or f"Which one is {correct}?",
        kind=kind,
        options=tuple(QuestionOption(id=letter, text=f"Option {letter}", is_correct=letter == correct) for letter in letters),
    )


def make_catalog() -> QuestionCatalog:
    """Three rounds: normal (correct B), reduced (correct A), final (correct B)."""
    return QuestionCatalog(
        [
            make_question("B", "ABCD", kind=RoundKind.NORMAL),
            make_question("A", "ABC", kind=RoundKind.REDUCED),
            make_question("B", "AB", kind=RoundKind.FINAL),
        ],
    )
