"""Immutable, ordered question catalog loaded once at startup."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from pydantic import TypeAdapter, ValidationError

from trivia.catalog.models import Question, RoundKind

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

logger = structlog.get_logger()

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent / "data" / "questions.json"

_questions_adapter = TypeAdapter(list[Question])


class CatalogError(ValueError):
    """Catalog document is missing, malformed, or breaks a round rule."""


class QuestionCatalog:
    def __init__(self, questions: Sequence[Question]) -> None:
        if not questions:
            raise CatalogError("Catalog must contain at least one question")
        for index, question in enumerate(questions):
            if question.kind == RoundKind.FINAL and question.breadth_limit != 1:
                raise CatalogError(f"Final round {index} must allow money on exactly one option")
        self._questions = tuple(questions)

    def __len__(self) -> int:
        return len(self._questions)

    def __iter__(self) -> Iterator[Question]:
        return iter(self._questions)

    def get(self, index: int) -> Question:
        if not 0 <= index < len(self._questions):
            raise IndexError(f"Round {index} out of range (0-{len(self._questions) - 1})")
        return self._questions[index]

    def is_last(self, index: int) -> bool:
        return index >= len(self._questions) - 1


def load_catalog(path: Path | str | None = None) -> QuestionCatalog:
    """Load and validate a catalog JSON document (the bundled one by default)."""
    catalog_path = Path(path) if path is not None else DEFAULT_CATALOG_PATH
    try:
        raw = catalog_path.read_bytes()
    except OSError as exc:
        raise CatalogError(f"Failed to read catalog: {catalog_path}") from exc

    try:
        questions = _questions_adapter.validate_json(raw)
    except ValidationError as exc:
        raise CatalogError(f"Invalid catalog {catalog_path}: {exc}") from exc

    catalog = QuestionCatalog(questions)
    logger.info("question catalog loaded", path=str(catalog_path), rounds=len(catalog))
    return catalog
