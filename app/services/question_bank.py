"""Static question catalog: filtered, paged, random and summary access.

The catalog lives in ``app/data/questions.yaml`` and is loaded once, on first
use. Questions are immutable.
"""

import logging
import random
from pathlib import Path

import yaml

from app.errors import InvalidInput
from app.models.question import DIFFICULTIES, SECTIONS, DifficultyCounts, Question, SectionStats

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent.parent / "data"

_catalog: dict[str, list[Question]] | None = None


def _load_catalog() -> dict[str, list[Question]]:
    global _catalog
    if _catalog is None:
        with open(DATA_DIR / "questions.yaml", "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        _catalog = {
            section: [Question.model_validate(item) for item in raw.get(section) or []]
            for section in SECTIONS
        }
        logger.debug(
            "Loaded question bank: %s",
            {section: len(items) for section, items in _catalog.items()},
        )
    return _catalog


def _section_questions(section: str) -> list[Question]:
    catalog = _load_catalog()
    if section not in catalog:
        raise InvalidInput("Invalid section")
    return catalog[section]


def list_questions(
    section: str,
    difficulty: str | None = None,
    limit: int = 10,
    offset: int = 0,
) -> tuple[list[Question], int]:
    """Return one page of a section's questions and the filtered total.

    An unrecognised difficulty is ignored rather than rejected.
    """
    questions = _section_questions(section)
    if difficulty in DIFFICULTIES:
        questions = [q for q in questions if q.difficulty == difficulty]
    offset = max(0, offset)
    limit = max(0, limit)
    return questions[offset:offset + limit], len(questions)


def random_questions(section: str, count: int = 5, rng: random.Random | None = None) -> list[Question]:
    questions = _section_questions(section)
    rng = rng or random.Random()
    return rng.sample(questions, min(max(0, count), len(questions)))


def get_question(question_id: str) -> Question | None:
    for questions in _load_catalog().values():
        for question in questions:
            if question.id == question_id:
                return question
    return None


def stats() -> list[SectionStats]:
    result = []
    for section, questions in _load_catalog().items():
        counts = {d: sum(1 for q in questions if q.difficulty == d) for d in DIFFICULTIES}
        result.append(
            SectionStats(section=section, total=len(questions), by_difficulty=DifficultyCounts(**counts))
        )
    return result
