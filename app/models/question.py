from typing import Literal, Optional

from pydantic import ConfigDict

from app.models.base import CamelModel

Section = Literal["reading", "listening", "speaking", "writing"]
Difficulty = Literal["easy", "medium", "hard"]

SECTIONS: tuple[str, ...] = ("reading", "listening", "speaking", "writing")
DIFFICULTIES: tuple[str, ...] = ("easy", "medium", "hard")


class Question(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: Section
    difficulty: Difficulty
    content: str
    passage: Optional[str] = None
    question: str
    options: Optional[list[str]] = None
    correct_answer: Optional[str] = None
    audio_url: Optional[str] = None
    time_limit: int
    points: int
    explanation: Optional[str] = None


class QuestionPage(CamelModel):
    questions: list[Question]
    total: int
    offset: int
    limit: int


class DifficultyCounts(CamelModel):
    easy: int = 0
    medium: int = 0
    hard: int = 0


class SectionStats(CamelModel):
    section: str
    total: int
    by_difficulty: DifficultyCounts
