from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import Field

from app.models.base import CamelModel

SessionKind = Literal["practice", "full_test"]
SessionSection = Literal["reading", "listening", "speaking", "writing", "full"]
SessionStatus = Literal["in_progress", "completed", "abandoned"]


class AnswerRecord(CamelModel):
    answer: Any = None
    time_spent: float = 0
    submitted_at: datetime


class TestSession(CamelModel):
    __test__ = False  # not a pytest class

    id: str
    user_id: str
    type: SessionKind
    section: SessionSection
    questions: list[str] = []
    answers: dict[str, AnswerRecord] = {}
    scores: dict[str, float] = {}
    feedback: dict[str, str] = {}
    started_at: datetime
    completed_at: Optional[datetime] = None
    time_remaining: float
    total_time: float
    status: SessionStatus = "in_progress"
    total_score: Optional[float] = None
    average_score: Optional[float] = None

    @property
    def time_used(self) -> float:
        return self.total_time - self.time_remaining


class CreateSessionRequest(CamelModel):
    user_id: str
    type: SessionKind = "practice"
    section: SessionSection
    question_ids: list[str] = []
    time_limit: float = Field(ge=0)


class SubmitAnswerRequest(CamelModel):
    question_id: str
    answer: Any = None
    time_spent: float = 0
    # Result of a prior /grade call, when the client graded the answer
    score: Optional[float] = None
    feedback: Optional[str] = None


class CompletionResult(CamelModel):
    success: bool = True
    session: TestSession
    total_score: float
    average_score: int


class SessionList(CamelModel):
    sessions: list[TestSession]
    total: int
