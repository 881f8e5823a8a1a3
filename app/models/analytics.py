"""Analytics event and aggregate models.

``eventData`` is a tagged union keyed by ``eventType``: the four event kinds the
app emits get their own payload class, anything else falls back to
``GenericEventData``. Every payload keeps unknown keys.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import ConfigDict, SerializeAsAny, model_validator

from app.models.base import CamelModel


class EventData(CamelModel):
    model_config = ConfigDict(extra="allow")

    section: Optional[str] = None
    score: Optional[float] = None
    time_spent: Optional[float] = None
    difficulty: Optional[str] = None


class SessionStartedData(EventData):
    session_type: Optional[str] = None


class QuestionAnsweredData(EventData):
    question_id: Optional[str] = None
    correct: Optional[bool] = None


class TimeSpentData(EventData):
    minutes: float = 0


class SessionCompletedData(EventData):
    questions_answered: Optional[int] = None


class GenericEventData(EventData):
    pass


EVENT_DATA_TYPES: dict[str, type[EventData]] = {
    "session_started": SessionStartedData,
    "question_answered": QuestionAnsweredData,
    "time_spent": TimeSpentData,
    "session_completed": SessionCompletedData,
}


def parse_event_data(event_type: str | None, raw: Any) -> EventData:
    data_cls = EVENT_DATA_TYPES.get(event_type or "", GenericEventData)
    if isinstance(raw, data_cls):
        return raw
    if isinstance(raw, EventData):
        raw = raw.model_dump(by_alias=True)
    return data_cls.model_validate(raw or {})


class AnalyticsEvent(CamelModel):
    id: str
    user_id: str
    event_type: str
    event_data: SerializeAsAny[EventData]
    timestamp: datetime
    session_id: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _shape_event_data(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        values = dict(values)
        event_type = values.get("eventType", values.get("event_type"))
        key = "event_data" if "event_data" in values else "eventData"
        values[key] = parse_event_data(event_type, values.get(key))
        return values


class EventLog(CamelModel):
    """All events of one user, insertion order."""

    user_id: str
    events: list[AnalyticsEvent] = []


class RecordEventRequest(CamelModel):
    user_id: str
    event_type: str
    event_data: dict[str, Any] = {}
    session_id: Optional[str] = None


class UserAnalytics(CamelModel):
    user_id: str
    total_sessions: int = 0
    total_questions: int = 0
    average_score: float = 0.0
    time_spent: float = 0.0
    last_active: datetime
    strongest_section: str = "reading"
    weakest_section: str = "speaking"
    improvement_rate: float = 0.0
    streak_days: int = 1


class ScoreTally(CamelModel):
    total: float = 0.0
    count: int = 0

    def add(self, score: float) -> None:
        self.total += score
        self.count += 1

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0


class UserAnalyticsState(CamelModel):
    """Stored aggregate: the public record plus the tallies that feed it."""

    analytics: UserAnalytics
    scored_questions: int = 0
    section_scores: dict[str, ScoreTally] = {}


class DifficultyStats(CamelModel):
    attempts: int = 0
    average_score: int = 0


class SectionAnalytics(CamelModel):
    section: str
    total_attempts: int
    average_score: int
    average_time_per_question: int
    difficulty_breakdown: dict[str, DifficultyStats]
    common_mistakes: list[str]
    improvement_trend: list[int]


class ProgressPoint(CamelModel):
    date: str
    average_score: int
    questions_answered: int
    time_spent: float
    section: str


class RecentActivity(CamelModel):
    date: datetime
    section: Optional[str] = None
    score: Optional[float] = None
    questions_answered: Optional[int] = None


class DailyProgress(CamelModel):
    date: str
    questions_answered: int
    average_score: int
    time_spent: float


class DashboardSummary(CamelModel):
    total_sessions: int = 0
    total_questions: int = 0
    average_score: int = 0
    time_spent: float = 0
    streak_days: int = 0
    recent_activity: list[RecentActivity] = []
    section_scores: dict[str, int] = {}
    weekly_progress: list[DailyProgress] = []
