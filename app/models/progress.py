from datetime import datetime
from typing import Optional

from app.models.base import CamelModel


class UserProgress(CamelModel):
    user_id: str
    section: str
    total_questions: int = 0
    correct_answers: int = 0
    average_score: float = 0.0
    last_practiced: Optional[datetime] = None
    weak_areas: list[str] = []
    recommendations: list[str] = []
    sessions_completed: int = 0
    total_time_spent: float = 0.0
