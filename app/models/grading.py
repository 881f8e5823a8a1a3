from typing import Optional

from app.models.base import CamelModel


class GradingRequest(CamelModel):
    question_id: Optional[str] = None
    question_type: str
    user_answer: str = ""
    correct_answer: Optional[str] = None
    audio_url: Optional[str] = None


class DetailedAnalysis(CamelModel):
    grammar: Optional[int] = None
    vocabulary: Optional[int] = None
    pronunciation: Optional[int] = None
    fluency: Optional[int] = None
    coherence: Optional[int] = None
    task_response: Optional[int] = None


class GradingResult(CamelModel):
    score: int
    max_score: int
    percentage: int
    feedback: str
    strengths: list[str] = []
    improvements: list[str] = []
    detailed_analysis: DetailedAnalysis
