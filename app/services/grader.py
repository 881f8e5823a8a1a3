"""
grader.py - Answer grading service

Provides:
- Grader.grade(question_type, submitted_answer, correct_answer, audio_reference)

Reading/listening answers are multiple choice and graded by exact match.
Speaking and writing have no answer key: their sub-scores are synthesized
from the shape of the answer plus draws from the grader's random source.
Pass a seeded ``random.Random`` to make grading reproducible.
"""

import logging
import random
import re

from app.errors import InvalidInput
from app.models.grading import DetailedAnalysis, GradingResult

logger = logging.getLogger(__name__)

MULTIPLE_CHOICE_MAX = 10
SCALED_MAX = 30

# Inclusive lower bound, exclusive upper bound
SPEAKING_RANGES = {
    "pronunciation": (70, 100),
    "fluency": (65, 95),
    "vocabulary": (70, 95),
    "grammar": (70, 95),
    "coherence": (75, 95),
}

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


def _clamp(low: int, high: int, value: int) -> int:
    return min(high, max(low, value))


def _mean_half_up(values: list[int]) -> int:
    """Integer mean, .5 rounded up."""
    return (2 * sum(values) + len(values)) // (2 * len(values))


def _scale_to_30(percentage: int) -> int:
    """round(percentage * 0.3) with .5 rounded up, in integer arithmetic."""
    return (percentage * 3 + 5) // 10


def count_words(text: str) -> int:
    return len(text.split())


def count_sentences(text: str) -> int:
    return sum(1 for part in _SENTENCE_SPLIT_RE.split(text) if part.strip())


def _speaking_feedback(percentage: int) -> str:
    if percentage >= 90:
        return (
            "Excellent speaking performance! Your response demonstrates strong fluency, clear "
            "pronunciation, and effective communication. Continue practicing to maintain this high level."
        )
    if percentage >= 80:
        return (
            "Good speaking performance with clear communication. Focus on the areas marked for "
            "improvement to reach the next level."
        )
    if percentage >= 70:
        return (
            "Satisfactory speaking performance. Your main ideas come through, but there's room for "
            "improvement in fluency and clarity."
        )
    return (
        "Your speaking needs significant improvement. Focus on pronunciation, fluency, and "
        "organizing your thoughts more clearly."
    )


def _writing_feedback(percentage: int, word_count: int) -> str:
    if percentage >= 90:
        feedback = (
            "Excellent writing! Your essay demonstrates strong task response, clear organization, "
            "and sophisticated language use."
        )
    elif percentage >= 80:
        feedback = "Good writing with clear ideas and generally effective communication."
    elif percentage >= 70:
        feedback = "Satisfactory writing that addresses the task with some effectiveness."
    else:
        feedback = "Your writing needs improvement in several areas."

    if word_count < 150:
        feedback += " Your response is too short - aim for at least 250 words to fully develop your ideas."
    elif word_count > 400:
        feedback += " Your response is quite long - focus on being more concise while maintaining depth."
    return feedback


class Grader:
    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def grade(
        self,
        question_type: str,
        submitted_answer: str,
        correct_answer: str | None = None,
        audio_reference: str | None = None,
    ) -> GradingResult:
        if question_type in ("reading", "listening"):
            if correct_answer is None:
                raise InvalidInput("correctAnswer is required for multiple-choice questions")
            return self.grade_multiple_choice(submitted_answer, correct_answer)
        if question_type == "speaking":
            return self.grade_speaking(audio_reference)
        if question_type == "writing":
            return self.grade_writing(submitted_answer or "")
        raise InvalidInput("Invalid question type")

    def grade_multiple_choice(self, submitted_answer: str, correct_answer: str) -> GradingResult:
        is_correct = submitted_answer == correct_answer
        if is_correct:
            return GradingResult(
                score=MULTIPLE_CHOICE_MAX,
                max_score=MULTIPLE_CHOICE_MAX,
                percentage=100,
                feedback="Excellent! You selected the correct answer.",
                strengths=["Accurate comprehension", "Good analytical skills"],
                improvements=[],
                detailed_analysis=DetailedAnalysis(task_response=100),
            )
        return GradingResult(
            score=0,
            max_score=MULTIPLE_CHOICE_MAX,
            percentage=0,
            feedback=(
                f'Incorrect. The correct answer is: "{correct_answer}". Review the passage '
                "carefully to understand why this is the best choice."
            ),
            strengths=[],
            improvements=["Reading comprehension", "Critical analysis", "Attention to detail"],
            detailed_analysis=DetailedAnalysis(task_response=0),
        )

    def grade_speaking(self, audio_reference: str | None = None) -> GradingResult:
        # Audio is not analysed; the reference is only logged.
        logger.debug("Grading speaking response (audio=%s)", audio_reference)
        scores = {name: self.rng.randrange(low, high) for name, (low, high) in SPEAKING_RANGES.items()}
        percentage = _mean_half_up(list(scores.values()))

        strengths = []
        improvements = []

        if scores["pronunciation"] >= 85:
            strengths.append("Clear pronunciation")
        else:
            improvements.append("Work on pronunciation clarity")

        if scores["fluency"] >= 80:
            strengths.append("Good speaking fluency")
        else:
            improvements.append("Practice speaking more smoothly")

        if scores["vocabulary"] >= 85:
            strengths.append("Rich vocabulary usage")
        else:
            improvements.append("Expand vocabulary range")

        if scores["grammar"] >= 85:
            strengths.append("Accurate grammar")
        else:
            improvements.append("Review grammar structures")

        if scores["coherence"] >= 85:
            strengths.append("Well-organized response")
        else:
            improvements.append("Improve response organization")

        return GradingResult(
            score=_scale_to_30(percentage),
            max_score=SCALED_MAX,
            percentage=percentage,
            feedback=_speaking_feedback(percentage),
            strengths=strengths,
            improvements=improvements,
            detailed_analysis=DetailedAnalysis(**scores),
        )

    def grade_writing(self, text: str) -> GradingResult:
        word_count = count_words(text)
        sentence_count = count_sentences(text)

        scores = {
            "task_response": _clamp(60, 100, 70 + (20 if word_count > 150 else 0)),
            "coherence": _clamp(65, 100, 75 + (15 if sentence_count > 3 else 0)),
            "vocabulary": _clamp(70, 100, 80 + (10 if word_count > 200 else 0)),
            "grammar": _clamp(65, 100, 75 + self.rng.randrange(0, 20)),
        }
        percentage = _mean_half_up(list(scores.values()))

        strengths = []
        improvements = []

        if word_count >= 250:
            strengths.append("Adequate length and development")
        else:
            improvements.append("Develop ideas more fully with more details")

        if scores["coherence"] >= 80:
            strengths.append("Good organization and flow")
        else:
            improvements.append("Improve paragraph structure and transitions")

        if scores["vocabulary"] >= 85:
            strengths.append("Varied vocabulary usage")
        else:
            improvements.append("Use more sophisticated vocabulary")

        if scores["grammar"] >= 80:
            strengths.append("Generally accurate grammar")
        else:
            improvements.append("Review grammar and sentence structures")

        return GradingResult(
            score=_scale_to_30(percentage),
            max_score=SCALED_MAX,
            percentage=percentage,
            feedback=_writing_feedback(percentage, word_count),
            strengths=strengths,
            improvements=improvements,
            detailed_analysis=DetailedAnalysis(**scores),
        )
