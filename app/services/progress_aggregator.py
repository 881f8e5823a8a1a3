"""Per-user, per-section running statistics fed by completed sessions.

The average score is an incremental mean over per-session averages, so no
session history is kept: after N sessions it equals the mean of the N values
passed to ``record_completed_session``.
"""

import logging
from datetime import datetime

from app.db.database import Database
from app.errors import InvalidInput
from app.models.base import utc_now
from app.models.progress import UserProgress
from app.models.question import SECTIONS
from app.models.session import TestSession

logger = logging.getLogger(__name__)

PROGRESS_SECTIONS = SECTIONS + ("full",)

MAX_RECOMMENDATIONS = 5
SLOW_SECONDS_PER_QUESTION = 120
STALE_AFTER_DAYS = 3

SECTION_WEAK_AREAS = {
    "reading": ["Reading comprehension", "Vocabulary"],
    "listening": ["Listening comprehension", "Note-taking"],
    "speaking": ["Pronunciation", "Fluency", "Organization"],
    "writing": ["Grammar", "Vocabulary", "Essay structure"],
}

SECTION_RECOMMENDATIONS = {
    "reading": [
        "Practice skimming and scanning techniques",
        "Build academic vocabulary through reading",
    ],
    "listening": [
        "Practice with various accents and speaking speeds",
        "Improve note-taking strategies",
    ],
    "speaking": [
        "Record yourself speaking and analyze pronunciation",
        "Practice organizing responses with clear structure",
    ],
    "writing": [
        "Study essay templates and practice timed writing",
        "Focus on grammar accuracy and sentence variety",
    ],
}


def progress_key(user_id: str, section: str) -> str:
    return f"{user_id}:{section}"


def validate_section(section: str) -> str:
    if section not in PROGRESS_SECTIONS:
        raise InvalidInput("Invalid section")
    return section


def analyze_weak_areas(session: TestSession, average_score: float) -> list[str]:
    weak_areas = []

    if average_score < 70:
        weak_areas.append("Overall comprehension")

    if session.questions:
        time_per_question = session.time_used / len(session.questions)
        if time_per_question > SLOW_SECONDS_PER_QUESTION:
            weak_areas.append("Time management")

    if average_score < 75:
        weak_areas.extend(SECTION_WEAK_AREAS.get(session.section, []))

    return weak_areas


def generate_recommendations(
    progress: UserProgress,
    section: str,
    previous_practice: datetime | None,
    now: datetime,
) -> list[str]:
    """Tiered by running average, then section tips, then a staleness nudge.

    Staleness is measured from the practice before this one; ``lastPracticed``
    has already been moved to ``now`` by the time this runs.
    """
    recommendations = []

    if progress.average_score < 60:
        recommendations.append("Focus on fundamental skills before attempting practice tests")
        recommendations.append("Review basic grammar and vocabulary")
    elif progress.average_score < 80:
        recommendations.append("Practice regularly with timed exercises")
        recommendations.append("Focus on weak areas identified in your sessions")
    else:
        recommendations.append("Take full-length practice tests to maintain your level")
        recommendations.append("Focus on advanced strategies and time optimization")

    recommendations.extend(SECTION_RECOMMENDATIONS.get(section, []))

    if previous_practice is not None and (now - previous_practice).days > STALE_AFTER_DAYS:
        recommendations.append("Practice more frequently - aim for daily sessions")

    return recommendations[:MAX_RECOMMENDATIONS]


async def get_progress(db: Database, user_id: str, section: str) -> UserProgress:
    """Stored progress, or an unsaved zero record."""
    validate_section(section)
    progress = await db.progress.get(progress_key(user_id, section))
    return progress or UserProgress(user_id=user_id, section=section)


async def get_all_progress(db: Database, user_id: str) -> list[UserProgress]:
    return [await get_progress(db, user_id, section) for section in SECTIONS]


async def record_completed_session(
    db: Database,
    session: TestSession,
    average_score: float,
    now: datetime | None = None,
) -> UserProgress:
    now = now or utc_now()
    key = progress_key(session.user_id, session.section)

    async with db.locks.hold(f"progress:{key}"):
        progress = await db.progress.get(key) or UserProgress(user_id=session.user_id, section=session.section)
        previous_practice = progress.last_practiced

        progress.total_questions += len(session.questions)
        progress.sessions_completed += 1
        progress.total_time_spent += session.time_used
        progress.last_practiced = now

        progress.correct_answers += sum(1 for score in session.scores.values() if score > 0)

        n = progress.sessions_completed
        progress.average_score = (progress.average_score * (n - 1) + average_score) / n

        progress.weak_areas = analyze_weak_areas(session, average_score)
        progress.recommendations = generate_recommendations(progress, session.section, previous_practice, now)

        await db.progress.put(key, progress)

    logger.debug(
        "Progress %s: %d sessions, average %.1f",
        key, progress.sessions_completed, progress.average_score,
    )
    return progress
