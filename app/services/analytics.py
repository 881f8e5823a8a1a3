"""Analytics event log and the views derived from it.

Provides:
- record_event: append to a user's log and update the coarse UserAnalytics
- get_user_analytics, get_section_analytics, get_progress_over_time,
  get_recommendations, get_dashboard_summary: computed on demand from the log

UserAnalytics is maintained independently of the per-section UserProgress
records, so the two can disagree. All reported means are integers rounded
half up, 0 when there is nothing to average.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any

from pydantic import ValidationError

from app.db.database import Database
from app.errors import InvalidInput
from app.models.analytics import (
    AnalyticsEvent,
    DailyProgress,
    DashboardSummary,
    DifficultyStats,
    EventData,
    EventLog,
    ProgressPoint,
    RecentActivity,
    ScoreTally,
    SectionAnalytics,
    UserAnalytics,
    UserAnalyticsState,
    parse_event_data,
)
from app.models.base import new_id, round_half_up, utc_now
from app.models.question import DIFFICULTIES, SECTIONS

logger = logging.getLogger(__name__)

TIMEFRAME_DAYS: dict[str, int | None] = {"7d": 7, "30d": 30, "90d": 90, "all": None}
DEFAULT_TIMEFRAME = "30d"
ANSWER_EVENT = "question_answered"

TREND_WEEKS = 4
MAX_RECOMMENDATIONS = 5
INACTIVE_AFTER_DAYS = 3
STREAK_TARGET_DAYS = 7
MIN_STUDY_MINUTES = 300

# Placeholder list: mistakes are not derived from actual answers yet.
COMMON_MISTAKES = [
    "Misunderstanding main ideas",
    "Vocabulary gaps",
    "Time management issues",
    "Grammar errors",
    "Pronunciation difficulties",
]


def analytics_lock(user_id: str) -> str:
    return f"analytics:{user_id}"


# ── Recording ────────────────────────────────────────────────────────

def _update_streak(analytics: UserAnalytics, timestamp: datetime) -> None:
    gap = (timestamp.date() - analytics.last_active.date()).days
    if gap == 1:
        analytics.streak_days += 1
    elif gap > 1:
        analytics.streak_days = 1


def _apply_event(state: UserAnalyticsState, event: AnalyticsEvent) -> None:
    analytics = state.analytics
    data = event.event_data

    if event.event_type == "session_started":
        analytics.total_sessions += 1
    elif event.event_type == ANSWER_EVENT:
        analytics.total_questions += 1
        if data.score is not None:
            state.scored_questions += 1
            n = state.scored_questions
            analytics.average_score = (analytics.average_score * (n - 1) + data.score) / n
            if data.section:
                state.section_scores.setdefault(data.section, ScoreTally()).add(data.score)
                ranked = sorted(state.section_scores.items(), key=lambda item: item[1].mean)
                analytics.weakest_section = ranked[0][0]
                analytics.strongest_section = ranked[-1][0]
    elif event.event_type == "time_spent":
        analytics.time_spent += getattr(data, "minutes", 0) or 0

    _update_streak(analytics, event.timestamp)
    analytics.last_active = event.timestamp


async def record_event(
    db: Database,
    user_id: str,
    event_type: str,
    event_data: dict[str, Any] | EventData | None = None,
    session_id: str | None = None,
    now: datetime | None = None,
) -> AnalyticsEvent:
    try:
        data = parse_event_data(event_type, event_data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise InvalidInput(f"Invalid eventData: {field} {first['msg']}".strip()) from e

    timestamp = now or utc_now()
    event = AnalyticsEvent(
        id=new_id("event"),
        user_id=user_id,
        event_type=event_type,
        event_data=data,
        timestamp=timestamp,
        session_id=session_id,
    )

    async with db.locks.hold(analytics_lock(user_id)):
        log = await db.events.get(user_id) or EventLog(user_id=user_id)
        log.events.append(event)
        await db.events.put(user_id, log)

        state = await db.user_analytics.get(user_id) or UserAnalyticsState(
            analytics=UserAnalytics(user_id=user_id, last_active=timestamp)
        )
        _apply_event(state, event)
        await db.user_analytics.put(user_id, state)

    logger.debug("Event %s (%s) recorded for user %s", event.id, event_type, user_id)
    return event


async def get_events(db: Database, user_id: str) -> list[AnalyticsEvent]:
    log = await db.events.get(user_id)
    return log.events if log else []


async def get_stored_analytics(db: Database, user_id: str) -> UserAnalytics | None:
    state = await db.user_analytics.get(user_id)
    return state.analytics if state else None


# ── Helpers over event lists ─────────────────────────────────────────

def validate_timeframe(timeframe: str | None) -> str:
    timeframe = timeframe or DEFAULT_TIMEFRAME
    if timeframe not in TIMEFRAME_DAYS:
        raise InvalidInput("Invalid timeframe")
    return timeframe


def filter_events_by_timeframe(events: list[AnalyticsEvent], timeframe: str, now: datetime) -> list[AnalyticsEvent]:
    days = TIMEFRAME_DAYS[validate_timeframe(timeframe)]
    if days is None:
        return list(events)
    cutoff = now - timedelta(days=days)
    return [e for e in events if e.timestamp >= cutoff]


def matches_section(event: AnalyticsEvent, section: str) -> bool:
    return event.event_data.section == section or section in event.event_type


def answered(events: list[AnalyticsEvent]) -> list[AnalyticsEvent]:
    """The question_answered events. Scores and times are read from these only;
    session events merely summarize them."""
    return [e for e in events if e.event_type == ANSWER_EVENT]


def average_score(events: list[AnalyticsEvent]) -> int:
    scores = [e.event_data.score for e in answered(events) if e.event_data.score is not None]
    if not scores:
        return 0
    return round_half_up(sum(scores) / len(scores))


def average_time(events: list[AnalyticsEvent]) -> int:
    times = [e.event_data.time_spent for e in answered(events) if e.event_data.time_spent is not None]
    if not times:
        return 0
    return round_half_up(sum(times) / len(times))


def total_time(events: list[AnalyticsEvent]) -> float:
    return sum(e.event_data.time_spent or 0 for e in answered(events))


def count_answered(events: list[AnalyticsEvent]) -> int:
    return len(answered(events))


def difficulty_breakdown(events: list[AnalyticsEvent]) -> dict[str, DifficultyStats]:
    breakdown = {}
    for difficulty in DIFFICULTIES:
        matching = [e for e in answered(events) if e.event_data.difficulty == difficulty]
        breakdown[difficulty] = DifficultyStats(attempts=len(matching), average_score=average_score(matching))
    return breakdown


def weekly_buckets(events: list[AnalyticsEvent], now: datetime, weeks: int = TREND_WEEKS) -> list[list[AnalyticsEvent]]:
    """Week-long buckets ending at ``now``, oldest first."""
    buckets = []
    for i in range(weeks):
        end = now - timedelta(days=i * 7)
        start = now - timedelta(days=(i + 1) * 7)
        buckets.insert(0, [e for e in events if start < e.timestamp <= end])
    return buckets


def improvement_trend(events: list[AnalyticsEvent], now: datetime) -> list[int]:
    return [average_score(bucket) for bucket in weekly_buckets(events, now)]


def improvement_rate(events: list[AnalyticsEvent], now: datetime) -> float:
    """Score change between the oldest and newest week that have scores."""
    scored = [
        average_score(bucket)
        for bucket in weekly_buckets(events, now)
        if any(e.event_data.score is not None for e in answered(bucket))
    ]
    if len(scored) < 2:
        return 0.0
    return float(scored[-1] - scored[0])


def _week_start(day: date) -> date:
    # Weeks start on Sunday
    return day - timedelta(days=(day.weekday() + 1) % 7)


def group_events_by_period(events: list[AnalyticsEvent], timeframe: str) -> list[tuple[str, list[AnalyticsEvent]]]:
    grouped: dict[str, list[AnalyticsEvent]] = {}
    for event in events:
        day = event.timestamp.date()
        key = day if timeframe == "7d" else _week_start(day)
        grouped.setdefault(key.isoformat(), []).append(event)
    return sorted(grouped.items())


# ── Read views ───────────────────────────────────────────────────────

async def get_user_analytics(
    db: Database,
    user_id: str,
    timeframe: str = DEFAULT_TIMEFRAME,
    now: datetime | None = None,
) -> UserAnalytics | None:
    now = now or utc_now()
    timeframe = validate_timeframe(timeframe)
    analytics = await get_stored_analytics(db, user_id)
    if analytics is None:
        return None

    events = filter_events_by_timeframe(await get_events(db, user_id), timeframe, now)
    question_events = answered(events)
    return analytics.model_copy(update={
        "total_sessions": sum(1 for e in events if e.event_type == "session_completed"),
        "total_questions": len(question_events),
        "average_score": float(average_score(question_events)),
        "time_spent": total_time(events),
        "improvement_rate": improvement_rate(question_events, now),
    })


async def get_section_analytics(
    db: Database,
    user_id: str,
    section: str | None = None,
    timeframe: str = DEFAULT_TIMEFRAME,
    now: datetime | None = None,
) -> list[SectionAnalytics]:
    now = now or utc_now()
    if section is not None and section not in SECTIONS:
        raise InvalidInput("Invalid section")
    events = filter_events_by_timeframe(await get_events(db, user_id), timeframe, now)

    result = []
    for sec in [section] if section else SECTIONS:
        section_events = [e for e in events if matches_section(e, sec)]
        result.append(SectionAnalytics(
            section=sec,
            total_attempts=count_answered(section_events),
            average_score=average_score(section_events),
            average_time_per_question=average_time(section_events),
            difficulty_breakdown=difficulty_breakdown(section_events),
            common_mistakes=COMMON_MISTAKES[:3],
            improvement_trend=improvement_trend(section_events, now),
        ))
    return result


async def get_progress_over_time(
    db: Database,
    user_id: str,
    section: str | None = None,
    timeframe: str = DEFAULT_TIMEFRAME,
    now: datetime | None = None,
) -> list[ProgressPoint]:
    now = now or utc_now()
    timeframe = validate_timeframe(timeframe)
    if section is not None and section not in SECTIONS:
        raise InvalidInput("Invalid section")
    events = filter_events_by_timeframe(await get_events(db, user_id), timeframe, now)
    if section:
        events = [e for e in events if matches_section(e, section)]

    return [
        ProgressPoint(
            date=period,
            average_score=average_score(group),
            questions_answered=count_answered(group),
            time_spent=total_time(group),
            section=section or "all",
        )
        for period, group in group_events_by_period(events, timeframe)
    ]


async def get_recommendations(db: Database, user_id: str, now: datetime | None = None) -> list[str]:
    now = now or utc_now()
    analytics = await get_stored_analytics(db, user_id)
    if analytics is None:
        return ["Start with a practice session to get personalized recommendations"]

    recommendations = []

    if analytics.average_score < 60:
        recommendations.append("Focus on fundamental concepts before attempting practice tests")
        recommendations.append("Review basic grammar and vocabulary")
    elif analytics.average_score < 80:
        recommendations.append("Practice with timed exercises to improve speed and accuracy")
        recommendations.append(f"Focus on your weakest section: {analytics.weakest_section}")
    else:
        recommendations.append("Take full-length practice tests to maintain your high performance")
        recommendations.append("Focus on advanced strategies and time optimization")

    if (now - analytics.last_active).days > INACTIVE_AFTER_DAYS:
        recommendations.append("Practice more regularly - aim for daily sessions")

    if analytics.streak_days < STREAK_TARGET_DAYS:
        recommendations.append("Build a consistent study habit - try to practice every day")

    if analytics.time_spent < MIN_STUDY_MINUTES:
        recommendations.append("Increase your study time for better results")

    return recommendations[:MAX_RECOMMENDATIONS]


async def get_dashboard_summary(db: Database, user_id: str, now: datetime | None = None) -> DashboardSummary:
    now = now or utc_now()
    analytics = await get_stored_analytics(db, user_id)
    if analytics is None:
        return DashboardSummary()

    events = await get_events(db, user_id)

    recent_activity = [
        RecentActivity(
            date=e.timestamp,
            section=e.event_data.section,
            score=e.event_data.score,
            questions_answered=getattr(e.event_data, "questions_answered", None),
        )
        for e in [e for e in events if e.event_type == "session_completed"][-10:]
    ]

    section_scores = {
        section: average_score([e for e in events if e.event_data.section == section])
        for section in SECTIONS
    }

    weekly_progress = []
    for days_back in range(6, -1, -1):
        day = (now - timedelta(days=days_back)).date()
        day_events = [e for e in events if e.timestamp.date() == day]
        weekly_progress.append(DailyProgress(
            date=day.isoformat(),
            questions_answered=count_answered(day_events),
            average_score=average_score(day_events),
            time_spent=total_time(day_events),
        ))

    return DashboardSummary(
        total_sessions=analytics.total_sessions,
        total_questions=analytics.total_questions,
        average_score=round_half_up(analytics.average_score),
        time_spent=analytics.time_spent,
        streak_days=analytics.streak_days,
        recent_activity=recent_activity,
        section_scores=section_scores,
        weekly_progress=weekly_progress,
    )
