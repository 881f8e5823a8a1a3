"""
session_store.py - Test session lifecycle

Provides:
- create_session(db, user_id, kind, section, question_ids, time_limit)
- get_session(db, session_id)
- submit_answer(db, session_id, question_id, answer, time_spent, ...)
- complete_session(db, session_id) - marks completed and feeds progress
- abandon_session(db, session_id)
- list_user_sessions(db, user_id, limit, offset)

Sessions are never deleted. Question ids are not checked against the
question bank; that is the caller's job.
"""

import logging
from datetime import datetime
from typing import Any, NamedTuple

from app.config import settings
from app.db.database import Database
from app.errors import InvalidInput, NotFound
from app.models.base import new_id, utc_now
from app.models.session import AnswerRecord, TestSession
from app.services import progress_aggregator

logger = logging.getLogger(__name__)


class Completion(NamedTuple):
    session: TestSession
    total_score: float
    average_score: float
    # False when the session was already completed before this call
    transitioned: bool


def session_lock(session_id: str) -> str:
    return f"session:{session_id}"


async def _require_session(db: Database, session_id: str) -> TestSession:
    session = await db.sessions.get(session_id)
    if session is None:
        raise NotFound("Session not found")
    return session


async def create_session(
    db: Database,
    user_id: str,
    kind: str,
    section: str,
    question_ids: list[str],
    time_limit: float,
    now: datetime | None = None,
) -> TestSession:
    session = TestSession(
        id=new_id("session"),
        user_id=user_id,
        type=kind,
        section=section,
        questions=list(question_ids),
        started_at=now or utc_now(),
        time_remaining=time_limit,
        total_time=time_limit,
        status="in_progress",
    )
    await db.sessions.put(session.id, session)
    logger.info("Session %s created for user %s (%s, %d questions)", session.id, user_id, section, len(question_ids))
    return session


async def get_session(db: Database, session_id: str) -> TestSession:
    return await _require_session(db, session_id)


async def submit_answer(
    db: Database,
    session_id: str,
    question_id: str,
    answer: Any,
    time_spent: float,
    score: float | None = None,
    feedback: str | None = None,
    strict: bool | None = None,
    now: datetime | None = None,
) -> TestSession:
    """Record an answer and charge its time against the session clock.

    ``timeRemaining`` never increases and never drops below zero. In lenient
    mode (the default) answers to completed or abandoned sessions are
    accepted; strict mode rejects them.
    """
    strict = settings.strict_session_answers if strict is None else strict
    time_spent = max(0.0, time_spent or 0.0)

    async with db.locks.hold(session_lock(session_id)):
        session = await _require_session(db, session_id)
        if strict and session.status != "in_progress":
            raise InvalidInput(f"Session is {session.status}")

        session.answers[question_id] = AnswerRecord(
            answer=answer,
            time_spent=time_spent,
            submitted_at=now or utc_now(),
        )
        session.time_remaining = max(0.0, session.time_remaining - time_spent)
        if score is not None:
            session.scores[question_id] = score
        if feedback is not None:
            session.feedback[question_id] = feedback

        await db.sessions.put(session_id, session)
    return session


async def complete_session(
    db: Database,
    session_id: str,
    now: datetime | None = None,
) -> Completion:
    """Mark a session completed and fold it into the user's progress.

    Completing an already completed session returns the stored totals with
    ``transitioned=False`` and does not touch progress again.
    """
    now = now or utc_now()

    async with db.locks.hold(session_lock(session_id)):
        session = await _require_session(db, session_id)

        if session.status == "completed":
            logger.info("Session %s already completed, not re-aggregating", session_id)
            return Completion(session, session.total_score or 0.0, session.average_score or 0.0, False)
        if session.status == "abandoned":
            raise InvalidInput("Session was abandoned")

        scores = list(session.scores.values())
        total_score = float(sum(scores))
        average_score = total_score / len(scores) if scores else 0.0

        session.completed_at = now
        session.status = "completed"
        session.total_score = total_score
        session.average_score = average_score
        await db.sessions.put(session_id, session)

        await progress_aggregator.record_completed_session(db, session, average_score, now=now)

    logger.info("Session %s completed: total=%.1f average=%.1f", session_id, total_score, average_score)
    return Completion(session, total_score, average_score, True)


async def abandon_session(db: Database, session_id: str, now: datetime | None = None) -> TestSession:
    async with db.locks.hold(session_lock(session_id)):
        session = await _require_session(db, session_id)
        if session.status == "completed":
            raise InvalidInput("Session is already completed")
        if session.status == "in_progress":
            session.status = "abandoned"
            session.completed_at = now or utc_now()
            await db.sessions.put(session_id, session)
            logger.info("Session %s abandoned", session_id)
    return session


async def list_user_sessions(
    db: Database,
    user_id: str,
    limit: int | None = 10,
    offset: int = 0,
) -> tuple[list[TestSession], int]:
    """Newest first. Returns (page, total sessions for the user); no limit = all."""
    sessions = [s for s in await db.sessions.values() if s.user_id == user_id]
    sessions.sort(key=lambda s: s.started_at, reverse=True)
    offset = max(0, offset)
    end = None if limit is None else offset + max(0, limit)
    return sessions[offset:end], len(sessions)
