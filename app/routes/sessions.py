"""Test session endpoints: create, answer, complete, abandon, list."""

import logging

from fastapi import APIRouter, Depends, Request

from app.config import settings
from app.db.database import Database, get_db
from app.models.base import round_half_up
from app.models.session import CompletionResult, CreateSessionRequest, SessionList, SubmitAnswerRequest
from app.routes.auth import require_user_owner
from app.services import analytics, question_bank, session_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


async def _emit(db: Database, user_id: str, event_type: str, data: dict, session_id: str) -> None:
    """Append a session event. Failures are logged and not retried."""
    if not settings.emit_session_events:
        return
    try:
        await analytics.record_event(db, user_id, event_type, data, session_id=session_id)
    except Exception:
        logger.exception("Failed to record %s event for session %s", event_type, session_id)


@router.post("")
async def create_session(body: CreateSessionRequest, request: Request, db: Database = Depends(get_db)):
    require_user_owner(request, body.user_id)
    session = await session_store.create_session(
        db, body.user_id, body.type, body.section, body.question_ids, body.time_limit
    )
    await _emit(db, body.user_id, "session_started", {"section": body.section, "sessionType": body.type}, session.id)
    return {"session": session}


@router.get("/user/{user_id}", response_model=SessionList)
async def list_user_sessions(
    user_id: str,
    request: Request,
    limit: int = 10,
    offset: int = 0,
    db: Database = Depends(get_db),
):
    require_user_owner(request, user_id)
    sessions, total = await session_store.list_user_sessions(db, user_id, limit, offset)
    return SessionList(sessions=sessions, total=total)


@router.get("/{session_id}")
async def get_session(session_id: str, request: Request, db: Database = Depends(get_db)):
    session = await session_store.get_session(db, session_id)
    require_user_owner(request, session.user_id)
    return {"session": session}


@router.put("/{session_id}/answer")
async def submit_answer(
    session_id: str,
    body: SubmitAnswerRequest,
    request: Request,
    db: Database = Depends(get_db),
):
    """Record one answer. ``score`` (0-100), when sent, comes from a prior /grade call."""
    owner = await session_store.get_session(db, session_id)
    require_user_owner(request, owner.user_id)

    session = await session_store.submit_answer(
        db, session_id, body.question_id, body.answer, body.time_spent,
        score=body.score, feedback=body.feedback,
    )

    question = question_bank.get_question(body.question_id)
    section = session.section
    if section == "full":
        section = question.type if question else None
    data = {"section": section, "questionId": body.question_id, "timeSpent": body.time_spent}
    if body.score is not None:
        data["score"] = body.score
    if question is not None:
        data["difficulty"] = question.difficulty
    await _emit(db, session.user_id, "question_answered", data, session_id)

    return {"success": True, "session": session}


@router.post("/{session_id}/complete", response_model=CompletionResult)
async def complete_session(session_id: str, request: Request, db: Database = Depends(get_db)):
    owner = await session_store.get_session(db, session_id)
    require_user_owner(request, owner.user_id)

    result = await session_store.complete_session(db, session_id)
    session = result.session

    if result.transitioned:
        # Time and per-answer scores are already on the question_answered events
        data = {"section": session.section, "questionsAnswered": len(session.answers)}
        if session.scores:
            data["score"] = result.average_score
        await _emit(db, session.user_id, "session_completed", data, session_id)

    return CompletionResult(
        session=session,
        total_score=result.total_score,
        average_score=round_half_up(result.average_score),
    )


@router.post("/{session_id}/abandon")
async def abandon_session(session_id: str, request: Request, db: Database = Depends(get_db)):
    owner = await session_store.get_session(db, session_id)
    require_user_owner(request, owner.user_id)
    session = await session_store.abandon_session(db, session_id)
    return {"success": True, "session": session}
