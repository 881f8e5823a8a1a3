"""
test_storage.py - Tests for the memory and SQLite repositories
"""

import asyncio
from datetime import datetime, timezone

import pytest

from app.db.database import Database, KeyedLocks, SqliteRepository
from app.models.analytics import EventLog, QuestionAnsweredData
from app.models.session import AnswerRecord, TestSession
from app.services import analytics

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_session(session_id="session_1"):
    return TestSession(
        id=session_id,
        user_id="u1",
        type="practice",
        section="reading",
        questions=["r1"],
        answers={"r1": AnswerRecord(answer="A", time_spent=12.5, submitted_at=NOW)},
        scores={"r1": 100},
        started_at=NOW,
        time_remaining=227.5,
        total_time=240,
    )


def test_memory_repository_hands_out_copies():
    db = Database.in_memory()

    async def scenario():
        session = make_session()
        await db.sessions.put(session.id, session)
        session.status = "abandoned"

        loaded = await db.sessions.get(session.id)
        assert loaded.status == "in_progress"
        loaded.scores["r1"] = 0
        assert (await db.sessions.get(session.id)).scores["r1"] == 100

    asyncio.run(scenario())


def test_sqlite_repository():
    async def scenario():
        db = await Database.sqlite(":memory:")
        try:
            await db.sessions.put("session_1", make_session("session_1"))
            await db.sessions.put("session_2", make_session("session_2"))

            loaded = await db.sessions.get("session_1")
            assert loaded.model_dump() == make_session("session_1").model_dump()
            assert loaded.answers["r1"].submitted_at == NOW

            updated = make_session("session_1")
            updated.status = "completed"
            await db.sessions.put("session_1", updated)
            assert [s.id for s in await db.sessions.values()] == ["session_1", "session_2"]
            assert (await db.sessions.get("session_1")).status == "completed"

            await db.sessions.delete("session_2")
            assert await db.sessions.get("session_2") is None
            assert await db.progress.get("u1:reading") is None
        finally:
            await db.close()

    asyncio.run(scenario())


def test_sqlite_keeps_event_payload_types():
    async def scenario():
        db = await Database.sqlite(":memory:")
        try:
            await analytics.record_event(db, "u1", "question_answered", {"questionId": "r1", "score": 80}, now=NOW)
            log = await db.events.get("u1")
            assert isinstance(log, EventLog)
            assert isinstance(log.events[0].event_data, QuestionAnsweredData)
            assert log.events[0].event_data.question_id == "r1"
        finally:
            await db.close()

    asyncio.run(scenario())


def test_invalid_namespace():
    with pytest.raises(ValueError):
        SqliteRepository(None, "kv; DROP TABLE", TestSession)


def test_keyed_locks_serialize_and_forget_keys():
    locks = KeyedLocks()
    order = []

    async def worker(name):
        async with locks.hold("session:1"):
            order.append(f"{name}-in")
            await asyncio.sleep(0)
            order.append(f"{name}-out")

    async def scenario():
        await asyncio.gather(worker("a"), worker("b"))
        assert len(locks) == 0

        async with locks.hold("session:1"):
            async with locks.hold("progress:u1:reading"):
                assert len(locks) == 2
        assert len(locks) == 0

    asyncio.run(scenario())
    assert order == ["a-in", "a-out", "b-in", "b-out"]


def test_keyed_locks_released_on_error():
    locks = KeyedLocks()

    async def scenario():
        with pytest.raises(RuntimeError):
            async with locks.hold("session:1"):
                raise RuntimeError("boom")
        assert len(locks) == 0
        # the key is usable again
        async with locks.hold("session:1"):
            pass

    asyncio.run(scenario())
