"""
test_session_store.py - Tests for the test session lifecycle

Tests:
- answers charge time against the session clock, floored at zero
- completion computes total/average and feeds progress exactly once
- abandoned sessions cannot be completed
- strict mode rejects late answers
- per-user listing is newest first and paged
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from app.db.database import Database
from app.errors import InvalidInput, NotFound
from app.models.base import new_id, round_half_up
from app.services import progress_aggregator, session_store

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    return Database.in_memory()


async def new_session(db, user_id="u1", section="reading", time_limit=240, now=NOW):
    return await session_store.create_session(db, user_id, "practice", section, ["r1", "r2"], time_limit, now=now)


class TestSubmitAnswer:

    def test_time_is_charged(self, db):
        async def scenario():
            session = await new_session(db)
            updated = await session_store.submit_answer(db, session.id, "r1", "A", 30, now=NOW)
            assert updated.time_remaining == 210
            assert updated.time_used == 30
            assert updated.answers["r1"].answer == "A"
            assert (await session_store.get_session(db, session.id)).time_remaining == 210

        asyncio.run(scenario())

    def test_time_remaining_floored_at_zero(self, db):
        async def scenario():
            session = await new_session(db, time_limit=60)
            updated = await session_store.submit_answer(db, session.id, "r1", "A", 90)
            assert updated.time_remaining == 0

        asyncio.run(scenario())

    def test_negative_time_ignored(self, db):
        async def scenario():
            session = await new_session(db)
            updated = await session_store.submit_answer(db, session.id, "r1", "A", -50)
            assert updated.time_remaining == 240
            assert updated.answers["r1"].time_spent == 0

        asyncio.run(scenario())

    def test_resubmission_overwrites(self, db):
        async def scenario():
            session = await new_session(db)
            await session_store.submit_answer(db, session.id, "r1", "A", 10, score=0)
            updated = await session_store.submit_answer(db, session.id, "r1", "B", 10, score=100, feedback="Correct")
            assert updated.answers["r1"].answer == "B"
            assert updated.scores == {"r1": 100}
            assert updated.feedback == {"r1": "Correct"}
            assert updated.time_remaining == 220

        asyncio.run(scenario())

    def test_unknown_session(self, db):
        with pytest.raises(NotFound, match="Session not found"):
            asyncio.run(session_store.submit_answer(db, "nope", "r1", "A", 10))

    def test_strict_mode_rejects_late_answers(self, db):
        async def scenario():
            session = await new_session(db)
            await session_store.complete_session(db, session.id, now=NOW)
            with pytest.raises(InvalidInput):
                await session_store.submit_answer(db, session.id, "r1", "A", 10, strict=True)
            # lenient mode accepts it
            updated = await session_store.submit_answer(db, session.id, "r1", "A", 10, strict=False)
            assert "r1" in updated.answers

        asyncio.run(scenario())


class TestCompleteSession:

    def test_totals_and_progress(self, db):
        async def scenario():
            session = await new_session(db)
            await session_store.submit_answer(db, session.id, "r1", "A", 30, score=80)
            await session_store.submit_answer(db, session.id, "r2", "B", 30, score=60)
            completed, total, average, transitioned = await session_store.complete_session(db, session.id, now=NOW)

            assert transitioned is True
            assert completed.status == "completed"
            assert completed.completed_at == NOW
            assert total == 140
            assert average == 70

            progress = await progress_aggregator.get_progress(db, "u1", "reading")
            assert progress.sessions_completed == 1
            assert progress.average_score == 70
            assert progress.total_questions == 2
            assert progress.correct_answers == 2
            assert progress.total_time_spent == 60
            assert progress.last_practiced == NOW

        asyncio.run(scenario())

    def test_no_scores_averages_zero(self, db):
        async def scenario():
            session = await new_session(db)
            result = await session_store.complete_session(db, session.id)
            total, average = result.total_score, result.average_score
            assert total == 0
            assert average == 0

        asyncio.run(scenario())

    def test_second_completion_does_not_reaggregate(self, db):
        async def scenario():
            session = await new_session(db)
            await session_store.submit_answer(db, session.id, "r1", "A", 30, score=90)
            first = await session_store.complete_session(db, session.id, now=NOW)
            second = await session_store.complete_session(db, session.id, now=NOW + timedelta(hours=1))

            assert first.transitioned is True
            assert second.transitioned is False
            assert (second.total_score, second.average_score) == (first.total_score, first.average_score)
            assert second.session.completed_at == NOW
            progress = await progress_aggregator.get_progress(db, "u1", "reading")
            assert progress.sessions_completed == 1

        asyncio.run(scenario())

    def test_concurrent_completions_transition_once(self, db):
        async def scenario():
            session = await new_session(db)
            await session_store.submit_answer(db, session.id, "r1", "A", 30, score=100)
            results = await asyncio.gather(
                session_store.complete_session(db, session.id, now=NOW),
                session_store.complete_session(db, session.id, now=NOW),
            )
            assert sorted(r.transitioned for r in results) == [False, True]
            progress = await progress_aggregator.get_progress(db, "u1", "reading")
            assert progress.sessions_completed == 1
            assert len(db.locks) == 0

        asyncio.run(scenario())

    def test_abandoned_session_cannot_complete(self, db):
        async def scenario():
            session = await new_session(db)
            abandoned = await session_store.abandon_session(db, session.id)
            assert abandoned.status == "abandoned"
            with pytest.raises(InvalidInput):
                await session_store.complete_session(db, session.id)

        asyncio.run(scenario())

    def test_completed_session_cannot_be_abandoned(self, db):
        async def scenario():
            session = await new_session(db)
            await session_store.complete_session(db, session.id)
            with pytest.raises(InvalidInput):
                await session_store.abandon_session(db, session.id)

        asyncio.run(scenario())


def test_list_user_sessions(db):
    async def scenario():
        for hours in range(3):
            await new_session(db, now=NOW + timedelta(hours=hours))
        await new_session(db, user_id="u2")

        page, total = await session_store.list_user_sessions(db, "u1", limit=2)
        assert total == 3
        assert [s.started_at for s in page] == [NOW + timedelta(hours=2), NOW + timedelta(hours=1)]

        page, total = await session_store.list_user_sessions(db, "u1", limit=2, offset=2)
        assert [s.started_at for s in page] == [NOW]

        everything, _ = await session_store.list_user_sessions(db, "u1", limit=None)
        assert len(everything) == 3

    asyncio.run(scenario())


def test_ids_are_unique():
    ids = {new_id("session") for _ in range(100)}
    assert len(ids) == 100


def test_round_half_up():
    assert round_half_up(70.5) == 71
    assert round_half_up(70.49) == 70
    assert round_half_up(0) == 0
