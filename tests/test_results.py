# tests/test_results.py
from datetime import datetime, timedelta, timezone

import pytest

from interview_coach.application.results import (
    NO_ANSWERS_SUMMARY,
    SCORING_UNAVAILABLE_SUMMARY,
    build_record,
    save_session,
    score_session,
)
from interview_coach.core.exceptions import OracleError, PersistenceError
from interview_coach.core.interfaces import SessionRecordStore
from interview_coach.core.models import Feedback, ScoreResult, SetupData, Turn

SETUP = SetupData(role="Backend Engineer", difficulty="Hard")
TURNS = [
    Turn(question="Q1", response="A1", feedback=Feedback.freeform("ok")),
    Turn(question="Q2", response="", feedback=Feedback.skipped()),
]


class BrokenStore(SessionRecordStore):
    async def save(self, record):
        raise PersistenceError("Could not save the interview session. Please try again.")

    async def list(self, user_id):
        return []

    async def delete(self, record_id):
        return None


@pytest.mark.asyncio
async def test_empty_transcript_scores_zero_without_oracle(oracle):
    result = await score_session(oracle, SETUP, [])
    assert result == ScoreResult(score=0, summary=NO_ANSWERS_SUMMARY)
    assert oracle.score_calls == []


@pytest.mark.asyncio
async def test_score_passes_transcript_to_oracle(oracle):
    result = await score_session(oracle, SETUP, TURNS)
    assert result.score == 72
    assert oracle.score_calls == [("Backend Engineer", "Hard", TURNS)]


@pytest.mark.asyncio
async def test_scoring_failure_is_degraded(oracle):
    oracle.score_error = OracleError("unreachable")
    result = await score_session(oracle, SETUP, TURNS)
    assert result.degraded is True
    assert result.summary == SCORING_UNAVAILABLE_SUMMARY


def test_build_record_rounds_duration():
    started = datetime(2024, 5, 10, 9, 0, tzinfo=timezone.utc)
    record = build_record(
        "user-1", SETUP, ScoreResult(score=55, summary="Mixed."), TURNS,
        started_at=started, ended_at=started + timedelta(minutes=7, seconds=40),
    )
    assert record.duration_minutes == 8
    assert record.difficulty == "Hard"
    assert record.date == started + timedelta(minutes=7, seconds=40)
    assert len(record.turns) == 2
    assert record.id is None


@pytest.mark.asyncio
async def test_save_session_assigns_id(store):
    record = build_record("user-1", SETUP, ScoreResult(score=55, summary="Mixed."), TURNS,
                          started_at=datetime.now(timezone.utc))
    outcome = await save_session(store, record)
    assert outcome.saved
    assert outcome.record.id == outcome.record_id
    assert [r.id for r in await store.list("user-1")] == [outcome.record_id]


@pytest.mark.asyncio
async def test_failed_save_keeps_record_and_reports_notice():
    record = build_record("user-1", SETUP, ScoreResult(score=55, summary="Mixed."), TURNS,
                          started_at=datetime.now(timezone.utc))
    outcome = await save_session(BrokenStore(), record)
    assert not outcome.saved
    assert outcome.record is record
    assert outcome.notice == "Could not save the interview session. Please try again."
