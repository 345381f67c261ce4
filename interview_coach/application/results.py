from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog

from ..core.exceptions import OracleError, PersistenceError
from ..core.interfaces import FeedbackOracle, SessionRecordStore
from ..core.models import ScoreResult, SessionRecord, SetupData, Turn

logger = structlog.get_logger(__name__)

NO_ANSWERS_SUMMARY = (
    "You ended the interview before answering any questions, so there is "
    "nothing to score yet. Try again and answer each question in full."
)
SCORING_UNAVAILABLE_SUMMARY = (
    "We could not score this interview right now. Your answers and feedback "
    "have been kept, so you can review them or save the session."
)


@dataclass(frozen=True)
class SaveOutcome:
    record: SessionRecord
    record_id: Optional[str] = None
    notice: Optional[str] = None

    @property
    def saved(self) -> bool:
        return self.record_id is not None


async def score_session(oracle: FeedbackOracle,
                        setup: SetupData,
                        turns: Sequence[Turn]) -> ScoreResult:
    """Score a finished (or partial) transcript. Never raises on oracle trouble."""
    if not turns:
        return ScoreResult(score=0, summary=NO_ANSWERS_SUMMARY)
    try:
        return await oracle.score(setup.role, setup.difficulty.value, list(turns))
    except OracleError as e:
        logger.warning("scoring_failed", error=e.message)
        return ScoreResult(score=0, summary=SCORING_UNAVAILABLE_SUMMARY, degraded=True)


def build_record(user_id: str,
                 setup: SetupData,
                 score: ScoreResult,
                 turns: Sequence[Turn],
                 started_at: datetime,
                 ended_at: Optional[datetime] = None) -> SessionRecord:
    ended_at = ended_at or datetime.now(timezone.utc)
    minutes = max(0, int(round((ended_at - started_at).total_seconds() / 60)))
    return SessionRecord(
        user_id=user_id,
        role=setup.role,
        difficulty=setup.difficulty.value,
        date=ended_at,
        duration_minutes=minutes,
        score=score.score,
        summary=score.summary,
        turns=list(turns),
    )


async def save_session(store: SessionRecordStore, record: SessionRecord) -> SaveOutcome:
    """Persist a record; failures come back as a notice and the record is kept."""
    try:
        record_id = await store.save(record)
    except PersistenceError as e:
        logger.warning("session_save_failed", error=e.message)
        return SaveOutcome(record=record, notice=e.message)
    return SaveOutcome(record=record.model_copy(update={"id": record_id}), record_id=record_id)
