from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from ..dependencies import get_oracle, get_store
from ....application.results import score_session
from ....core.exceptions import PersistenceError, RecordNotFoundError
from ....core.interfaces import FeedbackOracle, SessionRecordStore
from ....core.models import Difficulty, ScoreResult, SessionRecord, SetupData, Turn

router = APIRouter(tags=["records"])


class ScoreRequest(BaseModel):
    role: str = Field(min_length=2)
    difficulty: Difficulty = Difficulty.MEDIUM
    turns: List[Turn] = Field(default_factory=list)


class SavedRecord(BaseModel):
    id: str


@router.get("/records", response_model=List[SessionRecord])
async def list_records(user_id: str, store: SessionRecordStore = Depends(get_store)):
    """Past interviews for a user, newest first."""
    try:
        return await store.list(user_id)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)


@router.post("/records", response_model=SavedRecord, status_code=status.HTTP_201_CREATED)
async def create_record(record: SessionRecord, store: SessionRecordStore = Depends(get_store)):
    try:
        record_id = await store.save(record)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    return SavedRecord(id=record_id)


@router.delete("/records/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_record(record_id: str, store: SessionRecordStore = Depends(get_store)):
    try:
        await store.delete(record_id)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/score", response_model=ScoreResult)
async def score_transcript(request: ScoreRequest, oracle: FeedbackOracle = Depends(get_oracle)):
    """Score a transcript the client already holds, e.g. to retry after a failure."""
    setup = SetupData(role=request.role, difficulty=request.difficulty)
    return await score_session(oracle, setup, request.turns)
