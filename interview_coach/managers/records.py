import asyncio
import json
import uuid
from pathlib import Path
from typing import Dict, List

import aiofiles
import structlog
from pydantic import ValidationError

from ..core.exceptions import PersistenceError, RecordNotFoundError
from ..core.interfaces import SessionRecordStore
from ..core.models import SessionRecord

logger = structlog.get_logger(__name__)


def _newest_first(records: List[SessionRecord]) -> List[SessionRecord]:
    return sorted(records, key=lambda record: record.date, reverse=True)


class InMemoryRecordStore(SessionRecordStore):
    def __init__(self):
        self._records: Dict[str, SessionRecord] = {}

    async def save(self, record: SessionRecord) -> str:
        record_id = record.id or uuid.uuid4().hex
        self._records[record_id] = record.model_copy(update={"id": record_id})
        return record_id

    async def list(self, user_id: str) -> List[SessionRecord]:
        return _newest_first([r for r in self._records.values() if r.user_id == user_id])

    async def delete(self, record_id: str) -> None:
        if self._records.pop(record_id, None) is None:
            raise RecordNotFoundError("Interview not found.", details={"id": record_id})


class JsonFileRecordStore(SessionRecordStore):
    """Keeps every record in one JSON document on disk.

    Reads and writes go through aiofiles; an asyncio lock serializes
    read-modify-write cycles within the process.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def _load(self) -> Dict[str, SessionRecord]:
        if not self.path.exists():
            return {}
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                content = await f.read()
            raw = json.loads(content) if content.strip() else {}
            return {key: SessionRecord.model_validate(value) for key, value in raw.items()}
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error("records_load_failed", path=str(self.path), error=str(e))
            raise PersistenceError("Could not read saved interviews.", details={"error": str(e)}) from e

    async def _dump(self, records: Dict[str, SessionRecord]) -> None:
        payload = {key: record.model_dump(mode="json") for key, record in records.items()}
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(payload, indent=2))
            tmp_path.replace(self.path)
        except OSError as e:
            logger.error("records_write_failed", path=str(self.path), error=str(e))
            raise PersistenceError(
                "Could not save the interview session. Please try again.",
                details={"error": str(e)},
            ) from e

    async def save(self, record: SessionRecord) -> str:
        async with self._lock:
            records = await self._load()
            record_id = record.id or uuid.uuid4().hex
            records[record_id] = record.model_copy(update={"id": record_id})
            await self._dump(records)
        logger.info("record_saved", id=record_id, user_id=record.user_id)
        return record_id

    async def list(self, user_id: str) -> List[SessionRecord]:
        async with self._lock:
            records = await self._load()
        return _newest_first([r for r in records.values() if r.user_id == user_id])

    async def delete(self, record_id: str) -> None:
        async with self._lock:
            records = await self._load()
            if records.pop(record_id, None) is None:
                raise RecordNotFoundError("Interview not found.", details={"id": record_id})
            await self._dump(records)
        logger.info("record_deleted", id=record_id)
