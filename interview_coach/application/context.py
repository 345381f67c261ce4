import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog

from ..core.config import Settings
from ..core.interfaces import FeedbackOracle, QuestionSource, SpeechCapabilities

logger = structlog.get_logger(__name__)


@dataclass
class SessionContext:
    """Collaborators for one interview, handed to the controller.

    Use as an async context manager; leaving it silences playback and
    releases the microphone whatever state the session ended in.
    """
    settings: Settings
    oracle: FeedbackOracle
    question_source: QuestionSource
    speech: SpeechCapabilities
    user_id: str = "anonymous"
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    log: Any = None

    def __post_init__(self):
        if self.log is None:
            self.log = logger.bind(session_id=self.session_id, user_id=self.user_id)

    async def __aenter__(self) -> "SessionContext":
        self.log.info("session_context_opened")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        try:
            await self.speech.cancel_speech()
            await self.speech.stop_capture()
        finally:
            self.log.info("session_context_closed")
