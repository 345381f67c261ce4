from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from ..core.models import Feedback, Turn


class Phase(str, Enum):
    IDLE = "idle"
    ASKING = "asking"
    LISTENING = "listening"
    PROCESSING = "processing"
    FEEDBACK = "feedback"
    COMPLETE = "complete"


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session published to observers."""
    phase: Phase
    current_index: int
    questions: Tuple[str, ...]
    live_transcript: str
    turns: Tuple[Turn, ...]
    error: Optional[str]
    feedback: Optional[Feedback]
    capture_enabled: bool
    playback_enabled: bool
    stopped_reason: Optional[str]

    @property
    def voice_enabled(self) -> bool:
        return self.capture_enabled and self.playback_enabled

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Optional[str]:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "current_index": self.current_index,
            "question_count": self.question_count,
            "current_question": self.current_question,
            "live_transcript": self.live_transcript,
            "turns": [turn.model_dump(mode="json") for turn in self.turns],
            "error": self.error,
            "feedback": self.feedback.model_dump(mode="json") if self.feedback else None,
            "voice_enabled": self.voice_enabled,
            "capture_enabled": self.capture_enabled,
            "playback_enabled": self.playback_enabled,
            "stopped_reason": self.stopped_reason,
        }


@dataclass
class SessionState:
    """Mutable session record. Only SessionController writes to it."""
    questions: Tuple[str, ...]
    phase: Phase = Phase.IDLE
    current_index: int = 0
    live_transcript: str = ""
    turns: List[Turn] = field(default_factory=list)
    error: Optional[str] = None
    feedback: Optional[Feedback] = None
    capture_enabled: bool = False
    playback_enabled: bool = False
    stopped_reason: Optional[str] = None

    @property
    def current_question(self) -> str:
        return self.questions[self.current_index]

    @property
    def is_last_question(self) -> bool:
        return self.current_index >= len(self.questions) - 1

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            phase=self.phase,
            current_index=self.current_index,
            questions=self.questions,
            live_transcript=self.live_transcript,
            turns=tuple(self.turns),
            error=self.error,
            feedback=self.feedback,
            capture_enabled=self.capture_enabled,
            playback_enabled=self.playback_enabled,
            stopped_reason=self.stopped_reason,
        )
