from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from .models import Feedback, ResumeDigest, ScoreResult, SessionRecord, Turn

CaptureResultCallback = Callable[[str, bool], None]
ErrorCallback = Callable[[Exception], None]
DoneCallback = Callable[[], None]


class SpeechCapabilities(ABC):
    """Speech-to-text and text-to-speech primitives of the candidate's device.

    Callbacks are plain functions invoked on the event loop; they must not
    block and must not await.
    """

    @abstractmethod
    def capability_check(self) -> bool:
        """Return True only when both capture and playback are available."""
        pass

    @abstractmethod
    async def start_capture(self,
                            on_result: CaptureResultCallback,
                            on_error: Optional[ErrorCallback] = None) -> None:
        """Begin continuous capture, reporting (text, is_final) pairs."""
        pass

    @abstractmethod
    async def stop_capture(self) -> None:
        """Stop capture. Safe to call when nothing is being captured."""
        pass

    @abstractmethod
    async def speak(self,
                    text: str,
                    on_done: Optional[DoneCallback] = None,
                    on_error: Optional[ErrorCallback] = None) -> bool:
        """Start playback. Returns False when another utterance is still active."""
        pass

    @abstractmethod
    async def cancel_speech(self) -> None:
        """Stop playback; the pending on_done callback never fires afterwards."""
        pass


class FeedbackOracle(ABC):
    @abstractmethod
    async def feedback(self,
                       question: str,
                       answer: str,
                       role: str,
                       level: str) -> Feedback:
        """Return feedback for one answer. Raises OracleError when unreachable."""
        pass

    @abstractmethod
    async def score(self,
                    role: str,
                    difficulty: str,
                    turns: Sequence[Turn]) -> ScoreResult:
        """Score a whole transcript. Raises OracleError when unreachable."""
        pass

    @abstractmethod
    async def complete(self, prompt: str, temperature: float = 0.7) -> str:
        """Send a raw prompt and return the model's text."""
        pass


class QuestionSource(ABC):
    @abstractmethod
    async def generate(self,
                       role: str,
                       difficulty: str,
                       topics: Sequence[str] = (),
                       resume: Optional[ResumeDigest] = None,
                       literal_bank: Sequence[str] = ()) -> List[str]:
        """Return the ordered questions for one session."""
        pass


class SessionRecordStore(ABC):
    @abstractmethod
    async def save(self, record: SessionRecord) -> str:
        """Persist a finished session and return its id."""
        pass

    @abstractmethod
    async def list(self, user_id: str) -> List[SessionRecord]:
        """Return the user's sessions, newest first."""
        pass

    @abstractmethod
    async def delete(self, record_id: str) -> None:
        pass
