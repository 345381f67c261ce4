from typing import Any, Dict, Optional


class InterviewCoachError(Exception):
    """Base class for every error raised by the interview coach.

    Attributes:
        code: short machine readable identifier
        message: human readable message, safe to show to the candidate
        details: extra debugging context
    """

    code = "COACH_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(f"[{self.code}] {message}")


class InvalidSetupError(InterviewCoachError):
    """Setup data failed validation; the session cannot be constructed."""

    code = "SETUP_INVALID"


class QuestionGenerationError(InterviewCoachError):
    code = "QUESTIONS_UNAVAILABLE"


class SpeechUnavailableError(InterviewCoachError):
    """Capture or playback primitives are missing on the client."""

    code = "SPEECH_UNAVAILABLE"


class CaptureError(InterviewCoachError):
    code = "CAPTURE_FAILED"

    def __init__(
        self,
        message: str,
        transient: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.transient = transient
        super().__init__(message, details)


class PlaybackError(InterviewCoachError):
    code = "PLAYBACK_FAILED"


class OracleError(InterviewCoachError):
    """The language-model call failed or timed out."""

    code = "ORACLE_FAILED"


class PersistenceError(InterviewCoachError):
    code = "PERSISTENCE_FAILED"


class RecordNotFoundError(PersistenceError):
    code = "RECORD_NOT_FOUND"


class SessionFailedError(InterviewCoachError):
    """The session controller stopped on an unexpected error."""

    code = "SESSION_FAILED"
