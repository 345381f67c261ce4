# tests/conftest.py
import asyncio
import os
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from interview_coach.application.context import SessionContext
from interview_coach.application.controller import SessionController
from interview_coach.core.config import Settings, get_settings
from interview_coach.core.interfaces import FeedbackOracle, SpeechCapabilities
from interview_coach.core.models import Feedback, ScoreResult
from interview_coach.managers.questions import OracleQuestionSource
from interview_coach.managers.records import InMemoryRecordStore


class FakeOracle(FeedbackOracle):
    """Scriptable oracle that records every call."""

    def __init__(self):
        self.feedback_calls = []
        self.score_calls = []
        self.prompts = []
        self.replies: List[str] = []
        self.feedback_error: Optional[Exception] = None
        self.score_error: Optional[Exception] = None
        self.complete_error: Optional[Exception] = None
        self.feedback_gate: Optional[asyncio.Event] = None
        self.score_result = ScoreResult(score=72, summary="Solid answers overall.")

    async def feedback(self, question, answer, role, level):
        self.feedback_calls.append((question, answer, role, level))
        if self.feedback_gate is not None:
            await self.feedback_gate.wait()
        if self.feedback_error is not None:
            raise self.feedback_error
        return Feedback.structured(
            ["You answered directly."],
            ["You explained the trade-off."],
            ["Add a concrete example."],
        )

    async def score(self, role, difficulty, turns):
        self.score_calls.append((role, difficulty, list(turns)))
        if self.score_error is not None:
            raise self.score_error
        return self.score_result

    async def complete(self, prompt, temperature=0.7):
        self.prompts.append(prompt)
        if self.complete_error is not None:
            raise self.complete_error
        return self.replies.pop(0) if self.replies else ""


class FakeSpeech(SpeechCapabilities):
    """In-process speech device driven by the test."""

    def __init__(self, supported: bool = True):
        self.supported = supported
        self.spoken: List[str] = []
        self.cancel_count = 0
        self.capture_starts = 0
        self.capture_stops = 0
        self.speak_error: Optional[Exception] = None
        self.capture_start_error: Optional[Exception] = None
        self._on_done = None
        self._on_result = None
        self._on_error = None

    def capability_check(self):
        return self.supported

    async def start_capture(self, on_result, on_error=None):
        if self.capture_start_error is not None:
            raise self.capture_start_error
        self.capture_starts += 1
        self._on_result = on_result
        self._on_error = on_error

    async def stop_capture(self):
        if self._on_result is not None:
            self.capture_stops += 1
        self._on_result = None
        self._on_error = None

    async def speak(self, text, on_done=None, on_error=None):
        if self.speak_error is not None:
            error, self.speak_error = self.speak_error, None
            raise error
        if self._on_done is not None:
            return False
        self.spoken.append(text)
        self._on_done = on_done or (lambda: None)
        return True

    async def cancel_speech(self):
        self.cancel_count += 1
        self._on_done = None

    @property
    def capturing(self):
        return self._on_result is not None

    def finish_speaking(self):
        callback, self._on_done = self._on_done, None
        assert callback is not None, "nothing is being spoken"
        callback()

    def hear(self, text, is_final=False):
        assert self._on_result is not None, "capture is not running"
        self._on_result(text, is_final)

    def fail_capture(self, error):
        callback = self._on_error
        self._on_result = None
        self._on_error = None
        callback(error)


@pytest.fixture
def test_env_vars():
    """Set up test environment variables."""
    os.environ["ENVIRONMENT"] = "testing"
    os.environ["DEBUG"] = "true"
    os.environ["APP_NAME"] = "Interview Coach Test"
    get_settings.cache_clear()
    yield
    # Clean up
    os.environ.pop("ENVIRONMENT", None)
    os.environ.pop("DEBUG", None)
    os.environ.pop("APP_NAME", None)
    get_settings.cache_clear()

@pytest.fixture
def settings(test_env_vars):
    """Get test settings."""
    return get_settings()

@pytest.fixture
def fast_settings(tmp_path):
    """Settings with short timers so session tests finish quickly."""
    return Settings(
        ENVIRONMENT="testing",
        MAX_SESSION_MINUTES=None,
        EMPTY_CAPTURE_GUARD_SECONDS=0.01,
        CAPTURE_RETRY_DELAY_SECONDS=0.01,
        CAPTURE_TEARDOWN_TIMEOUT_SECONDS=0.05,
        ORACLE_RETRIES=0,
        RECORDS_PATH=tmp_path / "records.json",
    )

@pytest.fixture
def oracle():
    return FakeOracle()

@pytest.fixture
def speech():
    return FakeSpeech()

@pytest.fixture
def make_controller(fast_settings, oracle, speech):
    def _make(speech_device=None):
        context = SessionContext(
            settings=fast_settings,
            oracle=oracle,
            question_source=OracleQuestionSource(oracle, fast_settings),
            speech=speech_device or speech,
            user_id="pytest-user",
        )
        return SessionController(context)
    return _make

@pytest.fixture
def wait_until():
    async def _wait(predicate, timeout=2.0):
        async def _poll():
            while not predicate():
                await asyncio.sleep(0.001)
        await asyncio.wait_for(_poll(), timeout)
    return _wait

@pytest.fixture
def store():
    return InMemoryRecordStore()

@pytest.fixture
def app(fast_settings, oracle, store):
    """Create test app instance."""
    from interview_coach.interface.api.main import create_app
    return create_app(settings=fast_settings, oracle=oracle, store=store)

@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)
