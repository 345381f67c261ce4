# tests/test_logging.py
import json

import pytest
import structlog

from interview_coach.application.context import SessionContext
from interview_coach.core.logging import setup_logging
from interview_coach.processors.speech import TextOnlySpeech

def test_logging_setup(settings, capsys):
    """Test logging configuration."""
    setup_logging(settings)
    logger = structlog.get_logger()
    assert logger is not None

    # Log a test message
    logger.info("test message")
    
    # Capture the output
    captured = capsys.readouterr()
    output = captured.out.strip()
    
    # For development environment, check console output
    if settings.ENVIRONMENT == "development":
        assert "test message" in output
    # For other environments, verify JSON structure
    else:
        try:
            log_dict = json.loads(output)
            assert log_dict["event"] == "test message"
            assert log_dict["level"] == "info"
            assert "timestamp" in log_dict
        except json.JSONDecodeError as e:
            pytest.fail(f"Log output is not valid JSON: {output}")

@pytest.mark.asyncio
async def test_session_log_carries_session_identity(settings, oracle, capsys):
    """Every line logged for a session names the session and the user."""
    setup_logging(settings)
    context = SessionContext(
        settings=settings,
        oracle=oracle,
        question_source=None,
        speech=TextOnlySpeech(),
        user_id="user-42",
        session_id="session-1",
    )
    async with context:
        pass

    lines = [json.loads(line) for line in capsys.readouterr().out.strip().splitlines()]
    assert [line["event"] for line in lines] == ["session_context_opened", "session_context_closed"]
    assert all(line["session_id"] == "session-1" for line in lines)
    assert all(line["user_id"] == "user-42" for line in lines)
