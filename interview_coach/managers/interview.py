import asyncio
from typing import Optional, Sequence

import structlog
from openai import AsyncOpenAI

from ..core.config import Settings, get_settings
from ..core.exceptions import OracleError
from ..core.interfaces import FeedbackOracle
from ..core.models import Feedback, ScoreResult, Turn
from .parsing import parse_feedback, parse_score
from .prompts import feedback_prompt, score_prompt

logger = structlog.get_logger(__name__)


class OpenAIInterviewManager(FeedbackOracle):
    """Language-model oracle backed by the OpenAI chat completions API."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.settings.OPENAI_API_KEY)
        return self._client

    async def complete(self, prompt: str, temperature: float = 0.7) -> str:
        """Send a single-message prompt, retrying on timeouts and API errors."""
        retries = max(0, self.settings.ORACLE_RETRIES)
        last_error: Exception | None = None

        for attempt in range(retries + 1):
            try:
                response = await asyncio.wait_for(
                    self.client.chat.completions.create(
                        model=self.settings.AI_MODEL,
                        messages=[{"role": "user", "content": prompt}],
                        temperature=temperature,
                    ),
                    timeout=self.settings.ORACLE_TIMEOUT_SECONDS,
                )
                return (response.choices[0].message.content or "").strip()
            except asyncio.TimeoutError as e:
                last_error = e
                logger.warning("oracle_timeout", attempt=attempt + 1)
            except Exception as e:
                last_error = e
                logger.warning("oracle_call_failed", attempt=attempt + 1, error=str(e))

            if attempt < retries:
                await asyncio.sleep(0.5 * (attempt + 1))

        raise OracleError(
            "The language model could not be reached.",
            details={"error": str(last_error), "attempts": retries + 1},
        )

    async def feedback(self, question: str, answer: str, role: str, level: str) -> Feedback:
        text = await self.complete(feedback_prompt(question, answer, role, level), temperature=0.3)
        result = parse_feedback(text)
        logger.debug("feedback_parsed", kind=result.kind.value)
        return result

    async def score(self, role: str, difficulty: str, turns: Sequence[Turn]) -> ScoreResult:
        prompt = score_prompt(role, difficulty, turns, self.settings.SCORING_STRICTNESS)
        text = await self.complete(prompt, temperature=0.2)
        result = parse_score(text)
        logger.info("interview_scored", score=result.score, turns=len(turns))
        return result
