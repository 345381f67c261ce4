from typing import List, Optional, Sequence

import structlog

from ..core.config import Settings, get_settings
from ..core.exceptions import OracleError, QuestionGenerationError
from ..core.interfaces import FeedbackOracle, QuestionSource
from ..core.models import ResumeDigest
from .parsing import clean_question_lines, has_placeholders
from .prompts import question_prompt, strict_question_prompt

logger = structlog.get_logger(__name__)

INTRODUCTORY_QUESTIONS = (
    "Tell me about yourself.",
    "Walk me through your most recent role and your main responsibilities.",
    "Why are you interested in this position?",
    "What project are you most proud of, and why?",
    "Where do you see yourself growing in the next few years?",
)


class OracleQuestionSource(QuestionSource):
    def __init__(self, oracle: FeedbackOracle, settings: Optional[Settings] = None):
        self.oracle = oracle
        self.settings = settings or get_settings()

    async def generate(self,
                       role: str,
                       difficulty: str,
                       topics: Sequence[str] = (),
                       resume: Optional[ResumeDigest] = None,
                       literal_bank: Sequence[str] = ()) -> List[str]:
        if literal_bank:
            logger.info("questions_from_bank", count=len(literal_bank))
            return list(literal_bank)

        count = self.settings.QUESTION_COUNT
        try:
            text = await self.oracle.complete(
                question_prompt(role, difficulty, topics, resume, count)
            )
            questions = clean_question_lines(text, count)

            if has_placeholders(questions):
                logger.info("questions_have_placeholders", role=role)
                text = await self.oracle.complete(
                    strict_question_prompt(role, difficulty, topics, count)
                )
                questions = clean_question_lines(text, count)
        except OracleError as e:
            raise QuestionGenerationError(
                "Failed to generate interview questions.", details=e.details
            ) from e

        if not questions:
            raise QuestionGenerationError("No questions were generated.")

        intro_count = max(0, min(self.settings.INTRODUCTORY_QUESTION_COUNT, len(INTRODUCTORY_QUESTIONS)))
        questions = list(INTRODUCTORY_QUESTIONS[:intro_count]) + questions
        logger.info("questions_generated", count=len(questions), introductory=intro_count)
        return questions
