from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


def _split_entries(value: Any, separators: str) -> Any:
    """Accept free-form text from the setup form as well as lists."""
    if value is None:
        return []
    if isinstance(value, str):
        for sep in separators[1:]:
            value = value.replace(sep, separators[0])
        value = value.split(separators[0])
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return value


class ExperienceEntry(BaseModel):
    title: str
    company: str
    duration: str = ""
    description: Optional[str] = None


class EducationEntry(BaseModel):
    degree: str
    institution: str
    year: Optional[str] = None


class ResumeDigest(BaseModel):
    """Already-parsed resume content used to tailor generated questions."""

    model_config = ConfigDict(frozen=True)

    job_role: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    experience: List[ExperienceEntry] = Field(default_factory=list)
    education: List[EducationEntry] = Field(default_factory=list)
    summary: Optional[str] = None

    def has_details(self) -> bool:
        return bool(self.skills or self.experience or self.education)


class SetupData(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str = Field(min_length=2)
    difficulty: Difficulty = Difficulty.MEDIUM
    topics: List[str] = Field(default_factory=list)
    question_bank: List[str] = Field(default_factory=list)
    resume: Optional[ResumeDigest] = None
    duration_minutes: Optional[float] = Field(default=None, gt=0)
    text_only: bool = False

    @field_validator("role")
    @classmethod
    def _strip_role(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("role must be at least 2 characters")
        return value

    @field_validator("topics", mode="before")
    @classmethod
    def _split_topics(cls, value: Any) -> Any:
        return _split_entries(value, ",\n")

    @field_validator("question_bank", mode="before")
    @classmethod
    def _split_bank(cls, value: Any) -> Any:
        return _split_entries(value, "\n")


class FeedbackKind(str, Enum):
    STRUCTURED = "structured"
    FREEFORM = "freeform"
    ERROR = "error"
    SKIPPED = "skipped"


class Feedback(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: FeedbackKind
    good: List[str] = Field(default_factory=list)
    confident: List[str] = Field(default_factory=list)
    improvement: List[str] = Field(default_factory=list)
    text: str = ""

    @classmethod
    def structured(cls, good, confident, improvement) -> "Feedback":
        good, confident, improvement = list(good)[:3], list(confident)[:3], list(improvement)[:3]
        parts = []
        if good:
            parts.append("What went well: " + " ".join(good))
        if confident:
            parts.append("You sounded confident when: " + " ".join(confident))
        if improvement:
            parts.append("To improve: " + " ".join(improvement))
        return cls(
            kind=FeedbackKind.STRUCTURED,
            good=good,
            confident=confident,
            improvement=improvement,
            text=" ".join(parts),
        )

    @classmethod
    def freeform(cls, text: str) -> "Feedback":
        return cls(kind=FeedbackKind.FREEFORM, text=text.strip())

    @classmethod
    def error(cls, message: str) -> "Feedback":
        return cls(kind=FeedbackKind.ERROR, text=message)

    @classmethod
    def skipped(cls) -> "Feedback":
        return cls(kind=FeedbackKind.SKIPPED, text="Question skipped.")


class Turn(BaseModel):
    model_config = ConfigDict(frozen=True)

    question: str
    response: str
    feedback: Feedback


class ScoreResult(BaseModel):
    score: int = Field(ge=0, le=100)
    summary: str
    degraded: bool = False


class SessionRecord(BaseModel):
    id: Optional[str] = None
    user_id: str
    role: str
    difficulty: str
    date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    duration_minutes: int = Field(default=0, ge=0)
    score: int = Field(default=0, ge=0, le=100)
    summary: str = ""
    turns: List[Turn] = Field(default_factory=list)

    @field_validator("date")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
