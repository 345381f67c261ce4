"""Defensive parsing of language-model replies.

Models are asked for strict JSON but routinely wrap it in prose or code
fences. Everything here returns a tagged result or a neutral value; nothing
raises on malformed model output.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Union

from ..core.models import Feedback, ScoreResult

DEFAULT_SCORE = 5
DEFAULT_SUMMARY = (
    "No summary was provided. Review each answer's feedback and focus on "
    "giving complete, specific answers."
)
NEUTRAL_FEEDBACK_TEXT = "Thanks for your answer. Let's move on."

_NUMBERING = re.compile(r"^\s*(?:\d+\s*[.):\-]|[-*•]|Q\d+\s*[.:)])\s*", re.IGNORECASE)
_PLACEHOLDER_MARKERS = ("Specific", "mentioned in resume")
_SCORE_LABEL = re.compile(r"\s*(?:final\s+|overall\s+)?score\s*[:=\-]?\s*", re.IGNORECASE)
_SCORE_SUFFIX = re.compile(r"^\s*(?:/\s*100|%)?\s*[.:,\-]?")


@dataclass(frozen=True)
class ParseOk:
    value: Dict[str, Any]


@dataclass(frozen=True)
class ParseError:
    raw: str
    reason: str


ParseResult = Union[ParseOk, ParseError]


def extract_json_object(text: str) -> ParseResult:
    """Return the first balanced top-level JSON object found in text."""
    if not text or not text.strip():
        return ParseError(raw=text or "", reason="empty reply")

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for pos in range(start, len(text)):
            char = text[pos]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    candidate = text[start:pos + 1]
                    try:
                        value = json.loads(candidate)
                    except json.JSONDecodeError:
                        break
                    if isinstance(value, dict):
                        return ParseOk(value=value)
                    break
        start = text.find("{", start + 1)

    return ParseError(raw=text, reason="no JSON object found")


def _string_list(value: Any, limit: int = 3) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    items = [str(item).strip() for item in value if str(item).strip()]
    return items[:limit]


def parse_feedback(text: str) -> Feedback:
    result = extract_json_object(text)
    if isinstance(result, ParseOk):
        data = result.value
        good = _string_list(data.get("good"))
        confident = _string_list(data.get("confident"))
        improvement = _string_list(data.get("improvement"))
        if good or confident or improvement:
            return Feedback.structured(good, confident, improvement)

        # older prompt shape: {"analysis": ..., "tips": [...]}
        analysis = str(data.get("analysis") or data.get("feedback") or "").strip()
        tips = _string_list(data.get("tips"), limit=5)
        if analysis or tips:
            return Feedback.freeform(" ".join([analysis] + tips).strip())

    stripped = (text or "").strip()
    if stripped:
        return Feedback.freeform(stripped)
    return Feedback.freeform(NEUTRAL_FEEDBACK_TEXT)


def clamp_score(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_SCORE
    if number != number:  # NaN
        return DEFAULT_SCORE
    return int(round(max(0.0, min(100.0, number))))


def parse_score(text: str) -> ScoreResult:
    result = extract_json_object(text)
    if isinstance(result, ParseOk):
        data = result.value
        summary = data.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            summary = DEFAULT_SUMMARY
        raw_score = data.get("score")
        score = clamp_score(raw_score) if raw_score is not None else 0
        return ScoreResult(score=score, summary=summary.strip())

    text = text or ""
    match = re.search(r"-?\d+(?:\.\d+)?", text)
    if match is None:
        return ScoreResult(score=DEFAULT_SCORE, summary=text.strip() or DEFAULT_SUMMARY)
    before, after = text[:match.start()], text[match.end():]
    if _SCORE_LABEL.fullmatch(before):
        before, after = "", _SCORE_SUFFIX.sub("", after, count=1)
    summary = (before + after).strip() or DEFAULT_SUMMARY
    score = clamp_score(match.group(0))
    return ScoreResult(score=score, summary=summary)


def clean_question_lines(text: str, limit: int) -> List[str]:
    questions = []
    for line in (text or "").splitlines():
        line = _NUMBERING.sub("", line.strip()).strip().strip('"').strip()
        if not line:
            continue
        questions.append(line)
        if len(questions) >= limit:
            break
    return questions


def has_placeholders(questions: List[str]) -> bool:
    for question in questions:
        if "[" in question and "]" in question:
            return True
        if any(marker in question for marker in _PLACEHOLDER_MARKERS):
            return True
    return False
