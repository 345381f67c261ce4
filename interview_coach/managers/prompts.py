from typing import Optional, Sequence

from ..core.models import ResumeDigest, Turn

_STRICT_RUBRIC = """Scoring rubric (be strict and realistic, do not inflate):
- 90-100: nearly every question answered correctly with excellent detail
- 70-89: most questions answered correctly with good detail
- 50-69: about half the questions answered with basic understanding
- 30-49: few questions answered, mostly incomplete or wrong
- 10-29: one or two weak answers
- 0-9: no meaningful answers
Completion matters: unanswered or skipped questions count as zero.
Replies such as "hi" or "I don't know" are not answers."""

_BALANCED_RUBRIC = """Scoring rubric:
- 80-100: strong, accurate and well structured answers
- 60-79: solid answers with some gaps
- 40-59: partial answers, several gaps
- 0-39: little relevant content
Skipped questions lower the score proportionally."""


def _resume_context(role: str, resume: Optional[ResumeDigest]) -> str:
    if resume is None:
        return ""
    if not resume.has_details():
        return f"\nNo detailed resume information is available. Ask general questions relevant to the {role} role.\n"

    lines = ["", "Candidate resume:", f"Job role: {resume.job_role or role}"]
    if resume.skills:
        lines.append("Skills: " + ", ".join(resume.skills))
    if resume.summary:
        lines.append("Summary: " + resume.summary)
    if resume.experience:
        lines.append("Experience:")
        for exp in resume.experience:
            entry = f"- {exp.title} at {exp.company}"
            if exp.duration:
                entry += f" ({exp.duration})"
            if exp.description:
                entry += f": {exp.description}"
            lines.append(entry)
    if resume.education:
        lines.append("Education:")
        for edu in resume.education:
            entry = f"- {edu.degree}, {edu.institution}"
            if edu.year:
                entry += f" ({edu.year})"
            lines.append(entry)
    lines.append(
        "Use the actual technologies, companies and experience listed above. "
        "Where details are missing ask general questions for the role."
    )
    return "\n".join(lines) + "\n"


def question_prompt(role: str,
                    difficulty: str,
                    topics: Sequence[str],
                    resume: Optional[ResumeDigest],
                    count: int) -> str:
    topic_text = ""
    if topics:
        topic_text = "\nFocus on these topics:\n" + "\n".join(f"- {t}" for t in topics) + "\n"

    return f"""You are an expert technical interviewer. Write {count} interview questions.

Job role: {role}
Difficulty: {difficulty}
{topic_text}{_resume_context(role, resume)}
Rules:
1. Write exactly {count} complete questions, ready to be asked aloud.
2. Never use placeholder text such as "[Specific Technology]".
3. Return only the questions, one per line, with no numbering and no other text."""


def strict_question_prompt(role: str, difficulty: str, topics: Sequence[str], count: int) -> str:
    topic_text = f"Focus on these topics: {', '.join(topics)}\n" if topics else ""
    return f"""Write {count} direct interview questions for a {role} position at {difficulty} difficulty.
{topic_text}
Requirements:
- Concrete questions only. No brackets and no placeholder text of any kind.
- Each question must be complete and ready to ask.
- One question per line, no numbering, nothing else."""


def feedback_prompt(question: str, answer: str, role: str, level: str) -> str:
    return f"""You are an expert interview coach. Assess the candidate's answer.

Question: {question}
Answer: {answer}
Role: {role}
Experience level: {level}

For technical questions judge accuracy, depth and problem solving.
For behavioural questions judge structure, relevance and clarity.

Return ONLY a JSON object in exactly this shape, with no other text:
{{
  "good": ["strength 1", "strength 2", "strength 3"],
  "confident": ["moment of confidence 1", "moment 2", "moment 3"],
  "improvement": ["actionable tip 1", "actionable tip 2", "actionable tip 3"]
}}
Each list has exactly three short sentences addressed to the candidate as "you"."""


def transcript_text(turns: Sequence[Turn]) -> str:
    blocks = []
    for number, turn in enumerate(turns, start=1):
        response = turn.response or "(no answer, question skipped)"
        blocks.append(
            f"---\nQuestion {number}: {turn.question}\n"
            f"Candidate answer: {response}\n"
            f"Initial feedback: {turn.feedback.text}"
        )
    return "\n".join(blocks)


def score_prompt(role: str, difficulty: str, turns: Sequence[Turn], strictness: str = "strict") -> str:
    rubric = _STRICT_RUBRIC if strictness == "strict" else _BALANCED_RUBRIC
    return f"""You are an expert career coach giving the final evaluation of a mock interview.

Role: {role}
Difficulty: {difficulty}
Questions asked: {len(turns)}

Transcript:
{transcript_text(turns)}
---

{rubric}

Write a 3-4 sentence summary addressed to the candidate as "you". Be honest and constructive.

Respond with JSON only:
{{"score": <integer 0-100>, "summary": "<summary>"}}"""
