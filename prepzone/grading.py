"""
Answer grading and code normalization.

Grading is purely syntactic: multiple-choice answers are compared
case-insensitively, free-text and code answers are compared after
normalization. There is no partial credit.
"""
from dataclasses import dataclass
import re
from typing import Sequence

from .models import PracticeQuestion, QuestionType


# Block comments, or a // comment not preceded by a backslash or a colon.
_COMMENT_PATTERN = re.compile(r"/\*[\s\S]*?\*/|([^\\:]|^)//.*$", re.MULTILINE)
_WHITESPACE_PATTERN = re.compile(r"\s+")


@dataclass(frozen=True)
class GradeResult:
    is_correct: bool


def normalize_code(code: str) -> str:
    """
    Canonicalize a code or free-text answer.

    Strips block comments and single-line comments, removes all whitespace
    and lower-cases the result.

    Args:
        code: Raw answer text

    Returns:
        Normalized string, empty for empty input
    """
    if not code:
        return ""
    without_comments = _COMMENT_PATTERN.sub(r"\1", code)
    return _WHITESPACE_PATTERN.sub("", without_comments).lower()


def answers_match(submitted: str, correct: str) -> bool:
    """Case-insensitive exact comparison used for multiple-choice answers."""
    return (submitted or "").lower() == (correct or "").lower()


def grade(question: PracticeQuestion, raw_answer: str) -> GradeResult:
    """
    Grade a submitted answer against the question's correct answer.

    Args:
        question: The question being answered
        raw_answer: Answer exactly as the user entered or selected it

    Returns:
        GradeResult with the correctness verdict
    """
    if question.type is QuestionType.MULTIPLE_CHOICE:
        return GradeResult(answers_match(raw_answer, question.correct_answer))
    return GradeResult(normalize_code(raw_answer) == normalize_code(question.correct_answer))


def grade_daily_answers(questions: Sequence[PracticeQuestion], answers: Sequence[str]) -> int:
    """
    Count correct answers for an index-aligned question/answer pair of sequences.

    Raises:
        ValueError: If the sequences differ in length
    """
    if len(questions) != len(answers):
        raise ValueError(
            f"Answer count {len(answers)} does not match question count {len(questions)}"
        )
    return sum(
        1 for question, answer in zip(questions, answers)
        if answers_match(answer, question.correct_answer)
    )
