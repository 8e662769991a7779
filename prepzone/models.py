"""
Core data models for the PrepZone practice engine.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple
import uuid


class QuestionType(Enum):
    """Kinds of practice question the generator can produce."""
    MULTIPLE_CHOICE = "multiple-choice"
    CODING = "coding"
    ERROR_FINDING = "error-finding"
    TIP = "tip"


class Category(Enum):
    """Standard practice categories."""
    DSA = "dsa"
    CODING = "coding"
    APTITUDE = "aptitude"
    TIPS_AND_TRICKS = "tips-and-tricks"

    @property
    def display_name(self) -> str:
        return CATEGORY_NAMES[self]

    @property
    def requires_language(self) -> bool:
        return self is Category.DSA

    @property
    def is_endless(self) -> bool:
        return self is Category.DSA


class Difficulty(Enum):
    EASY = "Easy"
    MODERATE = "Moderate"
    HARD = "Hard"


CATEGORY_NAMES = {
    Category.DSA: "Data Structures & Algorithms",
    Category.CODING: "Coding",
    Category.APTITUDE: "Aptitude",
    Category.TIPS_AND_TRICKS: "Tips and Tricks",
}

SUPPORTED_LANGUAGES = ("JavaScript", "Python", "Java", "C++")
DEFAULT_DSA_LANGUAGE = "JavaScript"

TOTAL_QUESTIONS_CODING = 20
TOTAL_QUESTIONS_DEFAULT = 10
TOTAL_DAILY_QUIZ_QUESTIONS = 20


def new_question_id() -> str:
    """Return a fresh opaque question identifier."""
    return uuid.uuid4().hex


def total_questions_for(category: Category) -> int:
    """Number of questions in a standard session (display denominator for dsa)."""
    if category is Category.CODING:
        return TOTAL_QUESTIONS_CODING
    return TOTAL_QUESTIONS_DEFAULT


@dataclass(frozen=True)
class PracticeQuestion:
    """A single generated practice question. Immutable once issued."""
    id: str
    question: str
    type: QuestionType
    correct_answer: str
    explanation: str = ""
    options: Tuple[str, ...] = ()
    code_snippet: Optional[str] = None
    sample_inputs: Optional[str] = None
    sample_outputs: Optional[str] = None
    language: Optional[str] = None
    company_tags: FrozenSet[str] = frozenset()

    @property
    def has_options(self) -> bool:
        return len(self.options) > 0

    def with_id(self, question_id: str) -> "PracticeQuestion":
        return replace(self, id=question_id)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase shape exchanged with the generator."""
        data: Dict[str, Any] = {
            "id": self.id,
            "question": self.question,
            "type": self.type.value,
            "correctAnswer": self.correct_answer,
            "explanation": self.explanation,
        }
        if self.options:
            data["options"] = list(self.options)
        if self.code_snippet:
            data["codeSnippet"] = self.code_snippet
        if self.sample_inputs:
            data["sampleInputs"] = self.sample_inputs
        if self.sample_outputs:
            data["sampleOutputs"] = self.sample_outputs
        if self.language:
            data["language"] = self.language
        if self.company_tags:
            data["companyTags"] = sorted(self.company_tags)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], question_id: Optional[str] = None) -> "PracticeQuestion":
        """
        Build a question from generator output.

        Raises:
            ValueError: If required fields are missing or have the wrong type
        """
        if not isinstance(data, dict):
            raise ValueError("Question must be a JSON object")

        for key in ("question", "type", "correctAnswer"):
            if key not in data:
                raise ValueError(f"Question missing '{key}' field")
            if not isinstance(data[key], str):
                raise ValueError(f"Question '{key}' field must be a string")

        try:
            question_type = QuestionType(data["type"])
        except ValueError:
            raise ValueError(f"Unknown question type: {data['type']}")

        options = data.get("options") or []
        if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
            raise ValueError("Question 'options' field must be an array of strings")

        tags = data.get("companyTags") or []
        if not isinstance(tags, list):
            raise ValueError("Question 'companyTags' field must be an array")

        return cls(
            id=question_id or data.get("id") or new_question_id(),
            question=data["question"],
            type=question_type,
            correct_answer=data["correctAnswer"],
            explanation=data.get("explanation") or "",
            options=tuple(options),
            code_snippet=data.get("codeSnippet"),
            sample_inputs=data.get("sampleInputs"),
            sample_outputs=data.get("sampleOutputs"),
            language=data.get("language"),
            company_tags=frozenset(str(t) for t in tags),
        )


@dataclass
class StandardSessionConfig:
    """Configuration chosen once when a standard session starts."""
    category: Optional[Category] = None
    difficulty: Optional[Difficulty] = None
    language: Optional[str] = None

    def normalized(self) -> "StandardSessionConfig":
        """Apply category defaults: tips are always Easy, dsa defaults to JavaScript."""
        difficulty = self.difficulty
        language = self.language
        if self.category is Category.TIPS_AND_TRICKS:
            difficulty = Difficulty.EASY
        if self.category is Category.DSA and not language:
            language = DEFAULT_DSA_LANGUAGE
        return StandardSessionConfig(self.category, difficulty, language)

    def validate(self) -> List[str]:
        """Return a list of configuration problems; empty when valid."""
        issues = []
        if self.category is None:
            issues.append("A category is required")
        elif self.category is not Category.TIPS_AND_TRICKS and self.difficulty is None:
            issues.append(f"A difficulty is required for {self.category.display_name}")
        if self.language is not None and self.language not in SUPPORTED_LANGUAGES:
            issues.append(f"Unsupported language: {self.language}")
        return issues


@dataclass(frozen=True)
class Feedback:
    """Result shown after an answer is submitted."""
    is_correct: bool
    explanation: str


@dataclass(frozen=True)
class DailyScoreRecord:
    """One stored daily quiz score for a user and calendar day."""
    score: int
    date: str
    completed_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "date": self.date, "completedAt": self.completed_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DailyScoreRecord":
        """
        Build a record from stored data.

        Raises:
            ValueError: If the score or date is missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError("Daily score record must be a JSON object")
        try:
            return cls(score=int(data["score"]), date=str(data["date"]), completed_at=int(data.get("completedAt", 0)))
        except KeyError as e:
            raise ValueError(f"Daily score record missing {e} field")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Daily score record is malformed: {e}")


@dataclass(frozen=True)
class StreakState:
    """Daily quiz streak counter and the day it was last advanced."""
    daily_quiz_streak: int = 0
    last_quiz_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"dailyQuizStreak": self.daily_quiz_streak, "lastQuizDate": self.last_quiz_date}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StreakState":
        if not data:
            return cls()
        return cls(
            daily_quiz_streak=int(data.get("dailyQuizStreak") or 0),
            last_quiz_date=data.get("lastQuizDate"),
        )


@dataclass(frozen=True)
class DailyBatchSpec:
    """One sub-batch of the daily quiz."""
    topic: str
    difficulty: Difficulty
    count: int = 5


DAILY_QUIZ_PLAN: Tuple[DailyBatchSpec, ...] = (
    DailyBatchSpec("Aptitude", Difficulty.MODERATE),
    DailyBatchSpec("Data Structures & Algorithms", Difficulty.MODERATE),
    DailyBatchSpec("General Coding Concepts", Difficulty.EASY),
    DailyBatchSpec("Top MNC Interview Questions", Difficulty.HARD),
)


@dataclass(frozen=True)
class QuestionReview:
    """Per-question line of the daily quiz results view."""
    question: PracticeQuestion
    user_answer: str
    is_correct: bool


@dataclass
class DailyQuizResult:
    """Final outcome of a daily quiz."""
    score: int
    total: int
    reviews: List[QuestionReview] = field(default_factory=list)

    @property
    def accuracy(self) -> int:
        if self.total <= 0:
            return 0
        return int(self.score * 100 / self.total + 0.5)

    @property
    def summary_message(self) -> str:
        if self.accuracy == 100:
            return "Perfect score! You're a quiz master!"
        if self.accuracy >= 75:
            return "Great job! You're on the right track."
        return "Good effort! Review your answers to learn and improve."
