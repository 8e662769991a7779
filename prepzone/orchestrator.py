"""
Question generator orchestration: single fetches, batches, translations
and the sequential daily quiz batch plan.
"""
import asyncio
import inspect
import logging
import random
from dataclasses import replace
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from .errors import GenerationFormatError
from .lifecycle import SessionLifecycleLogger
from .models import (
    DAILY_QUIZ_PLAN,
    Category,
    DailyBatchSpec,
    Difficulty,
    PracticeQuestion,
    QuestionType,
    new_question_id,
)
from .question_generator import QuestionGenerator


logger = logging.getLogger(__name__)

DEFAULT_BATCH_DELAY_MS = 2000

ProgressCallback = Callable[[int, int], Any]


class QuestionOrchestrator:
    """Wraps a QuestionGenerator with id assignment, batching and pacing."""

    def __init__(
        self,
        generator: QuestionGenerator,
        batch_delay_ms: int = DEFAULT_BATCH_DELAY_MS,
        plan: Sequence[DailyBatchSpec] = DAILY_QUIZ_PLAN,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Initialize the orchestrator.

        Args:
            generator: Question source
            batch_delay_ms: Pause between consecutive daily quiz batch calls
            plan: Daily quiz sub-batches, fetched in order
            rng: Random source used to shuffle the daily quiz
            sleep: Coroutine function used for the inter-batch pause
        """
        self.generator = generator
        self.batch_delay_ms = batch_delay_ms
        self.plan = tuple(plan)
        self._rng = rng or random.Random()
        self._sleep = sleep

    @property
    def daily_quiz_size(self) -> int:
        return sum(spec.count for spec in self.plan)

    async def fetch_one(
        self,
        category: Category,
        difficulty: Optional[Difficulty],
        language: Optional[str] = None
    ) -> PracticeQuestion:
        """Request a single question and give it a fresh id."""
        difficulty_name = difficulty.value if difficulty else Difficulty.EASY.value
        start_time = SessionLifecycleLogger.log_generation_start("fetch_one", category.display_name, difficulty_name)
        question = await self.generator.generate_one(category.display_name, difficulty_name, language)
        SessionLifecycleLogger.log_generation_complete("fetch_one", category.display_name, 1, start_time)
        return question.with_id(new_question_id())

    async def fetch_batch(self, topic: str, difficulty: Difficulty, count: int) -> List[PracticeQuestion]:
        """
        Request count multiple-choice questions for one topic in a single call.

        Raises:
            GenerationFormatError: If the generator returns the wrong number of questions
        """
        start_time = SessionLifecycleLogger.log_generation_start("fetch_batch", topic, difficulty.value, count)
        questions = await self.generator.generate_batch(topic, difficulty.value, count)
        if len(questions) != count:
            raise GenerationFormatError(
                f"The AI returned {len(questions)} questions for {topic}, expected {count}."
            )
        SessionLifecycleLogger.log_generation_complete("fetch_batch", topic, count, start_time)
        return [
            replace(q, id=new_question_id(), type=QuestionType.MULTIPLE_CHOICE)
            for q in questions
        ]

    async def translate(
        self,
        question: PracticeQuestion,
        target_language: str,
        category: Optional[Category] = None,
        difficulty: Optional[Difficulty] = None
    ) -> PracticeQuestion:
        """
        Re-express an existing question in another programming language.

        The translated question keeps the original id and company tags.
        """
        topic = category.display_name if category else ""
        difficulty_name = difficulty.value if difficulty else ""
        start_time = SessionLifecycleLogger.log_generation_start("translate", topic, difficulty_name)
        translated = await self.generator.generate_one(
            topic, difficulty_name, target_language, translate_from=question
        )
        SessionLifecycleLogger.log_generation_complete("translate", topic, 1, start_time)
        return replace(
            translated,
            id=question.id,
            company_tags=question.company_tags,
            language=target_language,
        )

    async def generate_daily_quiz(self, progress_callback: Optional[ProgressCallback] = None) -> List[PracticeQuestion]:
        """
        Fetch every daily quiz sub-batch in order and shuffle the result.

        Batches run strictly sequentially with a fixed pause between
        consecutive calls. Any failure aborts the whole sequence.

        Args:
            progress_callback: Called with (generated so far, total) after each batch

        Returns:
            Shuffled list of all generated questions
        """
        total = self.daily_quiz_size
        generated: List[PracticeQuestion] = []

        for index, spec in enumerate(self.plan):
            if index > 0 and self.batch_delay_ms > 0:
                await self._sleep(self.batch_delay_ms / 1000)

            batch = await self.fetch_batch(spec.topic, spec.difficulty, spec.count)
            generated.extend(batch)

            SessionLifecycleLogger.log_batch_progress(len(generated), total)
            if progress_callback is not None:
                result = progress_callback(len(generated), total)
                if inspect.isawaitable(result):
                    await result

        logger.info(f"Generated daily quiz with {len(generated)} questions from {len(self.plan)} batches")
        return self.shuffle_questions(generated)

    def shuffle_questions(self, questions: List[PracticeQuestion]) -> List[PracticeQuestion]:
        """Return a new list with the questions in random order."""
        shuffled = questions.copy()
        self._rng.shuffle(shuffled)
        return shuffled
