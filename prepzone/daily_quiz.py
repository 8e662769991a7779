"""
Daily quiz state machine.

Phases: loading -> idle | results, idle -> generating -> active -> results,
and results -> idle only through reset() once no score exists for the day.
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .errors import (
    SCORE_NOT_SAVED_MESSAGE,
    STATUS_GENERIC,
    DuplicateScoreError,
    EmptyAnswerError,
    InvalidSessionStateError,
    NetworkUnavailableError,
    PersistenceError,
    PrepZoneError,
    describe_error,
)
from .grading import answers_match, grade_daily_answers
from .lifecycle import SessionLifecycleLogger
from .models import (
    DailyQuizResult,
    DailyScoreRecord,
    PracticeQuestion,
    QuestionReview,
    StreakState,
)
from .network import NetworkStatus
from .orchestrator import QuestionOrchestrator
from .streak_tracker import StreakTracker


ALREADY_RECORDED_MESSAGE = "Today's quiz score was already recorded."

QuizCompleteCallback = Callable[[int, List[str]], Any]


class DailyPhase(Enum):
    LOADING = "loading"
    IDLE = "idle"
    GENERATING = "generating"
    ACTIVE = "active"
    RESULTS = "results"


@dataclass(frozen=True)
class DailyLoading:
    phase = DailyPhase.LOADING


@dataclass(frozen=True)
class Idle:
    phase = DailyPhase.IDLE


@dataclass(frozen=True)
class Generating:
    generated: int
    total: int

    phase = DailyPhase.GENERATING


@dataclass(frozen=True)
class DailyActive:
    """Questions are fixed for the session; answers are index aligned."""
    questions: Tuple[PracticeQuestion, ...]
    answers: Tuple[str, ...]
    current_index: int = 0

    phase = DailyPhase.ACTIVE

    @property
    def current_question(self) -> PracticeQuestion:
        return self.questions[self.current_index]

    @property
    def current_answer(self) -> str:
        return self.answers[self.current_index]

    @property
    def is_last_question(self) -> bool:
        return self.current_index == len(self.questions) - 1


@dataclass(frozen=True)
class Results:
    """Final view; result reviews are empty when shown from a stored record."""
    result: DailyQuizResult
    record: Optional[DailyScoreRecord] = None
    streak: Optional[StreakState] = None
    score_saved: bool = True
    answers: Tuple[str, ...] = field(default_factory=tuple)

    phase = DailyPhase.RESULTS


DailyState = Union[DailyLoading, Idle, Generating, DailyActive, Results]


class DailyQuiz:
    """Runs the once-per-day 20 question quiz for one user."""

    SESSION_KIND = "daily_quiz"

    def __init__(
        self,
        user_id: str,
        orchestrator: QuestionOrchestrator,
        tracker: StreakTracker,
        network_status: Optional[NetworkStatus] = None,
        on_quiz_complete: Optional[QuizCompleteCallback] = None
    ):
        self.logger = logging.getLogger(__name__)
        self.user_id = user_id
        self.orchestrator = orchestrator
        self.tracker = tracker
        self.network_status = network_status or NetworkStatus()
        self.on_quiz_complete = on_quiz_complete

        self._state: DailyState = DailyLoading()
        self._task: Optional[asyncio.Task] = None
        self._epoch = 0
        self._finishing = False

        self.error: Optional[str] = None
        self.status_kind: Optional[str] = None
        self.warning: Optional[str] = None

    @property
    def state(self) -> DailyState:
        return self._state

    @property
    def phase(self) -> DailyPhase:
        return self._state.phase

    @property
    def is_finishing(self) -> bool:
        return self._finishing

    def _transition(self, new_state: DailyState, reason: str = None) -> None:
        SessionLifecycleLogger.log_state_transition(
            self.SESSION_KIND, self.user_id, self._state.phase.value, new_state.phase.value, reason
        )
        self._state = new_state

    def _set_error(self, error: Exception, operation: str) -> None:
        self.status_kind, self.error = describe_error(error, operation)
        SessionLifecycleLogger.log_error(self.user_id, type(error).__name__, str(error), operation)

    def _clear_messages(self) -> None:
        self.error = None
        self.status_kind = None
        self.warning = None

    def _results_from_record(self, record: DailyScoreRecord, streak: Optional[StreakState] = None) -> Results:
        return Results(
            result=DailyQuizResult(record.score, self.orchestrator.daily_quiz_size),
            record=record,
            streak=streak,
        )

    async def load(self) -> DailyState:
        """Look up today's score and choose between idle and results."""
        if self.phase in (DailyPhase.GENERATING, DailyPhase.ACTIVE):
            raise InvalidSessionStateError("The daily quiz is in progress.")
        self._clear_messages()

        try:
            record = await self.tracker.todays_score(self.user_id)
        except PersistenceError as e:
            self._set_error(e, "load today's quiz")
            self._transition(Idle(), "score lookup failed")
            return self._state

        if record is not None:
            self._transition(self._results_from_record(record), "already taken today")
        else:
            self._transition(Idle(), "no score today")
        return self._state

    async def start(self) -> DailyState:
        """
        Generate today's questions, or show today's results if already taken.

        Raises:
            InvalidSessionStateError: If the quiz is not idle
        """
        if not isinstance(self._state, Idle):
            raise InvalidSessionStateError(
                f"The daily quiz cannot be started while {self.phase.value}."
            )
        self._clear_messages()

        try:
            record = await self.tracker.todays_score(self.user_id)
        except PersistenceError as e:
            self._set_error(e, "start the daily quiz")
            return self._state

        if record is not None:
            self._transition(self._results_from_record(record), "already taken today")
            return self._state

        if not self.network_status.can_attempt():
            self._set_error(NetworkUnavailableError("No network connection"), "start the daily quiz")
            return self._state

        epoch = self._epoch
        total = self.orchestrator.daily_quiz_size
        self._transition(Generating(0, total), "start")

        def on_progress(generated: int, progress_total: int) -> None:
            if epoch == self._epoch and isinstance(self._state, Generating):
                self._state = Generating(generated, progress_total)

        task = asyncio.ensure_future(self.orchestrator.generate_daily_quiz(on_progress))
        self._task = task
        try:
            questions = await task
        except asyncio.CancelledError:
            if epoch != self._epoch:
                return self._state
            raise
        except PrepZoneError as e:
            if epoch != self._epoch:
                return self._state
            self._set_error(e, "generate the daily quiz")
            self._transition(Idle(), "generation failed")
            return self._state
        finally:
            if self._task is task:
                self._task = None

        if epoch != self._epoch:
            return self._state

        self._transition(
            DailyActive(tuple(questions), tuple("" for _ in questions)),
            "questions ready"
        )
        return self._state

    def select_answer(self, answer: str) -> DailyState:
        """Record an answer for the current question only."""
        state = self._require_active()
        answers = list(state.answers)
        answers[state.current_index] = answer
        self._state = DailyActive(state.questions, tuple(answers), state.current_index)
        return self._state

    def next(self) -> DailyState:
        state = self._require_active()
        if not state.current_answer:
            raise EmptyAnswerError("Please select an answer before moving on.")
        if state.is_last_question:
            raise InvalidSessionStateError("This is the last question. Finish the quiz to see your results.")
        return self.go_to(state.current_index + 1)

    def previous(self) -> DailyState:
        state = self._require_active()
        if state.current_index == 0:
            raise InvalidSessionStateError("This is the first question.")
        return self.go_to(state.current_index - 1)

    def go_to(self, index: int) -> DailyState:
        """Jump to a question; only answered questions and the first unanswered one are reachable."""
        state = self._require_active()
        if index < 0 or index >= len(state.questions):
            raise InvalidSessionStateError(f"Question {index + 1} does not exist.")

        first_unanswered = next(
            (i for i, answer in enumerate(state.answers) if not answer), len(state.answers)
        )
        if index > first_unanswered:
            raise InvalidSessionStateError("Answer the earlier questions first.")

        self._state = DailyActive(state.questions, state.answers, index)
        return self._state

    async def finish(self) -> DailyState:
        """
        Grade the quiz, save today's score and advance the streak.

        A persistence failure still shows results, with score_saved False.

        Raises:
            InvalidSessionStateError: If not on the last question
            EmptyAnswerError: If any question is unanswered
        """
        state = self._require_active()
        if self._finishing:
            raise InvalidSessionStateError("The daily quiz is already being submitted.")
        if not state.is_last_question:
            raise InvalidSessionStateError("Finish is only available on the last question.")
        if not all(state.answers):
            raise EmptyAnswerError("Please answer every question before finishing.")

        self._finishing = True
        try:
            return await self._finish(state)
        finally:
            self._finishing = False

    async def _finish(self, state: DailyActive) -> DailyState:
        answers = list(state.answers)
        score = grade_daily_answers(state.questions, answers)
        reviews = [
            QuestionReview(q, answer, answers_match(answer, q.correct_answer))
            for q, answer in zip(state.questions, answers)
        ]
        self._clear_messages()
        score_saved = True

        try:
            await self.tracker.save_todays_score(self.user_id, score)
        except DuplicateScoreError as e:
            score_saved = False
            self.warning = ALREADY_RECORDED_MESSAGE
            self.logger.warning(f"Daily score for user {self.user_id} already recorded: {e}")
        except PersistenceError as e:
            score_saved = False
            self.warning = SCORE_NOT_SAVED_MESSAGE
            self.status_kind = STATUS_GENERIC
            self.logger.error(f"Failed to save daily score for user {self.user_id}: {e}")

        record = None
        streak = None
        if score_saved:
            try:
                await self.tracker.update_streak(self.user_id)
                record = await self.tracker.todays_score(self.user_id)
                streak = await self.tracker.get_streak(self.user_id)
            except PersistenceError as e:
                self.logger.error(f"Failed to update streak for user {self.user_id}: {e}")

        await self._notify_complete(score, answers)

        self._transition(
            Results(
                result=DailyQuizResult(score, len(state.questions), reviews),
                record=record,
                streak=streak,
                score_saved=score_saved,
                answers=tuple(answers),
            ),
            "finished"
        )
        return self._state

    async def _notify_complete(self, score: int, answers: List[str]) -> None:
        if self.on_quiz_complete is None:
            return
        try:
            result = self.on_quiz_complete(score, list(answers))
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.error(f"Quiz completion callback failed for user {self.user_id}: {e}")

    def cancel(self) -> DailyState:
        """Abandon generation or an unfinished quiz and return to idle."""
        if self.phase not in (DailyPhase.GENERATING, DailyPhase.ACTIVE):
            raise InvalidSessionStateError("There is no daily quiz in progress to cancel.")
        if self._finishing:
            raise InvalidSessionStateError("The daily quiz is being submitted and can no longer be cancelled.")

        self._epoch += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
            SessionLifecycleLogger.log_cancellation(self.SESSION_KIND, self.user_id, "generate the daily quiz")
        self._task = None
        self._clear_messages()
        self._transition(Idle(), "cancelled")
        return self._state

    async def reset(self) -> DailyState:
        """Leave results once the day has rolled over."""
        if not isinstance(self._state, Results):
            raise InvalidSessionStateError("Reset is only available from the results view.")

        try:
            record = await self.tracker.todays_score(self.user_id)
        except PersistenceError as e:
            self._set_error(e, "load today's quiz")
            return self._state

        if record is not None:
            self.logger.debug(f"User {self.user_id} already has a daily score for {record.date}")
            return self._state

        self._clear_messages()
        self._transition(Idle(), "new day")
        return self._state

    def _require_active(self) -> DailyActive:
        if not isinstance(self._state, DailyActive):
            raise InvalidSessionStateError(
                f"No daily quiz is active (quiz is {self.phase.value})."
            )
        return self._state

    def snapshot(self) -> Dict[str, Any]:
        state = self._state
        snapshot: Dict[str, Any] = {
            'phase': state.phase.value,
            'error': self.error,
            'status': self.status_kind,
            'warning': self.warning,
        }

        if isinstance(state, Generating):
            snapshot['progress'] = {'generated': state.generated, 'total': state.total}

        if isinstance(state, DailyActive):
            snapshot['current_index'] = state.current_index
            snapshot['total_questions'] = len(state.questions)
            snapshot['question'] = state.current_question.to_dict()
            snapshot['user_answer'] = state.current_answer
            snapshot['answered'] = sum(1 for answer in state.answers if answer)
            snapshot['is_last_question'] = state.is_last_question

        if isinstance(state, Results):
            snapshot['score'] = state.result.score
            snapshot['total_questions'] = state.result.total
            snapshot['accuracy'] = state.result.accuracy
            snapshot['summary_message'] = state.result.summary_message
            snapshot['score_saved'] = state.score_saved
            snapshot['streak'] = state.streak.daily_quiz_streak if state.streak else None
            snapshot['reviews'] = [
                {
                    'question': review.question.question,
                    'user_answer': review.user_answer,
                    'correct_answer': review.question.correct_answer,
                    'is_correct': review.is_correct,
                    'explanation': review.question.explanation,
                }
                for review in state.result.reviews
            ]
        return snapshot
