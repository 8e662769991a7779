"""
Standard practice session state machine.

A session moves NotStarted -> Active -> Complete, passing through Loading
while a question is being fetched or translated. Each state is its own
immutable value, so impossible combinations (feedback without a question,
a completed session with a pending fetch) cannot be represented.
"""
import asyncio
from dataclasses import dataclass, replace
from enum import Enum
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from .errors import (
    CategoryAlreadyCompletedError,
    EmptyAnswerError,
    InvalidConfigError,
    InvalidSessionStateError,
    NetworkUnavailableError,
    PrepZoneError,
    describe_error,
)
from .grading import grade
from .lifecycle import SessionLifecycleLogger
from .models import (
    SUPPORTED_LANGUAGES,
    Category,
    Feedback,
    PracticeQuestion,
    QuestionType,
    StandardSessionConfig,
    total_questions_for,
)
from .network import NetworkStatus
from .orchestrator import QuestionOrchestrator
from .streak_tracker import StreakTracker


ENCOURAGING_MESSAGES = (
    ("🎉", "Awesome!"),
    ("👍", "Great job!"),
    ("🚀", "You're on fire!"),
    ("✅", "That's it!"),
    ("🎯", "Bullseye!"),
)


class PracticePhase(Enum):
    NOT_STARTED = "not_started"
    LOADING = "loading"
    ACTIVE = "active"
    COMPLETE = "complete"


@dataclass(frozen=True)
class NotStarted:
    phase = PracticePhase.NOT_STARTED


@dataclass(frozen=True)
class Active:
    """A question is on screen; feedback is set once the answer is submitted."""
    config: StandardSessionConfig
    question_number: int
    score: int
    question: PracticeQuestion
    user_answer: str = ""
    feedback: Optional[Feedback] = None

    phase = PracticePhase.ACTIVE


@dataclass(frozen=True)
class Loading:
    """A fetch or translation is in flight; fallback is restored if it fails."""
    config: StandardSessionConfig
    question_number: int
    score: int
    operation: str
    fallback: Union[NotStarted, Active]

    phase = PracticePhase.LOADING


@dataclass(frozen=True)
class Complete:
    config: StandardSessionConfig
    score: int
    total_questions: int
    perfect_score_popup: bool
    completion_saved: bool = True

    phase = PracticePhase.COMPLETE


PracticeState = Union[NotStarted, Loading, Active, Complete]


class StandardPracticeSession:
    """
    Drives one configurable practice session for a single user.

    Network-bound operations run as tasks owned by the session; restarting
    cancels any task still in flight and its result is never applied.
    """

    SESSION_KIND = "standard_practice"

    def __init__(
        self,
        user_id: str,
        orchestrator: QuestionOrchestrator,
        tracker: StreakTracker,
        network_status: Optional[NetworkStatus] = None,
        rng: Optional[random.Random] = None
    ):
        self.logger = logging.getLogger(__name__)
        self.user_id = user_id
        self.orchestrator = orchestrator
        self.tracker = tracker
        self.network_status = network_status or NetworkStatus()
        self._rng = rng or random.Random()

        self._state: PracticeState = NotStarted()
        self._pending: Optional[asyncio.Task] = None
        self._epoch = 0
        self._retry: Optional[Callable[[], Awaitable[PracticeState]]] = None

        self.error: Optional[str] = None
        self.status_kind: Optional[str] = None
        self.encouragement: Optional[str] = None

    @property
    def state(self) -> PracticeState:
        return self._state

    @property
    def phase(self) -> PracticePhase:
        return self._state.phase

    @property
    def config(self) -> Optional[StandardSessionConfig]:
        return getattr(self._state, "config", None)

    @property
    def total_questions(self) -> Optional[int]:
        config = self.config
        if config is None:
            return None
        return total_questions_for(config.category)

    @property
    def is_busy(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def _transition(self, new_state: PracticeState, reason: str = None) -> None:
        SessionLifecycleLogger.log_state_transition(
            self.SESSION_KIND, self.user_id, self._state.phase.value, new_state.phase.value, reason
        )
        self._state = new_state

    def _clear_status(self) -> None:
        self.error = None
        self.status_kind = None

    def _fail(self, error: Exception, operation: str) -> None:
        self.status_kind, self.error = describe_error(error, operation)
        SessionLifecycleLogger.log_error(self.user_id, type(error).__name__, str(error), operation)

    async def _run_request(self, coro: Awaitable[Any]) -> Any:
        """Run a network call as a task owned by this session."""
        task = asyncio.ensure_future(coro)
        self._pending = task
        try:
            return await task
        finally:
            if self._pending is task:
                self._pending = None

    async def _fetch_question(
        self,
        loading: Loading,
        request: Callable[[], Awaitable[PracticeQuestion]],
        on_success: Callable[[PracticeQuestion], PracticeState],
        operation: str,
        retry: Callable[[], Awaitable[PracticeState]]
    ) -> PracticeState:
        """Move to Loading, run the request and land in the resulting state."""
        self._clear_status()
        self.encouragement = None
        epoch = self._epoch
        self._transition(loading, operation)

        try:
            if not self.network_status.can_attempt():
                raise NetworkUnavailableError("No network connection")
            question = await self._run_request(request())
        except asyncio.CancelledError:
            if epoch != self._epoch:
                SessionLifecycleLogger.log_cancellation(self.SESSION_KIND, self.user_id, operation)
                return self._state
            raise
        except PrepZoneError as e:
            if epoch != self._epoch:
                return self._state
            self._fail(e, operation)
            self._retry = retry
            self._transition(loading.fallback, f"{operation} failed")
            return self._state

        if epoch != self._epoch:
            # Session was restarted while the request was in flight.
            return self._state

        self._retry = None
        self._transition(on_success(question), f"{operation} succeeded")
        return self._state

    async def start(self, config: StandardSessionConfig) -> PracticeState:
        """
        Validate the configuration and fetch the first question.

        Raises:
            InvalidSessionStateError: If a session is already running
            InvalidConfigError: If the configuration is incomplete
            CategoryAlreadyCompletedError: If the category was completed today
        """
        if not isinstance(self._state, NotStarted):
            raise InvalidSessionStateError("A practice session is already in progress. Restart it first.")

        issues = config.validate()
        if issues:
            raise InvalidConfigError("; ".join(issues))
        config = config.normalized()

        if await self.tracker.is_completed(self.user_id, config.category):
            raise CategoryAlreadyCompletedError(
                f"You have already completed {config.category.display_name} today. Come back tomorrow!"
            )

        loading = Loading(config, 1, 0, "fetch", NotStarted())
        return await self._fetch_question(
            loading,
            lambda: self.orchestrator.fetch_one(config.category, config.difficulty, config.language),
            lambda q: Active(config, 1, 0, q),
            "fetch a question",
            lambda: self.start(config),
        )

    def select_answer(self, answer: str) -> PracticeState:
        """Record the user's current answer without submitting it."""
        state = self._require_active()
        if state.feedback is not None:
            raise InvalidSessionStateError("This question has already been answered.")
        self._transition_quiet(replace(state, user_answer=answer))
        return self._state

    def submit(self, answer: Optional[str] = None) -> Feedback:
        """
        Grade the current answer and show feedback.

        Raises:
            EmptyAnswerError: If no answer was given
            InvalidSessionStateError: If already submitted or the question is a tip
        """
        state = self._require_active()
        if answer is not None:
            state = replace(state, user_answer=answer)
        if state.feedback is not None:
            raise InvalidSessionStateError("This question has already been answered.")
        if state.question.type is QuestionType.TIP:
            raise InvalidSessionStateError("Tips are not graded. Move on to the next one.")
        if state.user_answer == "":
            raise EmptyAnswerError("Please provide an answer before submitting.")

        result = grade(state.question, state.user_answer)
        feedback = Feedback(result.is_correct, state.question.explanation)
        score = state.score + (1 if result.is_correct else 0)

        if result.is_correct:
            emoji, text = self._rng.choice(ENCOURAGING_MESSAGES)
            self.encouragement = f"{emoji} {text}"
        else:
            self.encouragement = None

        self._transition_quiet(replace(state, score=score, feedback=feedback))
        self.logger.debug(
            f"User {self.user_id} answered question {state.question_number}: correct={result.is_correct}"
        )
        return feedback

    async def next(self) -> PracticeState:
        """
        Advance to the next question, or complete a bounded session.

        Raises:
            InvalidSessionStateError: If the current question has not been answered
        """
        state = self._require_active()
        if state.feedback is None and state.question.type is not QuestionType.TIP:
            raise InvalidSessionStateError("Submit an answer before moving on.")

        config = state.config
        total = total_questions_for(config.category)
        if not config.category.is_endless and state.question_number >= total:
            return await self._complete(state)

        next_number = state.question_number + 1
        loading = Loading(config, next_number, state.score, "fetch", state)
        return await self._fetch_question(
            loading,
            lambda: self.orchestrator.fetch_one(config.category, config.difficulty, config.language),
            lambda q: Active(config, next_number, state.score, q),
            "fetch a question",
            self.next,
        )

    async def change_language(self, language: str) -> PracticeState:
        """
        Re-issue the current dsa question in another language.

        Raises:
            InvalidSessionStateError: If not a dsa session, or feedback is already shown
            InvalidConfigError: If the language is not supported
        """
        state = self._require_active()
        if state.config.category is not Category.DSA:
            raise InvalidSessionStateError("Only Data Structures & Algorithms sessions can change language.")
        if state.feedback is not None:
            raise InvalidSessionStateError("The language cannot be changed after answering.")
        if language not in SUPPORTED_LANGUAGES:
            raise InvalidConfigError(f"Unsupported language: {language}")
        if language == state.config.language:
            return self._state

        new_config = replace(state.config, language=language)
        loading = Loading(new_config, state.question_number, state.score, "translate", state)
        return await self._fetch_question(
            loading,
            lambda: self.orchestrator.translate(
                state.question, language, state.config.category, state.config.difficulty
            ),
            lambda q: Active(new_config, state.question_number, state.score, q),
            "translate the question",
            lambda: self.change_language(language),
        )

    async def retry(self) -> PracticeState:
        """Repeat the last failed fetch."""
        if self._retry is None:
            raise InvalidSessionStateError("There is nothing to retry.")
        retry, self._retry = self._retry, None
        return await retry()

    def dismiss_popup(self) -> PracticeState:
        if isinstance(self._state, Complete) and self._state.perfect_score_popup:
            self._transition_quiet(replace(self._state, perfect_score_popup=False))
        return self._state

    def restart(self) -> PracticeState:
        """Cancel any in-flight request and return to NotStarted."""
        self._epoch += 1
        if self.is_busy:
            self._pending.cancel()
            SessionLifecycleLogger.log_cancellation(self.SESSION_KIND, self.user_id, "restart")
        self._pending = None
        self._retry = None
        self._clear_status()
        self.encouragement = None
        self._transition(NotStarted(), "restart")
        return self._state

    async def _complete(self, state: Active) -> PracticeState:
        config = state.config
        total = total_questions_for(config.category)
        completion_saved = True

        try:
            await self.tracker.record_completion(self.user_id, config.category)
        except PrepZoneError as e:
            completion_saved = False
            self.logger.error(f"Failed to save practice completion for user {self.user_id}: {e}")

        perfect = state.score == total and config.category is not Category.TIPS_AND_TRICKS
        self._transition(
            Complete(config, state.score, total, perfect, completion_saved),
            "session finished"
        )
        return self._state

    def _require_active(self) -> Active:
        if not isinstance(self._state, Active):
            raise InvalidSessionStateError(
                f"No question is active (session is {self._state.phase.value})."
            )
        return self._state

    def _transition_quiet(self, new_state: PracticeState) -> None:
        """Replace the state within the same phase."""
        self._state = new_state

    def snapshot(self) -> Dict[str, Any]:
        """Return everything the UI needs to render the session."""
        state = self._state
        snapshot: Dict[str, Any] = {
            'phase': state.phase.value,
            'error': self.error,
            'status': self.status_kind,
            'encouragement': self.encouragement,
            'can_retry': self._retry is not None,
        }
        config = getattr(state, "config", None)
        if config is not None:
            snapshot['config'] = {
                'category': config.category.value,
                'category_name': config.category.display_name,
                'difficulty': config.difficulty.value if config.difficulty else None,
                'language': config.language,
            }
            snapshot['total_questions'] = total_questions_for(config.category)
            snapshot['endless'] = config.category.is_endless
            snapshot['score'] = state.score

        if isinstance(state, (Active, Loading)):
            snapshot['question_number'] = state.question_number
        if isinstance(state, Loading):
            snapshot['operation'] = state.operation
        if isinstance(state, Active):
            snapshot['question'] = state.question.to_dict()
            snapshot['user_answer'] = state.user_answer
            snapshot['feedback'] = (
                {'is_correct': state.feedback.is_correct, 'explanation': state.feedback.explanation}
                if state.feedback else None
            )
            snapshot['is_last_question'] = (
                not config.category.is_endless
                and state.question_number >= total_questions_for(config.category)
            )
        if isinstance(state, Complete):
            snapshot['perfect_score_popup'] = state.perfect_score_popup
            snapshot['completion_saved'] = state.completion_saved
        return snapshot
