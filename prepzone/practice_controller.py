"""
Practice controller for the PrepZone bot.
Owns the standard practice session and daily quiz of every user.
"""
from datetime import datetime, timedelta
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .daily_quiz import DailyPhase, DailyQuiz, QuizCompleteCallback
from .errors import PrepZoneError, SessionError, describe_error
from .models import SUPPORTED_LANGUAGES, Category, Difficulty, StandardSessionConfig
from .network import NetworkStatus
from .orchestrator import QuestionOrchestrator
from .practice_session import PracticePhase, StandardPracticeSession
from .streak_tracker import StreakTracker


class PracticeController:
    """
    Routes user commands to per-user practice sessions and daily quizzes.

    Every public operation returns a result dictionary with 'success',
    'user_message' and, when it succeeded, the resulting 'state' snapshot.
    """

    def __init__(
        self,
        orchestrator: QuestionOrchestrator,
        tracker: StreakTracker,
        network_status: Optional[NetworkStatus] = None,
        on_quiz_complete: Optional[QuizCompleteCallback] = None
    ):
        """
        Initialize the practice controller.

        Args:
            orchestrator: Question source shared by all sessions
            tracker: Streak and completion tracker
            network_status: Shared connectivity state
            on_quiz_complete: Called with (score, answers) when a daily quiz finishes
        """
        self.logger = logging.getLogger(__name__)
        self.orchestrator = orchestrator
        self.tracker = tracker
        self.network_status = network_status or NetworkStatus()
        self.on_quiz_complete = on_quiz_complete

        self._practice_sessions: Dict[str, StandardPracticeSession] = {}
        self._daily_quizzes: Dict[str, DailyQuiz] = {}
        self._last_activity: Dict[str, datetime] = {}

        self._session_errors: Dict[str, List[str]] = {}
        self._idle_timeout = timedelta(hours=2)

        self.logger.info("PracticeController initialized")

    def _touch(self, user_id: str) -> None:
        self._last_activity[user_id] = datetime.now()

    def get_practice_session(self, user_id: str) -> StandardPracticeSession:
        session = self._practice_sessions.get(user_id)
        if session is None:
            session = StandardPracticeSession(user_id, self.orchestrator, self.tracker, self.network_status)
            self._practice_sessions[user_id] = session
        self._touch(user_id)
        return session

    def get_daily_quiz(self, user_id: str) -> DailyQuiz:
        quiz = self._daily_quizzes.get(user_id)
        if quiz is None:
            quiz = DailyQuiz(
                user_id, self.orchestrator, self.tracker, self.network_status, self.on_quiz_complete
            )
            self._daily_quizzes[user_id] = quiz
        self._touch(user_id)
        return quiz

    def has_active_practice(self, user_id: str) -> bool:
        session = self._practice_sessions.get(user_id)
        return session is not None and session.phase in (PracticePhase.LOADING, PracticePhase.ACTIVE)

    def has_active_daily_quiz(self, user_id: str) -> bool:
        quiz = self._daily_quizzes.get(user_id)
        return quiz is not None and quiz.phase in (DailyPhase.GENERATING, DailyPhase.ACTIVE)

    def _handle_session_error(self, user_id: str, error: Exception, operation: str) -> Dict[str, Any]:
        """
        Log an error and build the failure result for it.

        Args:
            user_id: User the operation was for
            error: The exception that occurred
            operation: Description of the operation that failed
        """
        if isinstance(error, SessionError):
            self.logger.info(f"Rejected {operation} for user {user_id}: {error}")
        else:
            self.logger.error(f"Error in {operation} for user {user_id}: {error}", exc_info=True)

        errors = self._session_errors.setdefault(user_id, [])
        errors.append(f"{operation}: {error}")
        del errors[:-10]

        status, _ = describe_error(error, operation)
        return {
            'success': False,
            'error': str(error),
            'status': status,
            'operation': operation,
            'user_message': self._get_user_friendly_error_message(error, operation)
        }

    def _get_user_friendly_error_message(self, error: Exception, operation: str) -> str:
        if isinstance(error, (SessionError, PrepZoneError)):
            _, message = describe_error(error, operation)
            return f"❌ {message}"
        return f"❌ An unexpected error occurred while trying to {operation}. Please try again."

    def _session_result(self, session, operation: str, success_message: str) -> Dict[str, Any]:
        """Build a result from a session that reports fetch failures on itself."""
        snapshot = session.snapshot()
        if session.error:
            return {
                'success': False,
                'error': session.error,
                'status': session.status_kind,
                'operation': operation,
                'state': snapshot,
                'user_message': f"❌ {session.error}"
            }
        return {
            'success': True,
            'message': success_message,
            'state': snapshot,
            'user_message': success_message
        }

    async def _run(
        self,
        user_id: str,
        operation: str,
        action: Callable[[], Awaitable[Any]],
        session,
        success_message: str
    ) -> Dict[str, Any]:
        try:
            await action()
        except PrepZoneError as e:
            return self._handle_session_error(user_id, e, operation)
        return self._session_result(session, operation, success_message)

    # Standard practice

    @staticmethod
    def parse_config(category: str, difficulty: Optional[str] = None, language: Optional[str] = None) -> StandardSessionConfig:
        """
        Build a session configuration from command arguments.

        Raises:
            ValueError: If a value is not recognised
        """
        try:
            parsed_category = Category(category)
        except ValueError:
            valid = ", ".join(c.value for c in Category)
            raise ValueError(f"Unknown category '{category}'. Choose one of: {valid}")

        parsed_difficulty = None
        if difficulty:
            try:
                parsed_difficulty = Difficulty(difficulty.capitalize())
            except ValueError:
                valid = ", ".join(d.value for d in Difficulty)
                raise ValueError(f"Unknown difficulty '{difficulty}'. Choose one of: {valid}")

        if language and language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported language '{language}'. Choose one of: {', '.join(SUPPORTED_LANGUAGES)}")

        return StandardSessionConfig(parsed_category, parsed_difficulty, language or None)

    async def start_practice(
        self,
        user_id: str,
        category: str,
        difficulty: Optional[str] = None,
        language: Optional[str] = None
    ) -> Dict[str, Any]:
        try:
            config = self.parse_config(category, difficulty, language)
        except ValueError as e:
            self.logger.info(f"Invalid practice configuration from user {user_id}: {e}")
            return {
                'success': False,
                'error': str(e),
                'user_message': f"❌ {e}"
            }

        session = self.get_practice_session(user_id)
        return await self._run(
            user_id, "fetch a question", lambda: session.start(config), session,
            f"✅ Started {config.category.display_name} practice"
        )

    async def submit_answer(self, user_id: str, answer: str) -> Dict[str, Any]:
        session = self.get_practice_session(user_id)
        try:
            feedback = session.submit(answer)
        except PrepZoneError as e:
            return self._handle_session_error(user_id, e, "submit an answer")

        if feedback.is_correct:
            message = f"✅ Correct! {session.encouragement}"
        else:
            message = "❌ Not quite."
        return {
            'success': True,
            'is_correct': feedback.is_correct,
            'message': message,
            'state': session.snapshot(),
            'user_message': message
        }

    async def next_question(self, user_id: str) -> Dict[str, Any]:
        session = self.get_practice_session(user_id)
        return await self._run(user_id, "fetch a question", session.next, session, "➡️ Next question")

    async def change_language(self, user_id: str, language: str) -> Dict[str, Any]:
        session = self.get_practice_session(user_id)
        return await self._run(
            user_id, "translate the question", lambda: session.change_language(language), session,
            f"🔁 Question shown in {language}"
        )

    async def retry(self, user_id: str) -> Dict[str, Any]:
        session = self.get_practice_session(user_id)
        return await self._run(user_id, "retry the last request", session.retry, session, "🔄 Retried")

    def restart_practice(self, user_id: str) -> Dict[str, Any]:
        session = self.get_practice_session(user_id)
        session.restart()
        return {
            'success': True,
            'message': "Practice session restarted",
            'state': session.snapshot(),
            'user_message': "🔄 Practice session reset. Pick a category to start again."
        }

    def dismiss_popup(self, user_id: str) -> Dict[str, Any]:
        session = self.get_practice_session(user_id)
        session.dismiss_popup()
        return {'success': True, 'state': session.snapshot(), 'user_message': "👍"}

    # Daily quiz

    async def open_daily_quiz(self, user_id: str) -> Dict[str, Any]:
        """Load today's daily quiz state for a user."""
        quiz = self.get_daily_quiz(user_id)
        if quiz.phase in (DailyPhase.GENERATING, DailyPhase.ACTIVE):
            return self._session_result(quiz, "load today's quiz", "📋 Daily quiz in progress")
        return await self._run(user_id, "load today's quiz", quiz.load, quiz, "📋 Daily quiz loaded")

    async def start_daily_quiz(self, user_id: str) -> Dict[str, Any]:
        quiz = self.get_daily_quiz(user_id)
        if quiz.phase is DailyPhase.LOADING:
            result = await self.open_daily_quiz(user_id)
            if not result['success'] or quiz.phase is not DailyPhase.IDLE:
                return result
        return await self._run(user_id, "start the daily quiz", quiz.start, quiz, "🧠 Daily quiz ready")

    async def daily_action(self, user_id: str, operation: str, action: Callable[[DailyQuiz], Any]) -> Dict[str, Any]:
        """Apply a synchronous navigation action to the user's daily quiz."""
        quiz = self.get_daily_quiz(user_id)
        try:
            action(quiz)
        except PrepZoneError as e:
            return self._handle_session_error(user_id, e, operation)
        return self._session_result(quiz, operation, "✅")

    async def finish_daily_quiz(self, user_id: str) -> Dict[str, Any]:
        quiz = self.get_daily_quiz(user_id)
        try:
            await quiz.finish()
        except PrepZoneError as e:
            return self._handle_session_error(user_id, e, "finish the daily quiz")

        snapshot = quiz.snapshot()
        message = f"🏁 You scored {snapshot['score']}/{snapshot['total_questions']}"
        if quiz.warning:
            message += f"\n⚠️ {quiz.warning}"
        return {
            'success': True,
            'score_saved': snapshot['score_saved'],
            'message': message,
            'state': snapshot,
            'user_message': message
        }

    async def cancel_daily_quiz(self, user_id: str) -> Dict[str, Any]:
        return await self.daily_action(user_id, "cancel the daily quiz", lambda quiz: quiz.cancel())

    async def reset_daily_quiz(self, user_id: str) -> Dict[str, Any]:
        quiz = self.get_daily_quiz(user_id)
        return await self._run(user_id, "reset the daily quiz", quiz.reset, quiz, "📋 Daily quiz refreshed")

    # Progress

    async def get_progress(self, user_id: str) -> Dict[str, Any]:
        """Streak, today's score and today's completed practice categories."""
        try:
            streak = await self.tracker.get_streak(user_id)
            record = await self.tracker.todays_score(user_id)
            completions = await self.tracker.todays_completions(user_id)
        except PrepZoneError as e:
            return self._handle_session_error(user_id, e, "load your progress")

        return {
            'success': True,
            'streak': streak.daily_quiz_streak,
            'last_quiz_date': streak.last_quiz_date,
            'todays_score': record.score if record else None,
            'completed_categories': sorted(completions),
            'user_message': f"🔥 Daily quiz streak: {streak.daily_quiz_streak}"
        }

    def get_error_summary(self, user_id: str) -> Dict[str, Any]:
        errors = self._session_errors.get(user_id, [])
        return {
            'user_id': user_id,
            'error_count': len(errors),
            'recent_errors': errors[-5:],
        }

    def cleanup_inactive_sessions(self) -> int:
        """
        Drop sessions of users idle for longer than the idle timeout.

        Returns:
            Number of users cleaned up
        """
        cutoff = datetime.now() - self._idle_timeout
        stale = [user_id for user_id, seen in self._last_activity.items() if seen < cutoff]

        for user_id in stale:
            self._discard_user(user_id)

        if stale:
            self.logger.info(
                f"Cleaned up {len(stale)} inactive users",
                extra={'event_type': 'sessions_cleaned_up', 'count': len(stale), 'timestamp': time.time()}
            )
        return len(stale)

    def _discard_user(self, user_id: str) -> None:
        session = self._practice_sessions.pop(user_id, None)
        if session is not None and session.is_busy:
            session.restart()
        quiz = self._daily_quizzes.pop(user_id, None)
        if quiz is not None and quiz.phase in (DailyPhase.GENERATING, DailyPhase.ACTIVE) and not quiz.is_finishing:
            quiz.cancel()
        self._last_activity.pop(user_id, None)
        self._session_errors.pop(user_id, None)

    def shutdown(self) -> None:
        """Cancel every in-flight request and forget all sessions."""
        for user_id in list(self._last_activity.keys()):
            self._discard_user(user_id)
        self.logger.info("PracticeController shut down")
