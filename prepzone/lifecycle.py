"""
Structured lifecycle logging for practice sessions and question generation.
"""
import logging
import time
from typing import Optional


logger = logging.getLogger("prepzone.lifecycle")


class SessionLifecycleLogger:
    """Structured logging for session and generation lifecycle events."""

    @staticmethod
    def log_state_transition(
        session_kind: str,
        user_id: Optional[str],
        from_state: str,
        to_state: str,
        reason: str = None
    ) -> None:
        """Log a state machine transition."""
        logger.info(
            f"Session lifecycle: STATE_TRANSITION - {session_kind} user {user_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'session_state_transition',
                'session_kind': session_kind,
                'user_id': user_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_generation_start(operation: str, topic: str, difficulty: Optional[str], count: int = 1) -> float:
        """Log the start of a generator call and return its start time."""
        start_time = time.time()
        logger.info(
            f"Generation lifecycle: START - {operation} '{topic}' ({difficulty}), count {count}",
            extra={
                'event_type': 'generation_start',
                'operation': operation,
                'topic': topic,
                'difficulty': difficulty,
                'count': count,
                'timestamp': start_time
            }
        )
        return start_time

    @staticmethod
    def log_generation_complete(operation: str, topic: str, count: int, start_time: float) -> None:
        """Log a successful generator call."""
        duration = time.time() - start_time
        logger.info(
            f"Generation lifecycle: COMPLETE - {operation} '{topic}', {count} question(s) in {duration:.3f}s",
            extra={
                'event_type': 'generation_complete',
                'operation': operation,
                'topic': topic,
                'count': count,
                'duration': duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_batch_progress(generated: int, total: int) -> None:
        """Log daily quiz batch progress."""
        logger.debug(
            f"Generation lifecycle: PROGRESS - {generated}/{total} daily questions",
            extra={
                'event_type': 'generation_progress',
                'generated': generated,
                'total': total,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_error(user_id: Optional[str], error_type: str, error_message: str, operation: str) -> None:
        """Log a session or generation error with context."""
        logger.error(
            f"Session lifecycle: ERROR - user {user_id}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'session_error',
                'user_id': user_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_cancellation(session_kind: str, user_id: Optional[str], operation: str) -> None:
        """Log cancellation of an in-flight request."""
        logger.info(
            f"Session lifecycle: CANCELLED - {session_kind} user {user_id}, Operation {operation}",
            extra={
                'event_type': 'session_request_cancelled',
                'session_kind': session_kind,
                'user_id': user_id,
                'operation': operation,
                'timestamp': time.time()
            }
        )
