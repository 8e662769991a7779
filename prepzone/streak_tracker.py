"""
Streak and completion bookkeeping on top of the score store.
"""
from datetime import date, timedelta
import logging
from typing import Optional, Set

from .clock import Clock, SystemClock, day_key
from .models import Category, DailyScoreRecord, StreakState
from .score_store import ScoreStore


def compute_next_streak(state: StreakState, today: date) -> Optional[StreakState]:
    """
    Derive the streak after a daily quiz completed on the given day.

    Args:
        state: Currently stored streak
        today: Day the quiz was completed

    Returns:
        The new state, or None when the day was already counted
    """
    today_str = day_key(today)
    yesterday_str = day_key(today - timedelta(days=1))

    if state.last_quiz_date == today_str:
        return None
    if state.last_quiz_date == yesterday_str:
        return StreakState(state.daily_quiz_streak + 1, today_str)
    return StreakState(1, today_str)


class StreakTracker:
    """Derives streak and completion values from stored state and the current day."""

    def __init__(self, store: ScoreStore, clock: Optional[Clock] = None):
        self.logger = logging.getLogger(__name__)
        self.store = store
        self.clock = clock or SystemClock()

    async def update_streak(self, user_id: str) -> StreakState:
        """
        Advance the user's daily quiz streak for today.

        Returns:
            The streak now in effect
        """
        current = await self.store.get_streak(user_id)
        updated = compute_next_streak(current, self.clock.today())

        if updated is None:
            self.logger.debug(f"Streak for user {user_id} already counted today")
            return current

        await self.store.save_streak(user_id, updated)
        self.logger.info(
            f"Streak for user {user_id}: {current.daily_quiz_streak} -> {updated.daily_quiz_streak}"
        )
        return updated

    async def get_streak(self, user_id: str) -> StreakState:
        return await self.store.get_streak(user_id)

    async def record_completion(self, user_id: str, category: Category) -> None:
        """Mark a standard practice category as completed today. Idempotent."""
        await self.store.save_completion(user_id, category.value, self.clock.today_key())

    async def todays_completions(self, user_id: str) -> Set[str]:
        return await self.store.get_todays_completions(user_id, self.clock.today_key())

    async def is_completed(self, user_id: str, category: Category) -> bool:
        return category.value in await self.todays_completions(user_id)

    async def todays_score(self, user_id: str) -> Optional[DailyScoreRecord]:
        return await self.store.get_todays_score(user_id, self.clock.today_key())

    async def save_todays_score(self, user_id: str, score: int) -> DailyScoreRecord:
        return await self.store.save_todays_score(
            user_id, score, self.clock.today_key(), self.clock.now_ms()
        )
