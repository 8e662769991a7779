"""
Score store: daily quiz scores, standard practice completions and streaks.

Records are laid out per user and per UTC day:

    {
        "daily_scores": {user_id: {day: {"score", "date", "completedAt"}}},
        "standard_practice_records": {user_id: {day: {category_id: true}}},
        "profiles": {user_id: {"dailyQuizStreak", "lastQuizDate"}}
    }
"""
import asyncio
import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Set

from .errors import DuplicateScoreError, PersistenceError
from .models import DailyScoreRecord, StreakState


class ScoreStore:
    """Interface for persisting daily scores, completions and streaks."""

    async def get_todays_score(self, user_id: str, day: str) -> Optional[DailyScoreRecord]:
        raise NotImplementedError

    async def save_todays_score(self, user_id: str, score: int, day: str, completed_at: int) -> DailyScoreRecord:
        """
        Create today's score record if none exists.

        Raises:
            DuplicateScoreError: If a record already exists for the user and day
            PersistenceError: If the write fails
        """
        raise NotImplementedError

    async def get_todays_completions(self, user_id: str, day: str) -> Set[str]:
        raise NotImplementedError

    async def save_completion(self, user_id: str, category_id: str, day: str) -> None:
        raise NotImplementedError

    async def get_streak(self, user_id: str) -> StreakState:
        raise NotImplementedError

    async def save_streak(self, user_id: str, state: StreakState) -> None:
        raise NotImplementedError


class InMemoryScoreStore(ScoreStore):
    """Score store kept in a dictionary; the base for the file-backed store."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._data: Dict[str, Dict[str, Any]] = self._empty_data()
        self._lock = asyncio.Lock()

    @staticmethod
    def _empty_data() -> Dict[str, Dict[str, Any]]:
        return {"daily_scores": {}, "standard_practice_records": {}, "profiles": {}}

    def _load(self) -> None:
        """Refresh in-memory data from the backing medium."""
        pass

    def _persist(self, data: Dict[str, Dict[str, Any]]) -> None:
        """Write data to the backing medium."""
        pass

    async def _commit(self, mutate) -> Any:
        """
        Apply a mutation to a copy of the data and persist it.

        The in-memory data is only replaced once the write succeeds.
        """
        async with self._lock:
            self._load()
            staged = copy.deepcopy(self._data)
            result = mutate(staged)
            self._persist(staged)
            self._data = staged
            return result

    async def get_todays_score(self, user_id: str, day: str) -> Optional[DailyScoreRecord]:
        async with self._lock:
            self._load()
            record = self._data["daily_scores"].get(user_id, {}).get(day)
        if not record:
            return None
        try:
            return DailyScoreRecord.from_dict(record)
        except ValueError as e:
            self.logger.error(f"Invalid daily score for user {user_id} on {day}: {e}")
            raise PersistenceError(f"Stored daily score is invalid: {e}")

    async def save_todays_score(self, user_id: str, score: int, day: str, completed_at: int) -> DailyScoreRecord:
        record = DailyScoreRecord(score=score, date=day, completed_at=completed_at)

        def create_if_absent(data):
            user_scores = data["daily_scores"].setdefault(user_id, {})
            if day in user_scores:
                raise DuplicateScoreError(f"A daily score already exists for {user_id} on {day}")
            user_scores[day] = record.to_dict()
            return record

        saved = await self._commit(create_if_absent)
        self.logger.info(f"Saved daily score {score} for user {user_id} on {day}")
        return saved

    async def get_todays_completions(self, user_id: str, day: str) -> Set[str]:
        async with self._lock:
            self._load()
            records = self._data["standard_practice_records"].get(user_id, {}).get(day, {})
        return {category for category, done in records.items() if done}

    async def save_completion(self, user_id: str, category_id: str, day: str) -> None:
        def mark(data):
            data["standard_practice_records"].setdefault(user_id, {}).setdefault(day, {})[category_id] = True

        await self._commit(mark)
        self.logger.info(f"Recorded completion of '{category_id}' for user {user_id} on {day}")

    async def get_streak(self, user_id: str) -> StreakState:
        async with self._lock:
            self._load()
            profile = self._data["profiles"].get(user_id)
        try:
            return StreakState.from_dict(profile)
        except (TypeError, ValueError) as e:
            self.logger.error(f"Invalid streak data for user {user_id}: {e}")
            raise PersistenceError(f"Stored streak is invalid: {e}")

    async def save_streak(self, user_id: str, state: StreakState) -> None:
        def update(data):
            data["profiles"].setdefault(user_id, {}).update(state.to_dict())

        await self._commit(update)
        self.logger.debug(f"Saved streak {state.daily_quiz_streak} for user {user_id}")


class JsonScoreStore(InMemoryScoreStore):
    """Score store persisted to a single JSON file."""

    def __init__(self, data_directory: str = "./data/", filename: str = "scores.json"):
        """
        Initialize the store.

        Args:
            data_directory: Directory holding the JSON file
            filename: Name of the JSON file
        """
        super().__init__()
        self.data_directory = Path(data_directory)
        self.file_path = self.data_directory / filename

    def _load(self) -> None:
        if not self.file_path.exists():
            self._data = self._empty_data()
            return

        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in {self.file_path}: {e}")
            raise PersistenceError(f"Score data file is corrupted: {self.file_path}")
        except OSError as e:
            self.logger.error(f"Failed to read score file {self.file_path}: {e}")
            raise PersistenceError(f"Could not read score data: {e}")

        if not isinstance(data, dict):
            raise PersistenceError(f"Score data must be a JSON object: {self.file_path}")

        merged = self._empty_data()
        for key in merged:
            if isinstance(data.get(key), dict):
                merged[key] = data[key]
        self._data = merged

    def _persist(self, data: Dict[str, Dict[str, Any]]) -> None:
        temp_path = self.file_path.with_suffix(self.file_path.suffix + ".tmp")
        try:
            self.data_directory.mkdir(parents=True, exist_ok=True)
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(temp_path, self.file_path)
        except OSError as e:
            self.logger.error(f"Failed to write score file {self.file_path}: {e}")
            try:
                temp_path.unlink()
            except FileNotFoundError:
                pass
            raise PersistenceError(f"Could not save score data: {e}")
