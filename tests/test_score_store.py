"""
Unit tests for the in-memory and JSON score stores.
"""
import json
import logging
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from prepzone.errors import DuplicateScoreError, PersistenceError
from prepzone.models import StreakState
from prepzone.score_store import InMemoryScoreStore, JsonScoreStore


class ScoreStoreContract:
    """Behaviour shared by every score store."""

    def create_store(self):
        raise NotImplementedError

    async def test_no_score_by_default(self):
        store = self.create_store()
        self.assertIsNone(await store.get_todays_score("u1", "2024-01-01"))

    async def test_save_and_read_score(self):
        store = self.create_store()
        record = await store.save_todays_score("u1", 17, "2024-01-01", 1704067200000)
        self.assertEqual(record.score, 17)

        loaded = await store.get_todays_score("u1", "2024-01-01")
        self.assertEqual(loaded, record)
        self.assertIsNone(await store.get_todays_score("u1", "2024-01-02"))
        self.assertIsNone(await store.get_todays_score("u2", "2024-01-01"))

    async def test_second_score_same_day_rejected(self):
        store = self.create_store()
        await store.save_todays_score("u1", 10, "2024-01-01", 1)
        with self.assertRaises(DuplicateScoreError):
            await store.save_todays_score("u1", 20, "2024-01-01", 2)
        self.assertEqual((await store.get_todays_score("u1", "2024-01-01")).score, 10)

    async def test_completions_are_idempotent(self):
        store = self.create_store()
        await store.save_completion("u1", "coding", "2024-01-01")
        await store.save_completion("u1", "coding", "2024-01-01")
        await store.save_completion("u1", "aptitude", "2024-01-01")

        self.assertEqual(await store.get_todays_completions("u1", "2024-01-01"), {"coding", "aptitude"})
        self.assertEqual(await store.get_todays_completions("u1", "2024-01-02"), set())

    async def test_streak_defaults_and_updates(self):
        store = self.create_store()
        self.assertEqual(await store.get_streak("u1"), StreakState())

        await store.save_streak("u1", StreakState(4, "2024-01-02"))
        self.assertEqual(await store.get_streak("u1"), StreakState(4, "2024-01-02"))


class TestInMemoryScoreStore(ScoreStoreContract, unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    def create_store(self):
        return InMemoryScoreStore()


class TestJsonScoreStore(ScoreStoreContract, unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        logging.disable(logging.CRITICAL)
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)
        logging.disable(logging.NOTSET)

    def create_store(self):
        return JsonScoreStore(self.temp_dir)

    async def test_persists_across_instances(self):
        await self.create_store().save_todays_score("u1", 12, "2024-01-01", 5)
        await self.create_store().save_streak("u1", StreakState(1, "2024-01-01"))

        fresh = self.create_store()
        self.assertEqual((await fresh.get_todays_score("u1", "2024-01-01")).score, 12)
        self.assertEqual((await fresh.get_streak("u1")).daily_quiz_streak, 1)

        with open(Path(self.temp_dir) / "scores.json", encoding='utf-8') as f:
            data = json.load(f)
        self.assertEqual(data["daily_scores"]["u1"]["2024-01-01"]["completedAt"], 5)
        self.assertEqual(data["profiles"]["u1"]["dailyQuizStreak"], 1)

    async def test_duplicate_detected_across_instances(self):
        await self.create_store().save_todays_score("u1", 12, "2024-01-01", 5)
        with self.assertRaises(DuplicateScoreError):
            await self.create_store().save_todays_score("u1", 3, "2024-01-01", 6)

    async def test_corrupted_file(self):
        (Path(self.temp_dir) / "scores.json").write_text("{not json", encoding='utf-8')
        with self.assertRaises(PersistenceError):
            await self.create_store().get_todays_score("u1", "2024-01-01")

    async def test_failed_write_keeps_previous_data(self):
        store = self.create_store()
        await store.save_completion("u1", "coding", "2024-01-01")

        with patch("prepzone.score_store.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(PersistenceError):
                await store.save_todays_score("u1", 9, "2024-01-01", 1)

        self.assertIsNone(await store.get_todays_score("u1", "2024-01-01"))
        self.assertEqual(await store.get_todays_completions("u1", "2024-01-01"), {"coding"})
        self.assertFalse((Path(self.temp_dir) / "scores.json.tmp").exists())

    async def test_malformed_score_record(self):
        data = {"daily_scores": {"u1": {"2024-01-01": {"date": "2024-01-01"}}}}
        (Path(self.temp_dir) / "scores.json").write_text(json.dumps(data), encoding='utf-8')
        with self.assertRaises(PersistenceError):
            await self.create_store().get_todays_score("u1", "2024-01-01")

    async def test_malformed_streak_record(self):
        data = {"profiles": {"u1": {"dailyQuizStreak": "many"}}}
        (Path(self.temp_dir) / "scores.json").write_text(json.dumps(data), encoding='utf-8')
        with self.assertRaises(PersistenceError):
            await self.create_store().get_streak("u1")


if __name__ == '__main__':
    unittest.main()
