"""
Unit tests for the daily quiz state machine.
"""
import asyncio
from datetime import date
import logging
import unittest
from unittest.mock import AsyncMock, Mock

from prepzone.daily_quiz import (
    ALREADY_RECORDED_MESSAGE,
    DailyActive,
    DailyPhase,
    DailyQuiz,
    Idle,
    Results,
)
from prepzone.errors import (
    RATE_LIMITED_MESSAGE,
    SCORE_NOT_SAVED_MESSAGE,
    STATUS_OFFLINE,
    STATUS_RATE_LIMITED,
    DuplicateScoreError,
    EmptyAnswerError,
    GenerationError,
    InvalidSessionStateError,
    PersistenceError,
    RateLimitedError,
)
from prepzone.models import StreakState
from tests.test_fixtures import EngineHarness


class TestDailyQuiz(unittest.IsolatedAsyncioTestCase):
    """Test cases for DailyQuiz."""

    def setUp(self):
        logging.disable(logging.CRITICAL)
        self.harness = EngineHarness(date(2024, 1, 2))
        self.completed = []
        self.quiz = self.create_quiz()

    def tearDown(self):
        logging.disable(logging.NOTSET)

    def create_quiz(self, user_id: str = "u1") -> DailyQuiz:
        return DailyQuiz(
            user_id,
            self.harness.orchestrator,
            self.harness.tracker,
            self.harness.network_status,
            on_quiz_complete=lambda score, answers: self.completed.append((score, answers)),
        )

    async def start_quiz(self) -> DailyActive:
        await self.quiz.load()
        return await self.quiz.start()

    def answer_all(self, answer: str = "A", wrong: int = 0) -> None:
        total = len(self.quiz.state.questions)
        for index in range(total):
            self.quiz.select_answer("B" if index < wrong else answer)
            if index < total - 1:
                self.quiz.next()

    async def test_load_without_record_goes_idle(self):
        self.assertEqual(self.quiz.phase, DailyPhase.LOADING)
        state = await self.quiz.load()
        self.assertIsInstance(state, Idle)

    async def test_load_with_record_goes_to_results(self):
        await self.harness.tracker.save_todays_score("u1", 14)
        state = await self.quiz.load()

        self.assertIsInstance(state, Results)
        self.assertEqual(state.result.score, 14)
        self.assertEqual(state.result.total, 20)
        self.assertEqual(state.result.reviews, [])

    async def test_load_failure_goes_idle_with_error(self):
        self.harness.store.get_todays_score = AsyncMock(side_effect=PersistenceError("down"))
        state = await self.quiz.load()
        self.assertIsInstance(state, Idle)
        self.assertIsNotNone(self.quiz.error)

    async def test_start_generates_twenty_questions(self):
        state = await self.start_quiz()

        self.assertIsInstance(state, DailyActive)
        self.assertEqual(len(state.questions), 20)
        self.assertEqual(state.answers, tuple([""] * 20))
        self.assertEqual(state.current_index, 0)
        self.assertEqual(len(self.harness.generator.batch_calls), 4)
        self.assertEqual(self.harness.sleep.delays, [2.0, 2.0, 2.0])

    async def test_start_with_existing_record_skips_generation(self):
        await self.quiz.load()
        await self.harness.tracker.save_todays_score("u1", 11)

        state = await self.quiz.start()

        self.assertIsInstance(state, Results)
        self.assertEqual(state.result.score, 11)
        self.assertEqual(self.harness.generator.batch_calls, [])

    async def test_start_offline_stays_idle(self):
        await self.quiz.load()
        self.harness.network_status.mark_offline("test")

        state = await self.quiz.start()

        self.assertIsInstance(state, Idle)
        self.assertEqual(self.quiz.status_kind, STATUS_OFFLINE)
        self.assertEqual(self.quiz.error, "You must be online to start the daily quiz.")
        self.assertEqual(self.harness.generator.batch_calls, [])

    async def test_rate_limited_generation_returns_to_idle(self):
        await self.quiz.load()
        self.harness.generator.fail_next(RateLimitedError("RESOURCE_EXHAUSTED"))

        state = await self.quiz.start()

        self.assertIsInstance(state, Idle)
        self.assertEqual(self.quiz.status_kind, STATUS_RATE_LIMITED)
        self.assertEqual(self.quiz.error, RATE_LIMITED_MESSAGE)

    async def test_partial_generation_never_activates(self):
        await self.quiz.load()
        original = self.harness.generator.generate_batch
        calls = []

        async def fail_third(topic, difficulty, count):
            calls.append(topic)
            if len(calls) == 3:
                raise GenerationError("upstream 500")
            return await original(topic, difficulty, count)

        self.harness.generator.generate_batch = fail_third
        state = await self.quiz.start()

        self.assertIsInstance(state, Idle)
        self.assertEqual(self.quiz.error, "Failed to generate the daily quiz: upstream 500. Please try again later.")

    async def test_progress_is_reported_while_generating(self):
        await self.quiz.load()
        seen = []
        original = self.harness.generator.generate_batch

        async def observe(topic, difficulty, count):
            seen.append(self.quiz.snapshot()['progress'])
            return await original(topic, difficulty, count)

        self.harness.generator.generate_batch = observe
        await self.quiz.start()

        self.assertEqual([p['generated'] for p in seen], [0, 5, 10, 15])
        self.assertTrue(all(p['total'] == 20 for p in seen))

    async def test_navigation(self):
        await self.start_quiz()

        with self.assertRaises(EmptyAnswerError):
            self.quiz.next()
        with self.assertRaises(InvalidSessionStateError):
            self.quiz.previous()

        self.quiz.select_answer("A")
        self.quiz.next()
        self.assertEqual(self.quiz.state.current_index, 1)
        self.quiz.previous()
        self.assertEqual(self.quiz.state.current_answer, "A")

        self.quiz.go_to(1)
        self.assertEqual(self.quiz.state.current_index, 1)
        with self.assertRaises(InvalidSessionStateError):
            self.quiz.go_to(5)
        with self.assertRaises(InvalidSessionStateError):
            self.quiz.go_to(20)

    async def test_select_answer_only_changes_current_index(self):
        await self.start_quiz()
        self.quiz.select_answer("C")
        self.quiz.select_answer("D")
        self.assertEqual(self.quiz.state.answers[0], "D")
        self.assertTrue(all(a == "" for a in self.quiz.state.answers[1:]))

    async def test_finish_requires_last_question(self):
        await self.start_quiz()
        self.quiz.select_answer("A")
        with self.assertRaises(InvalidSessionStateError):
            await self.quiz.finish()

    async def test_finish_saves_score_and_streak(self):
        await self.harness.store.save_streak("u1", StreakState(3, "2024-01-01"))
        await self.start_quiz()
        self.answer_all(wrong=5)

        state = await self.quiz.finish()

        self.assertIsInstance(state, Results)
        self.assertEqual(state.result.score, 15)
        self.assertEqual(state.result.accuracy, 75)
        self.assertEqual(state.result.summary_message, "Great job! You're on the right track.")
        self.assertTrue(state.score_saved)
        self.assertEqual(state.record.score, 15)
        self.assertEqual(state.streak, StreakState(4, "2024-01-02"))
        self.assertEqual(len(state.result.reviews), 20)
        self.assertEqual(sum(1 for r in state.result.reviews if not r.is_correct), 5)
        self.assertEqual(self.completed, [(15, ["B"] * 5 + ["A"] * 15)])

    async def test_second_quiz_same_day_shows_results(self):
        await self.start_quiz()
        self.answer_all()
        await self.quiz.finish()

        other = self.create_quiz()
        state = await other.load()
        self.assertIsInstance(state, Results)
        self.assertEqual(state.result.score, 20)
        self.assertEqual(state.result.summary_message, "Perfect score! You're a quiz master!")

    async def test_persistence_failure_still_shows_results(self):
        await self.start_quiz()
        self.answer_all()
        self.harness.store.save_todays_score = AsyncMock(side_effect=PersistenceError("disk"))

        state = await self.quiz.finish()

        self.assertIsInstance(state, Results)
        self.assertFalse(state.score_saved)
        self.assertEqual(self.quiz.warning, SCORE_NOT_SAVED_MESSAGE)
        self.assertEqual(await self.harness.tracker.get_streak("u1"), StreakState())
        self.assertEqual(len(self.completed), 1)

    async def test_duplicate_score_does_not_advance_streak(self):
        await self.start_quiz()
        self.answer_all()
        await self.harness.tracker.save_todays_score("u1", 3)

        state = await self.quiz.finish()

        self.assertFalse(state.score_saved)
        self.assertEqual(self.quiz.warning, ALREADY_RECORDED_MESSAGE)
        self.assertEqual((await self.harness.tracker.todays_score("u1")).score, 3)
        self.assertEqual(await self.harness.tracker.get_streak("u1"), StreakState())

    async def test_completion_callback_failure_is_logged(self):
        self.quiz.on_quiz_complete = Mock(side_effect=RuntimeError("listener broke"))
        await self.start_quiz()
        self.answer_all()

        state = await self.quiz.finish()
        self.assertIsInstance(state, Results)
        self.quiz.on_quiz_complete.assert_called_once()

    async def test_async_completion_callback(self):
        callback = AsyncMock()
        self.quiz.on_quiz_complete = callback
        await self.start_quiz()
        self.answer_all()
        await self.quiz.finish()
        callback.assert_awaited_once()

    async def test_cancel_during_generation(self):
        await self.quiz.load()
        gate = asyncio.Event()
        self.harness.generator.gate = gate

        start = asyncio.create_task(self.quiz.start())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        self.assertEqual(self.quiz.phase, DailyPhase.GENERATING)

        self.quiz.cancel()
        gate.set()
        state = await start

        self.assertIsInstance(state, Idle)
        self.assertIsInstance(self.quiz.state, Idle)

    async def test_cancel_rejected_while_finishing(self):
        await self.start_quiz()
        self.answer_all()
        gate = asyncio.Event()
        save = self.harness.store.save_todays_score

        async def gated_save(*args):
            await gate.wait()
            return await save(*args)

        self.harness.store.save_todays_score = gated_save
        finish = asyncio.create_task(self.quiz.finish())
        await asyncio.sleep(0)
        self.assertTrue(self.quiz.is_finishing)

        with self.assertRaises(InvalidSessionStateError):
            self.quiz.cancel()

        gate.set()
        state = await finish

        self.assertIsInstance(state, Results)
        self.assertTrue(state.score_saved)
        self.assertEqual(state.streak, StreakState(1, "2024-01-02"))
        self.assertFalse(self.quiz.is_finishing)

    async def test_cancel_requires_quiz_in_progress(self):
        await self.quiz.load()
        with self.assertRaises(InvalidSessionStateError):
            self.quiz.cancel()

    async def test_reset_after_day_rollover(self):
        await self.start_quiz()
        self.answer_all()
        await self.quiz.finish()

        state = await self.quiz.reset()
        self.assertIsInstance(state, Results)

        self.harness.clock.advance()
        state = await self.quiz.reset()
        self.assertIsInstance(state, Idle)

        state = await self.quiz.start()
        self.assertIsInstance(state, DailyActive)

    async def test_snapshot_active_and_results(self):
        await self.start_quiz()
        snapshot = self.quiz.snapshot()
        self.assertEqual(snapshot['phase'], 'active')
        self.assertEqual(snapshot['total_questions'], 20)
        self.assertEqual(snapshot['answered'], 0)
        self.assertEqual(len(snapshot['question']['options']), 4)

        self.answer_all()
        await self.quiz.finish()
        snapshot = self.quiz.snapshot()
        self.assertEqual(snapshot['phase'], 'results')
        self.assertEqual(snapshot['accuracy'], 100)
        self.assertEqual(snapshot['streak'], 1)
        self.assertEqual(len(snapshot['reviews']), 20)


if __name__ == '__main__':
    unittest.main()
