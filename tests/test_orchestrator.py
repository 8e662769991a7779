"""
Unit tests for QuestionOrchestrator.
"""
import logging
import random
import unittest

from prepzone.errors import GenerationFormatError, RateLimitedError
from prepzone.models import Category, Difficulty, QuestionType
from prepzone.orchestrator import QuestionOrchestrator
from tests.test_fixtures import FakeQuestionGenerator, RecordingSleep, TestFixtures


class TestQuestionOrchestrator(unittest.IsolatedAsyncioTestCase):
    """Test cases for single fetches, translation and the daily quiz plan."""

    def setUp(self):
        logging.disable(logging.CRITICAL)
        self.generator = FakeQuestionGenerator()
        self.sleep = RecordingSleep()
        self.orchestrator = QuestionOrchestrator(self.generator, rng=random.Random(7), sleep=self.sleep)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    async def test_fetch_one_assigns_fresh_ids(self):
        first = await self.orchestrator.fetch_one(Category.APTITUDE, Difficulty.EASY)
        second = await self.orchestrator.fetch_one(Category.APTITUDE, Difficulty.EASY)
        self.assertNotEqual(first.id, "generated")
        self.assertNotEqual(first.id, second.id)
        self.assertEqual(self.generator.one_calls[0][:3], ("Aptitude", "Easy", None))

    async def test_fetch_one_passes_language(self):
        await self.orchestrator.fetch_one(Category.DSA, Difficulty.HARD, "Python")
        self.assertEqual(self.generator.one_calls[0][:3], ("Data Structures & Algorithms", "Hard", "Python"))

    async def test_fetch_batch_forces_multiple_choice(self):
        questions = await self.orchestrator.fetch_batch("Aptitude", Difficulty.MODERATE, 5)
        self.assertEqual(len(questions), 5)
        self.assertTrue(all(q.type is QuestionType.MULTIPLE_CHOICE for q in questions))
        self.assertEqual(len({q.id for q in questions}), 5)

    async def test_fetch_batch_wrong_count(self):
        self.generator.batch_size_override = 3
        with self.assertRaises(GenerationFormatError):
            await self.orchestrator.fetch_batch("Aptitude", Difficulty.MODERATE, 5)

    async def test_translate_keeps_id_and_tags(self):
        original = TestFixtures.create_coding_question()
        translated = await self.orchestrator.translate(original, "Python", Category.DSA, Difficulty.EASY)
        self.assertEqual(translated.id, original.id)
        self.assertEqual(translated.company_tags, original.company_tags)
        self.assertEqual(translated.language, "Python")
        self.assertIs(self.generator.one_calls[0][3], original)

    async def test_daily_quiz_is_four_sequential_batches_of_five(self):
        progress = []
        questions = await self.orchestrator.generate_daily_quiz(lambda done, total: progress.append((done, total)))

        self.assertEqual(len(questions), 20)
        self.assertEqual(self.orchestrator.daily_quiz_size, 20)
        self.assertEqual(self.generator.batch_calls, [
            ("Aptitude", "Moderate", 5),
            ("Data Structures & Algorithms", "Moderate", 5),
            ("General Coding Concepts", "Easy", 5),
            ("Top MNC Interview Questions", "Hard", 5),
        ])
        self.assertEqual(progress, [(5, 20), (10, 20), (15, 20), (20, 20)])
        self.assertEqual(self.sleep.delays, [2.0, 2.0, 2.0])
        self.assertTrue(all(q.type is QuestionType.MULTIPLE_CHOICE for q in questions))

    async def test_daily_quiz_accepts_async_progress_callback(self):
        seen = []

        async def on_progress(done, total):
            seen.append(done)

        await self.orchestrator.generate_daily_quiz(on_progress)
        self.assertEqual(seen, [5, 10, 15, 20])

    async def test_daily_quiz_is_shuffled_once(self):
        questions = await self.orchestrator.generate_daily_quiz()
        expected = [
            f"{topic} question {i + 1}"
            for topic in ("Aptitude", "Data Structures & Algorithms",
                          "General Coding Concepts", "Top MNC Interview Questions")
            for i in range(5)
        ]
        random.Random(7).shuffle(expected)
        self.assertEqual([q.question for q in questions], expected)

    async def test_daily_quiz_aborts_on_failure(self):
        self.generator.fail_next(RateLimitedError("429"))
        with self.assertRaises(RateLimitedError):
            await self.orchestrator.generate_daily_quiz()
        self.assertEqual(len(self.generator.batch_calls), 1)
        self.assertEqual(self.sleep.delays, [])

    async def test_custom_batch_delay(self):
        orchestrator = QuestionOrchestrator(self.generator, batch_delay_ms=500, sleep=self.sleep)
        await orchestrator.generate_daily_quiz()
        self.assertEqual(self.sleep.delays, [0.5, 0.5, 0.5])


if __name__ == '__main__':
    unittest.main()
