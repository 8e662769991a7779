"""
Unit tests for question generator parsing and the Ollama client.
"""
import asyncio
import json
import logging
import unittest
from unittest.mock import AsyncMock

import aiohttp

from prepzone.errors import GenerationError, GenerationFormatError, RateLimitedError
from prepzone.models import QuestionType
from prepzone.network import NetworkStatus
from prepzone.question_generator import (
    OllamaQuestionGenerator,
    build_batch_prompt,
    build_single_prompt,
    parse_question_batch,
    parse_single_question,
)
from tests.test_fixtures import FakeResponse, ManualTimer, TestFixtures, make_session


class TestParsing(unittest.TestCase):
    """Test cases for parsing generator output."""

    def setUp(self):
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    def test_parse_single_question(self):
        text = json.dumps(TestFixtures.create_question_dict())
        question = parse_single_question(text)
        self.assertEqual(question.question, "What is 2+2?")
        self.assertEqual(question.type, QuestionType.MULTIPLE_CHOICE)
        self.assertEqual(question.options, ("1", "2", "3", "4"))
        self.assertEqual(question.company_tags, frozenset({"TCS"}))
        self.assertTrue(question.id)

    def test_parse_single_question_invalid(self):
        for text in ("not json", "[]", json.dumps({"question": "x"}),
                     json.dumps(TestFixtures.create_question_dict(type="essay"))):
            with self.assertRaises(GenerationFormatError):
                parse_single_question(text)

    def test_parse_batch_forces_multiple_choice(self):
        items = [TestFixtures.create_question_dict(type="coding") for _ in range(3)]
        questions = parse_question_batch(json.dumps({"questions": items}))
        self.assertEqual(len(questions), 3)
        self.assertTrue(all(q.type is QuestionType.MULTIPLE_CHOICE for q in questions))

    def test_parse_batch_requires_four_options(self):
        items = [TestFixtures.create_question_dict(options=["1", "2", "3"])]
        with self.assertRaises(GenerationFormatError):
            parse_question_batch(json.dumps({"questions": items}))

    def test_parse_batch_requires_questions_array(self):
        for text in ("{}", json.dumps({"questions": "nope"}), "[1, 2]", "garbage"):
            with self.assertRaises(GenerationFormatError):
                parse_question_batch(text)

    def test_prompts_mention_inputs(self):
        self.assertIn("Aptitude", build_single_prompt("Aptitude", "Hard"))
        self.assertIn("Python", build_single_prompt("Coding", "Easy", "Python"))
        translation = build_single_prompt("", "", "Java", TestFixtures.create_coding_question())
        self.assertIn("Translate", translation)
        self.assertIn("Java", translation)
        self.assertIn("5", build_batch_prompt("Aptitude", "Moderate", 5))


class TestOllamaQuestionGenerator(unittest.IsolatedAsyncioTestCase):
    """Test cases for the Ollama HTTP client."""

    def setUp(self):
        logging.disable(logging.CRITICAL)
        self.network_status = NetworkStatus()
        self.generator = OllamaQuestionGenerator(network_status=self.network_status)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    def use_session(self, session):
        self.generator._get_session = AsyncMock(return_value=session)

    async def test_generate_one_success(self):
        body = json.dumps({"response": json.dumps(TestFixtures.create_question_dict())})
        session = make_session(FakeResponse(200, body))
        self.use_session(session)

        question = await self.generator.generate_one("Aptitude", "Easy")

        self.assertEqual(question.correct_answer, "4")
        payload = session.post.call_args.kwargs["json"]
        self.assertEqual(payload["model"], "llama3.1")
        self.assertFalse(payload["stream"])
        self.assertIn("format", payload)

    async def test_generate_batch_success(self):
        items = [TestFixtures.create_question_dict() for _ in range(5)]
        body = json.dumps({"response": json.dumps({"questions": items})})
        self.use_session(make_session(FakeResponse(200, body)))

        questions = await self.generator.generate_batch("Aptitude", "Moderate", 5)
        self.assertEqual(len(questions), 5)

    async def test_http_429_is_rate_limited(self):
        self.use_session(make_session(FakeResponse(429, "Too Many Requests")))
        with self.assertRaises(RateLimitedError):
            await self.generator.generate_one("Aptitude", "Easy")

    async def test_resource_exhausted_error_body(self):
        body = json.dumps({"error": "RESOURCE_EXHAUSTED: quota"})
        self.use_session(make_session(FakeResponse(200, body)))
        with self.assertRaises(RateLimitedError):
            await self.generator.generate_one("Aptitude", "Easy")

    async def test_server_error_is_generation_error(self):
        self.use_session(make_session(FakeResponse(500, "boom")))
        with self.assertRaises(GenerationError) as ctx:
            await self.generator.generate_one("Aptitude", "Easy")
        self.assertNotIsInstance(ctx.exception, RateLimitedError)
        self.assertEqual(ctx.exception.status, 500)

    async def test_malformed_body(self):
        self.use_session(make_session(FakeResponse(200, "<html>")))
        with self.assertRaises(GenerationFormatError):
            await self.generator.generate_one("Aptitude", "Easy")

    async def test_connection_failure_marks_offline(self):
        self.use_session(make_session(error=aiohttp.ClientConnectionError("refused")))
        with self.assertRaises(GenerationError):
            await self.generator.generate_one("Aptitude", "Easy")
        self.assertFalse(self.network_status.is_online)

    async def test_success_marks_online(self):
        self.network_status.mark_offline("test")
        body = json.dumps({"response": json.dumps(TestFixtures.create_question_dict())})
        self.use_session(make_session(FakeResponse(200, body)))
        await self.generator.generate_one("Aptitude", "Easy")
        self.assertTrue(self.network_status.is_online)

    async def test_timeout_is_generation_error(self):
        self.use_session(make_session(error=asyncio.TimeoutError()))
        with self.assertRaises(GenerationError):
            await self.generator.generate_one("Aptitude", "Easy")


class TestNetworkStatus(unittest.TestCase):
    """Test cases for NetworkStatus."""

    def setUp(self):
        logging.disable(logging.CRITICAL)
        self.timer = ManualTimer()
        self.status = NetworkStatus(recheck_after=10.0, clock=self.timer)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    def test_online_allows_requests(self):
        self.assertTrue(self.status.is_online)
        self.assertTrue(self.status.can_attempt())

    def test_offline_refuses_until_recheck_interval(self):
        self.status.mark_offline("refused")
        self.assertFalse(self.status.can_attempt())

        self.timer.advance(9.9)
        self.assertFalse(self.status.can_attempt())

        self.timer.advance(0.1)
        self.assertTrue(self.status.can_attempt())
        self.assertFalse(self.status.is_online)

    def test_repeated_failure_restarts_interval(self):
        self.status.mark_offline("refused")
        self.timer.advance(10.0)
        self.status.mark_offline("refused again")
        self.assertFalse(self.status.can_attempt())

    def test_mark_online_clears_offline(self):
        self.status.mark_offline("refused")
        self.status.mark_online()
        self.assertTrue(self.status.can_attempt())


if __name__ == '__main__':
    unittest.main()
