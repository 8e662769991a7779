"""
Question generator boundary and its Ollama-backed implementation.

The generator asks a local LLM served by Ollama for JSON-formatted practice
questions. Parsing failures surface as GenerationFormatError, throttling as
RateLimitedError.
"""
import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp

from .errors import GenerationError, GenerationFormatError, RateLimitedError, is_rate_limit_signature
from .models import PracticeQuestion, QuestionType
from .network import NetworkStatus


logger = logging.getLogger(__name__)

BATCH_OPTION_COUNT = 4

PRACTICE_QUESTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "question": {"type": "string"},
        "type": {"type": "string", "enum": [t.value for t in QuestionType]},
        "options": {"type": "array", "items": {"type": "string"}},
        "codeSnippet": {"type": "string"},
        "sampleInputs": {"type": "string"},
        "sampleOutputs": {"type": "string"},
        "language": {"type": "string"},
        "companyTags": {"type": "array", "items": {"type": "string"}},
        "correctAnswer": {"type": "string"},
        "explanation": {"type": "string"},
    },
    "required": ["question", "type", "correctAnswer", "explanation"],
}

MULTIPLE_CHOICE_BATCH_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "questions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "question": {"type": "string"},
                    "type": {"type": "string", "enum": [QuestionType.MULTIPLE_CHOICE.value]},
                    "options": {"type": "array", "items": {"type": "string"}},
                    "companyTags": {"type": "array", "items": {"type": "string"}},
                    "correctAnswer": {"type": "string"},
                    "explanation": {"type": "string"},
                },
                "required": ["question", "type", "options", "correctAnswer", "explanation"],
            },
        },
    },
    "required": ["questions"],
}


class QuestionGenerator:
    """Interface to whatever produces practice questions."""

    async def generate_one(
        self,
        category: str,
        difficulty: str,
        language: Optional[str] = None,
        translate_from: Optional[PracticeQuestion] = None
    ) -> PracticeQuestion:
        raise NotImplementedError

    async def generate_batch(self, topic: str, difficulty: str, count: int) -> List[PracticeQuestion]:
        raise NotImplementedError


def build_single_prompt(
    category: str,
    difficulty: str,
    language: Optional[str] = None,
    translate_from: Optional[PracticeQuestion] = None
) -> str:
    """Build the prompt for one question or for a translation request."""
    if translate_from is not None:
        return (
            f"Translate the following interview question to {language}. Provide the question text, "
            f"code snippet (if any), options (if any), the correct answer, and explanation, all adapted "
            f"for {language}. Do not change the company tags. "
            f"Question: {json.dumps(translate_from.to_dict())}"
        )

    prompt = (
        f"Generate one high-quality, {difficulty}-level practice question for a software engineering "
        f"interview. The question should be from the \"{category}\" category."
    )
    if language:
        prompt += f" The programming language should be {language}."
    else:
        prompt += (
            " For coding questions, provide a good mix of questions, including some conceptual multiple "
            "choice and some error-finding or simple coding exercises."
        )
    return prompt + " Respond with JSON only."


def build_batch_prompt(topic: str, difficulty: str, count: int) -> str:
    return (
        f"Generate {count} high-quality, {difficulty}-level multiple-choice practice questions for a "
        f"software engineering interview from the \"{topic}\" category. Each question must have exactly "
        f"{BATCH_OPTION_COUNT} options and the correct answer must be one of them. "
        f"Respond with JSON only, as an object with a \"questions\" array."
    )


def parse_single_question(text: str) -> PracticeQuestion:
    """
    Parse one question from raw generator output.

    Raises:
        GenerationFormatError: If the text is not a valid question object
    """
    try:
        data = json.loads(text.strip())
        return PracticeQuestion.from_dict(data)
    except (json.JSONDecodeError, ValueError) as e:
        logger.error(f"Failed to parse practice question JSON: {e}")
        raise GenerationFormatError("The AI returned an invalid practice question format.")


def parse_question_batch(text: str) -> List[PracticeQuestion]:
    """
    Parse a batch of multiple-choice questions from raw generator output.

    Every item is forced to multiple-choice regardless of the type it declares.

    Raises:
        GenerationFormatError: If the text is not a valid batch
    """
    try:
        data = json.loads(text.strip())
        if not isinstance(data, dict):
            raise ValueError("Batch response must be a JSON object")
        items = data.get("questions")
        if not isinstance(items, list):
            raise ValueError("'questions' value must be an array")

        questions = []
        for i, item in enumerate(items):
            if not isinstance(item, dict):
                raise ValueError(f"Question {i} must be an object")
            item = dict(item, type=QuestionType.MULTIPLE_CHOICE.value)
            question = PracticeQuestion.from_dict(item)
            if len(question.options) != BATCH_OPTION_COUNT:
                raise ValueError(
                    f"Question {i} has {len(question.options)} options, expected {BATCH_OPTION_COUNT}"
                )
            questions.append(question)
        return questions
    except (json.JSONDecodeError, ValueError) as e:
        logger.error(f"Failed to parse multiple practice questions JSON: {e}")
        raise GenerationFormatError("The AI returned an invalid format for multiple questions.")


class OllamaQuestionGenerator(QuestionGenerator):
    """Generates questions through the Ollama /api/generate endpoint."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "llama3.1",
        timeout: float = 120.0,
        network_status: Optional[NetworkStatus] = None
    ):
        """
        Initialize the generator.

        Args:
            host: Base URL of the Ollama server
            model: Model name to generate with
            timeout: Per-request timeout in seconds
            network_status: Shared connectivity tracker to update
        """
        self.host = host.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.network_status = network_status or NetworkStatus()
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def probe(self) -> bool:
        """Check that the Ollama host is reachable."""
        session = await self._get_session()
        return await self.network_status.probe(f"{self.host}/api/tags", session=session)

    async def _generate(self, prompt: str, schema: Dict[str, Any]) -> str:
        """
        Send one generation request and return the raw response text.

        Raises:
            RateLimitedError: If the server reports throttling
            GenerationError: For any other failure
        """
        payload = {
            "model": self.model,
            "prompt": prompt,
            "format": schema,
            "stream": False,
        }
        request_start = time.time()
        session = await self._get_session()

        try:
            async with session.post(f"{self.host}/api/generate", json=payload) as response:
                body = await response.text()
                if response.status != 200:
                    message = f"Generator returned HTTP {response.status}: {body[:200]}"
                    if is_rate_limit_signature(response.status, body):
                        raise RateLimitedError(message, status=response.status)
                    raise GenerationError(message, status=response.status)
        except asyncio.TimeoutError:
            raise GenerationError(f"Question generation timed out after {self.timeout:.0f}s")
        except (aiohttp.ClientConnectionError, OSError) as e:
            self.network_status.mark_offline(str(e))
            raise GenerationError(f"Could not reach the question generator: {e}")

        self.network_status.mark_online()

        try:
            data = json.loads(body)
        except json.JSONDecodeError:
            raise GenerationFormatError("The AI service returned a malformed response.")
        if not isinstance(data, dict):
            raise GenerationFormatError("The AI service returned a malformed response.")

        if "error" in data:
            error_text = str(data["error"])
            if is_rate_limit_signature(message=error_text):
                raise RateLimitedError(error_text)
            raise GenerationError(error_text)

        logger.debug(
            f"Generation request completed in {time.time() - request_start:.3f}s",
            extra={
                'event_type': 'generation_completed',
                'model': self.model,
                'duration': time.time() - request_start,
                'timestamp': time.time()
            }
        )
        return data.get("response", "")

    async def generate_one(
        self,
        category: str,
        difficulty: str,
        language: Optional[str] = None,
        translate_from: Optional[PracticeQuestion] = None
    ) -> PracticeQuestion:
        prompt = build_single_prompt(category, difficulty, language, translate_from)
        text = await self._generate(prompt, PRACTICE_QUESTION_SCHEMA)
        return parse_single_question(text)

    async def generate_batch(self, topic: str, difficulty: str, count: int) -> List[PracticeQuestion]:
        prompt = build_batch_prompt(topic, difficulty, count)
        text = await self._generate(prompt, MULTIPLE_CHOICE_BATCH_SCHEMA)
        return parse_question_batch(text)
