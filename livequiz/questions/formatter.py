"""Turns raw question text into a typed payload students can answer."""

import re
import random
import logging
from typing import Any, Awaitable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .inference_client import InferenceClient
from ..errors import InferenceError, InferenceErrorCategory
from ..models.questions import (
    OPTION_LETTERS,
    Coding,
    CodingTestCase,
    MultipleChoice,
    QuestionPayload,
    QuestionType,
    ShortAnswer,
)

logger = logging.getLogger(__name__)

_OPTION_PREFIX = re.compile(r"^\s*[A-Da-d]\s*[.):]\s*")

MCQ_SYSTEM = "You are an educational AI that creates high-quality multiple choice questions."
CODING_SYSTEM = "You are an educational AI that creates coding challenges for students."

MCQ_PROMPT = """The professor asked: "{question}"

Context from lecture: "{context}"

Generate a multiple choice question with exactly one correct answer and three plausible
distractors based on common misconceptions. Match the difficulty to what was just taught
and keep it concise and clear.

Return JSON:
{{
  "question": "the question text",
  "correct_answer": "the correct option text",
  "distractors": ["wrong option", "wrong option", "wrong option"],
  "explanation": "Why this is correct and others are wrong"
}}"""

CODING_PROMPT = """The professor asked: "{question}"

Context from lecture: "{context}"

Create a coding question with:
1. Clear problem statement
2. Function signature/starter code
3. Test cases (input/output examples)

Detect the programming language from context (Python, JavaScript, Java, C++, etc.)

Return JSON:
{{
  "question": "problem statement",
  "language": "python" | "javascript" | "java" | etc,
  "starterCode": "function/class template",
  "testCases": [{{"input": "...", "expectedOutput": "..."}}]
}}"""


class MultipleChoiceResponse(BaseModel):
    """Accepts either correct answer plus distractors, or lettered options plus a correct letter."""
    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(min_length=1)
    correct_answer: Optional[str] = None
    distractors: Optional[List[str]] = None
    options: Optional[List[str]] = None
    correct_letter: Optional[str] = Field(default=None, alias="correctAnswer")
    explanation: str = ""

    def split_answers(self) -> Tuple[str, List[str]]:
        if self.correct_answer and self.distractors is not None:
            if len(self.distractors) != 3:
                raise ValueError(f"expected 3 distractors, got {len(self.distractors)}")
            return self.correct_answer, list(self.distractors)

        if self.options is not None and self.correct_letter:
            if len(self.options) != 4:
                raise ValueError(f"expected 4 options, got {len(self.options)}")
            letter = self.correct_letter.strip().upper()[:1]
            if letter not in OPTION_LETTERS:
                raise ValueError(f"invalid correct answer letter: {self.correct_letter!r}")
            index = OPTION_LETTERS.index(letter)
            distractors = [opt for i, opt in enumerate(self.options) if i != index]
            return self.options[index], distractors

        raise ValueError("neither correct_answer/distractors nor options/correctAnswer present")


class CodingTestCaseResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    input: Any
    expected_output: Any = Field(alias="expectedOutput")


class CodingResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(min_length=1)
    language: str = "python"
    starter_code: str = Field(default="", alias="starterCode")
    test_cases: List[CodingTestCaseResponse] = Field(default_factory=list, alias="testCases")


def strip_option_prefix(option: str) -> str:
    """'B. Paris' -> 'Paris'."""
    return _OPTION_PREFIX.sub("", option).strip()


class QuestionFormatter:
    """Formats raw question text into MultipleChoice, ShortAnswer or Coding payloads.

    The correct multiple-choice answer is always placed by this class, never by
    the model, so its position is uniform over the four slots.
    """

    def __init__(self, client: InferenceClient, rng: Optional[random.Random] = None,
                 fast_path: bool = False):
        """Initialize the formatter.

        Args:
            client: Content-generation client
            rng: Source of randomness for answer placement
            fast_path: Deliver a short-answer version first when multiple choice is requested
        """
        self.client = client
        self.rng = rng or random.Random()
        self.fast_path = fast_path

    async def format(self, raw_question_text: str, desired_type: QuestionType,
                     context: str = "") -> QuestionPayload:
        """Build a payload of ``desired_type``.

        Raises:
            InferenceError: Generation failed or returned something unusable
        """
        question = raw_question_text.strip()
        if not question:
            raise ValueError("Question text is empty")

        if desired_type is QuestionType.SHORT_ANSWER:
            return ShortAnswer(question=question)
        if desired_type is QuestionType.CODING:
            return await self._format_coding(question, context)
        return await self._format_multiple_choice(question, context)

    def format_fast(self, raw_question_text: str, desired_type: QuestionType,
                    context: str = "") -> Tuple[QuestionPayload, Optional[Awaitable[QuestionPayload]]]:
        """Return a payload that can be delivered right away, plus an optional upgrade.

        With fast path enabled, a multiple-choice request yields a ShortAnswer
        immediately and an awaitable resolving to the MultipleChoice version.
        Other requests return ``(None, awaitable)`` so the caller awaits the full format.
        """
        if self.fast_path and desired_type is QuestionType.MULTIPLE_CHOICE:
            provisional = ShortAnswer(question=raw_question_text.strip())
            return provisional, self.format(raw_question_text, desired_type, context)
        return None, self.format(raw_question_text, desired_type, context)

    async def _format_multiple_choice(self, question: str, context: str) -> MultipleChoice:
        data = await self.client.complete_json(
            MCQ_PROMPT.format(question=question, context=context), system=MCQ_SYSTEM)
        try:
            parsed = MultipleChoiceResponse.model_validate(data)
            correct, distractors = parsed.split_answers()
        except (ValidationError, ValueError) as e:
            logger.error(f"Unusable multiple-choice response: {e}")
            raise InferenceError(InferenceErrorCategory.MALFORMED_RESPONSE, str(e).splitlines()[0]) from e

        correct = strip_option_prefix(correct)
        options = [strip_option_prefix(d) for d in distractors]
        if not correct or not all(options):
            raise InferenceError(InferenceErrorCategory.MALFORMED_RESPONSE, "empty option text")

        correct_index = self.rng.randrange(len(OPTION_LETTERS))
        options.insert(correct_index, correct)
        logger.debug(f"Correct answer placed at {OPTION_LETTERS[correct_index]}")

        return MultipleChoice(
            question=parsed.question.strip(),
            options=tuple(options),
            correct_index=correct_index,
            explanation=parsed.explanation,
        )

    async def _format_coding(self, question: str, context: str) -> Coding:
        data = await self.client.complete_json(
            CODING_PROMPT.format(question=question, context=context), system=CODING_SYSTEM)
        try:
            parsed = CodingResponse.model_validate(data)
        except ValidationError as e:
            logger.error(f"Unusable coding response: {e}")
            raise InferenceError(InferenceErrorCategory.MALFORMED_RESPONSE, "invalid coding question") from e

        return Coding(
            statement=parsed.question.strip(),
            starter_code=parsed.starter_code,
            test_cases=tuple(CodingTestCase(input=str(tc.input), expected_output=str(tc.expected_output))
                             for tc in parsed.test_cases),
            language=parsed.language.lower(),
        )
