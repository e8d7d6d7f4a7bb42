"""Finds the question to send: extracted from recent speech or generated from an interval."""

import re
import logging
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from .inference_client import InferenceClient
from ..errors import InferenceError, InferenceErrorCategory
from ..models.questions import QuestionType, RawQuestion

logger = logging.getLogger(__name__)

NO_QUESTION_FOUND = "NO_QUESTION_FOUND"
MIN_EXTRACTION_CHARS = 20
MIN_GENERATED_QUESTION_CHARS = 10

INTERVAL_SYSTEM = ("You are an educational AI that generates high-quality lecture check-in questions. "
                   "Return ONLY valid JSON, no markdown formatting. NEVER truncate questions mid-sentence.")

EXTRACT_PROMPT = """You are analyzing a lecture transcript where a professor asked to send a question to students.

TASK: Extract the MOST RECENT complete question the professor asked, preserving EXACT wording.

TRANSCRIPT:
\"\"\"
{transcript}
\"\"\"

RULES:
1. Find the last complete question asked by the professor
2. Preserve the exact wording; do not paraphrase or shorten it
3. The question comes BEFORE phrases like "send question now"
4. Return ONLY the question text, nothing else

If no clear question is found in the transcript, respond with "NO_QUESTION_FOUND"."""

INTERVAL_PROMPT = """You are analyzing a {minutes}-minute segment of a university lecture.

RECENT LECTURE CONTENT (last {minutes} minutes):
"{transcript}"

TASK: Generate ONE question that tests the MOST IMPORTANT concept from this interval, is clearly
answerable from what was just taught and avoids trivial details.{coding_hint}

Return JSON:
{{
  "question_text": "the question",
  "suggested_type": "multiple_choice" | "short_answer" | "coding",
  "confidence": 0.0-1.0,
  "reasoning": "why this question tests the key concept"
}}"""

CODING_HINT = ("\nThe lecture is about programming: phrase the question as a small coding task "
               "that practices the concept.")


class IntervalQuestionResponse(BaseModel):
    question_text: str = Field(min_length=1)
    suggested_type: Optional[str] = None
    confidence: float = 0.0
    reasoning: str = ""


def suggest_type(question_text: str) -> QuestionType:
    """Guess the best format from the wording of an extracted question."""
    lower = question_text.lower()
    if any(word in lower for word in ("code", "program", "function", "implement")):
        return QuestionType.CODING
    if any(word in lower for word in ("explain", "describe", "why", "how")):
        return QuestionType.SHORT_ANSWER
    return QuestionType.MULTIPLE_CHOICE


class QuestionGenerator:
    """Produces RawQuestions from transcript text using the inference client."""

    def __init__(self, client: InferenceClient):
        self.client = client

    async def extract_question(self, recent_transcript: str) -> Optional[RawQuestion]:
        """Pull the instructor's most recent question out of the transcript tail.

        Returns:
            The question, or None when the transcript holds no clear question
        """
        transcript = recent_transcript.strip()
        if len(transcript) < MIN_EXTRACTION_CHARS:
            logger.info(f"Transcript too short to extract a question ({len(transcript)} chars)")
            return None

        logger.info(f"Extracting question from: {transcript[:100]}")
        content = await self.client.complete(EXTRACT_PROMPT.format(transcript=transcript),
                                             temperature=0.2, max_tokens=500)
        question = re.sub(r"\.\.\.+$", "", content.strip().strip('"')).strip()
        if not question or NO_QUESTION_FOUND in question:
            logger.info("No clear question found in recent transcript")
            return None

        logger.info(f"Extracted question: {question}")
        return RawQuestion(question_text=question, suggested_type=suggest_type(question))

    async def generate_interval_question(self, interval_transcript: str, interval_minutes: float,
                                         format_preference: QuestionType = QuestionType.MULTIPLE_CHOICE,
                                         force_send: bool = False) -> Optional[RawQuestion]:
        """Generate one question about the content of the last interval.

        Returns None (nothing to send) when the interval is too thin or the model
        is not confident enough. ``force_send`` lowers both bars.
        """
        transcript = interval_transcript.strip()
        min_content = 25 if force_send else 100
        if len(transcript) < min_content:
            logger.info(f"Not enough content: {len(transcript)}/{min_content} chars (force_send: {force_send})")
            return None

        coding_hint = CODING_HINT if format_preference is QuestionType.CODING else ""
        prompt = INTERVAL_PROMPT.format(minutes=f"{interval_minutes:g}", transcript=transcript,
                                        coding_hint=coding_hint)
        logger.info(f"Generating auto-question from {interval_minutes:g}-minute interval ({len(transcript)} chars)")
        data = await self.client.complete_json(prompt, system=INTERVAL_SYSTEM)

        try:
            parsed = IntervalQuestionResponse.model_validate(data)
        except ValidationError as e:
            raise InferenceError(InferenceErrorCategory.MALFORMED_RESPONSE, "invalid interval question") from e

        question = parsed.question_text.strip()
        if len(question) < MIN_GENERATED_QUESTION_CHARS:
            logger.warning(f"Generated question too short (likely truncated): '{question}'")
            return None

        threshold = 0.1 if force_send else 0.3
        if parsed.confidence < threshold:
            logger.info(f"Confidence too low ({parsed.confidence} < {threshold}), skipping auto-question")
            return None

        return RawQuestion(
            question_text=question,
            suggested_type=QuestionType.parse(parsed.suggested_type, default=format_preference),
            confidence=parsed.confidence,
        )
