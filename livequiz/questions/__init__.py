"""Question extraction, generation and formatting."""

from .inference_client import InferenceClient
from .generator import QuestionGenerator, suggest_type
from .formatter import QuestionFormatter

__all__ = ["InferenceClient", "QuestionGenerator", "QuestionFormatter", "suggest_type"]
