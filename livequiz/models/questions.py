"""Question payload variants delivered to students."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

OPTION_LETTERS = ("A", "B", "C", "D")


class QuestionType(Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    SHORT_ANSWER = "short_answer"
    CODING = "coding"

    @classmethod
    def parse(cls, value: Union[str, "QuestionType", None],
              default: "QuestionType" = None) -> "QuestionType":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return default or cls.MULTIPLE_CHOICE


@dataclass(frozen=True)
class MultipleChoice:
    question: str
    options: Tuple[str, str, str, str]
    correct_index: int
    explanation: str = ""

    def __post_init__(self):
        if len(self.options) != 4:
            raise ValueError(f"Multiple choice needs exactly 4 options, got {len(self.options)}")
        if not 0 <= self.correct_index < 4:
            raise ValueError(f"correct_index out of range: {self.correct_index}")

    @property
    def question_type(self) -> QuestionType:
        return QuestionType.MULTIPLE_CHOICE

    @property
    def correct_letter(self) -> str:
        return OPTION_LETTERS[self.correct_index]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.question_type.value,
            "question": self.question,
            "options": [f"{letter}. {text}" for letter, text in zip(OPTION_LETTERS, self.options)],
            "correctAnswer": self.correct_letter,
            "explanation": self.explanation,
        }


@dataclass(frozen=True)
class ShortAnswer:
    question: str
    expected_answer: Optional[str] = None
    grading_mode: str = "manual_grade"

    @property
    def question_type(self) -> QuestionType:
        return QuestionType.SHORT_ANSWER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.question_type.value,
            "question": self.question,
            "expectedAnswer": self.expected_answer or "",
            "gradingMode": self.grading_mode,
        }


@dataclass(frozen=True)
class CodingTestCase:
    input: str
    expected_output: str


@dataclass(frozen=True)
class Coding:
    statement: str
    starter_code: str
    test_cases: Tuple[CodingTestCase, ...] = field(default_factory=tuple)
    language: str = "python"

    @property
    def question_type(self) -> QuestionType:
        return QuestionType.CODING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.question_type.value,
            "question": self.statement,
            "language": self.language,
            "starterCode": self.starter_code,
            "testCases": [{"input": tc.input, "expectedOutput": tc.expected_output}
                          for tc in self.test_cases],
            "gradingMode": "manual_grade",
        }


QuestionPayload = Union[MultipleChoice, ShortAnswer, Coding]


def question_preview(payload: QuestionPayload, max_length: int = 100) -> str:
    """Short human-readable preview used by the presenter view."""
    if isinstance(payload, Coding):
        return f"[Coding] {payload.statement[:max_length]}"
    return payload.question[:max_length]


@dataclass(frozen=True)
class RawQuestion:
    """Question text produced by extraction or interval generation, before formatting."""
    question_text: str
    suggested_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    confidence: float = 1.0
