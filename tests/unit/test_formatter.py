"""Unit tests for QuestionFormatter."""

import asyncio
import random
import pytest
from unittest.mock import AsyncMock, Mock

from livequiz.errors import InferenceError, InferenceErrorCategory
from livequiz.models.questions import Coding, MultipleChoice, QuestionType, ShortAnswer
from livequiz.questions.formatter import QuestionFormatter, strip_option_prefix

MCQ_RESPONSE = {
    "question": "Which organelle produces most of a cell's ATP?",
    "correct_answer": "Mitochondria",
    "distractors": ["Ribosome", "Golgi apparatus", "Lysosome"],
    "explanation": "Oxidative phosphorylation happens in the mitochondria.",
}


@pytest.fixture
def client():
    client = Mock()
    client.complete_json = AsyncMock(return_value=dict(MCQ_RESPONSE))
    return client


def fixed_rng(index):
    rng = Mock()
    rng.randrange.return_value = index
    return rng


def run(coro):
    return asyncio.run(coro)


@pytest.mark.unit
class TestQuestionFormatter:

    def test_multiple_choice_places_correct_answer(self, client):
        formatter = QuestionFormatter(client, rng=fixed_rng(2))

        payload = run(formatter.format("What makes ATP?", QuestionType.MULTIPLE_CHOICE, "cell biology"))

        assert isinstance(payload, MultipleChoice)
        assert payload.options == ("Ribosome", "Golgi apparatus", "Mitochondria", "Lysosome")
        assert payload.correct_index == 2
        assert payload.correct_letter == "C"
        assert payload.to_dict()["options"][2] == "C. Mitochondria"
        assert payload.to_dict()["correctAnswer"] == "C"
        prompt = client.complete_json.call_args.args[0]
        assert "What makes ATP?" in prompt
        assert "cell biology" in prompt

    def test_every_position_is_used(self, client):
        formatter = QuestionFormatter(client, rng=random.Random(1234))

        positions = {run(formatter.format("What makes ATP?", QuestionType.MULTIPLE_CHOICE)).correct_index
                     for _ in range(60)}

        assert positions == {0, 1, 2, 3}

    def test_lettered_options_are_reshuffled(self, client):
        client.complete_json.return_value = {
            "question": "Capital of France?",
            "options": ["A. Paris", "B. Lyon", "C. Nice", "D. Lille"],
            "correctAnswer": "A",
        }
        formatter = QuestionFormatter(client, rng=fixed_rng(3))

        payload = run(formatter.format("Capital of France?", QuestionType.MULTIPLE_CHOICE))

        assert payload.options == ("Lyon", "Nice", "Lille", "Paris")
        assert payload.correct_letter == "D"

    @pytest.mark.parametrize("response", [
        {"question": "Q?", "correct_answer": "yes", "distractors": ["no", "maybe"]},
        {"question": "Q?", "options": ["a", "b", "c", "d"], "correctAnswer": "E"},
        {"question": "", "correct_answer": "yes", "distractors": ["a", "b", "c"]},
        {"correct_answer": "yes", "distractors": ["a", "b", "c"]},
        {"question": "Q?"},
        {"question": "Q?", "correct_answer": "yes", "distractors": ["a", "", "c"]},
    ])
    def test_malformed_multiple_choice(self, client, response):
        client.complete_json.return_value = response
        formatter = QuestionFormatter(client)

        with pytest.raises(InferenceError) as exc_info:
            run(formatter.format("Q?", QuestionType.MULTIPLE_CHOICE))

        assert exc_info.value.category is InferenceErrorCategory.MALFORMED_RESPONSE

    def test_short_answer_needs_no_inference(self, client):
        formatter = QuestionFormatter(client)

        payload = run(formatter.format("  Why is the sky blue?  ", QuestionType.SHORT_ANSWER))

        assert payload == ShortAnswer(question="Why is the sky blue?")
        assert payload.to_dict()["gradingMode"] == "manual_grade"
        client.complete_json.assert_not_called()

    def test_coding(self, client):
        client.complete_json.return_value = {
            "question": "Write a function that reverses a list.",
            "language": "Python",
            "starterCode": "def reverse(items):\n    pass",
            "testCases": [{"input": [1, 2, 3], "expectedOutput": [3, 2, 1]}],
        }
        formatter = QuestionFormatter(client)

        payload = run(formatter.format("Implement list reversal", QuestionType.CODING))

        assert isinstance(payload, Coding)
        assert payload.language == "python"
        assert payload.test_cases[0].input == "[1, 2, 3]"
        assert payload.to_dict()["testCases"] == [{"input": "[1, 2, 3]", "expectedOutput": "[3, 2, 1]"}]

    def test_coding_without_statement_is_malformed(self, client):
        client.complete_json.return_value = {"language": "python"}
        formatter = QuestionFormatter(client)

        with pytest.raises(InferenceError):
            run(formatter.format("Implement list reversal", QuestionType.CODING))

    def test_inference_errors_propagate(self, client):
        client.complete_json.side_effect = InferenceError(InferenceErrorCategory.RATE_LIMITED)
        formatter = QuestionFormatter(client)

        with pytest.raises(InferenceError) as exc_info:
            run(formatter.format("Q?", QuestionType.MULTIPLE_CHOICE))

        assert exc_info.value.category is InferenceErrorCategory.RATE_LIMITED

    def test_empty_question_rejected(self, client):
        with pytest.raises(ValueError):
            run(QuestionFormatter(client).format("   ", QuestionType.SHORT_ANSWER))

    def test_fast_path_delivers_short_answer_first(self, client):
        formatter = QuestionFormatter(client, rng=fixed_rng(0), fast_path=True)

        provisional, upgrade = formatter.format_fast("What makes ATP?", QuestionType.MULTIPLE_CHOICE)

        assert provisional == ShortAnswer(question="What makes ATP?")
        upgraded = run(upgrade)
        assert isinstance(upgraded, MultipleChoice)
        assert upgraded.correct_index == 0

    def test_without_fast_path_caller_awaits(self, client):
        formatter = QuestionFormatter(client)

        provisional, pending = formatter.format_fast("Why?", QuestionType.SHORT_ANSWER)

        assert provisional is None
        assert run(pending) == ShortAnswer(question="Why?")


@pytest.mark.unit
@pytest.mark.parametrize("option,expected", [
    ("A. Paris", "Paris"),
    ("b) Lyon", "Lyon"),
    ("C: Nice", "Nice"),
    ("Dijon", "Dijon"),
])
def test_strip_option_prefix(option, expected):
    assert strip_option_prefix(option) == expected
