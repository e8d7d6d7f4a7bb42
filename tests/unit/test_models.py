"""Unit tests for the data models."""

import pytest

from livequiz.models.distribution import DispatchResult, DistributionJob, SendSource
from livequiz.models.questions import (
    Coding,
    CodingTestCase,
    MultipleChoice,
    QuestionType,
    ShortAnswer,
    question_preview,
)
from livequiz.models.session import RecordingSession, TranscriptBuffer
from livequiz.models.transcription import TranscriptChunk, TranscriptionMode


@pytest.mark.unit
class TestQuestionPayloads:

    def test_question_type_parse(self):
        assert QuestionType.parse("coding") is QuestionType.CODING
        assert QuestionType.parse(QuestionType.SHORT_ANSWER) is QuestionType.SHORT_ANSWER
        assert QuestionType.parse("essay") is QuestionType.MULTIPLE_CHOICE
        assert QuestionType.parse(None, default=QuestionType.CODING) is QuestionType.CODING

    def test_multiple_choice_needs_four_options(self):
        with pytest.raises(ValueError):
            MultipleChoice(question="Q?", options=("a", "b", "c"), correct_index=0)
        with pytest.raises(ValueError):
            MultipleChoice(question="Q?", options=("a", "b", "c", "d"), correct_index=4)

    def test_multiple_choice_to_dict(self):
        payload = MultipleChoice(question="2 + 2?", options=("3", "4", "5", "22"), correct_index=1,
                                 explanation="Basic arithmetic")

        assert payload.to_dict() == {
            "type": "multiple_choice",
            "question": "2 + 2?",
            "options": ["A. 3", "B. 4", "C. 5", "D. 22"],
            "correctAnswer": "B",
            "explanation": "Basic arithmetic",
        }

    def test_preview(self):
        coding = Coding(statement="Reverse a string", starter_code="def rev(s):",
                        test_cases=(CodingTestCase("'ab'", "'ba'"),))

        assert question_preview(coding) == "[Coding] Reverse a string"
        assert question_preview(ShortAnswer(question="x" * 150)) == "x" * 100


@pytest.mark.unit
class TestDistributionModels:

    def test_job_dedupes_roster_in_order(self):
        job = DistributionJob.create(ShortAnswer("Q?"), ["b", "a", "b", "c", "a"],
                                     source=SendSource.AUTO_INTERVAL)

        assert job.roster == ("b", "a", "c")
        assert job.source is SendSource.AUTO_INTERVAL
        assert len(job.idempotency_key) == 32

    def test_jobs_get_distinct_keys(self):
        first = DistributionJob.create(ShortAnswer("Q?"), ["a"])
        second = DistributionJob.create(ShortAnswer("Q?"), ["a"])

        assert first.idempotency_key != second.idempotency_key

    def test_partial_failure(self):
        assert DispatchResult("key", delivered=10).partial_failure is None

        failure = DispatchResult("key", delivered=8, failed=["x", "y"]).partial_failure
        assert failure.delivered == 8
        assert failure.failed_count == 2


@pytest.mark.unit
class TestRecordingSession:

    def test_ingest_fills_both_buffers(self):
        session = RecordingSession.create(started_at=0.0, mode=TranscriptionMode.CHUNKED)

        session.ingest(TranscriptChunk(text=" Cells divide. ", captured_at=1.0))
        session.ingest(TranscriptChunk(text="   ", captured_at=2.0))
        session.ingest(TranscriptChunk(text="Then they grow.", captured_at=3.0))

        assert session.chunks_ingested == 2
        assert session.transcript_buffer.text() == "Cells divide. Then they grow."
        assert session.interval_buffer.segments == ["Cells divide.", "Then they grow."]

    def test_buffer_views(self):
        buffer = TranscriptBuffer()
        for text in ["one", "two", "three", "four"]:
            buffer.append(text)

        assert buffer.recent_text(10) == "three four"
        assert buffer.recent_segments(2) == ["three", "four"]
        assert len(buffer) == len("one two three four")

        snapshot = buffer.snapshot()
        buffer.clear()
        assert snapshot == "one two three four"
        assert buffer.text() == ""
