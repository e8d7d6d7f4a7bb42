"""Unit tests for spoken send-command detection."""

import pytest

from livequiz.services.voice_commands import VoiceCommandDetector, similarity


@pytest.fixture
def detector(fake_clock):
    return VoiceCommandDetector(cooldown_seconds=5.0, recent_chunks=3, clock=fake_clock)


@pytest.mark.unit
class TestVoiceCommandDetector:

    @pytest.mark.parametrize("text", [
        "What is the powerhouse of the cell? Send question now.",
        "okay send the question",
        "Question now please",
        "alright, send now",
        "sand question",
        "send questin",
    ])
    def test_detects_send_commands(self, detector, text):
        assert detector.detect(text) is True

    @pytest.mark.parametrize("text", [
        "Today we will discuss photosynthesis in plants",
        "send",
        "",
    ])
    def test_ignores_lecture_speech(self, detector, text):
        assert detector.detect(text) is False

    def test_cooldown(self, detector, fake_clock):
        assert detector.detect("send question now") is True

        fake_clock.advance(4.0)
        assert detector.detect("okay send the question") is False

        fake_clock.advance(1.0)
        assert detector.detect("okay send the question") is True

    def test_same_text_never_fires_twice(self, detector, fake_clock):
        assert detector.detect("send question now") is True
        fake_clock.advance(60)

        assert detector.detect("Send question now") is False

    def test_reset_clears_cooldown(self, detector):
        detector.detect("send question now")
        detector.reset()

        assert detector.detect("send question now") is True

    def test_only_recent_segments_are_checked(self, detector):
        segments = ["send question now", "Osmosis moves water", "across a membrane", "toward solutes."]

        assert detector.check_transcript(segments) is False
        assert detector.check_transcript(segments[:3]) is True

    def test_empty_transcript(self, detector):
        assert detector.check_transcript([]) is False


@pytest.mark.unit
def test_similarity():
    assert similarity("send question", "Send Question") == 1.0
    assert similarity("sand question", "send question") > 0.85
    assert similarity("send questin", "send question") > 0.9
    assert similarity("", "send now") == 0.0
    assert similarity("the mitochondria is the powerhouse", "send now") < 0.5
