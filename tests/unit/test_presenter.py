"""Unit tests for the presenter channel and screen."""

import io
import pytest
from pubsub import pub
from rich.console import Console

from livequiz.models.presenter import LastQuestionSent, PresenterStatus
from livequiz.presenter.broadcast import PRESENTER_STATUS_TOPIC, PresenterBroadcastChannel
from livequiz.ui.presenter_screen import PresenterScreen, format_countdown


def recording_console():
    return Console(file=io.StringIO(), width=120, force_terminal=False)


@pytest.mark.unit
class TestPresenterBroadcastChannel:

    def test_publish_reaches_listeners(self):
        received = []

        def listener(status):
            received.append(status)

        pub.subscribe(listener, PRESENTER_STATUS_TOPIC)
        channel = PresenterBroadcastChannel()
        status = PresenterStatus(is_recording=True, seconds_left=120)

        assert channel.publish(status) is True
        assert received == [status]
        assert channel.last_status is status

    def test_failing_listener_is_contained(self):
        def listener(status):
            raise RuntimeError("view closed")

        pub.subscribe(listener, PRESENTER_STATUS_TOPIC)
        channel = PresenterBroadcastChannel()

        assert channel.publish(PresenterStatus()) is False
        assert channel.failures == 1


@pytest.mark.unit
class TestPresenterScreen:

    def test_render_live_status(self):
        console = recording_console()
        screen = PresenterScreen(console=console)
        status = PresenterStatus(
            is_recording=True,
            seconds_left=754,
            auto_question_enabled=True,
            mode="chunked",
            last_question_sent=LastQuestionSent(question="What is osmosis?", type="short_answer",
                                                timestamp="2024-03-05T12:00:00+00:00"),
            recording_duration=65,
            transcript_length=1200,
            message="Please wait 40s before sending another question",
        )

        console.print(screen.render(status))
        output = console.file.getvalue()

        assert "LIVE" in output
        assert "chunked" in output
        assert "12:34" in output
        assert "What is osmosis?" in output
        assert "1200 chars" in output
        assert "Please wait 40s" in output

    def test_redraws_only_on_change(self):
        console = recording_console()
        screen = PresenterScreen(console=console)
        screen.attach()
        channel = PresenterBroadcastChannel()

        channel.publish(PresenterStatus(auto_question_enabled=False))
        first = console.file.getvalue()
        channel.publish(PresenterStatus(auto_question_enabled=False))

        assert console.file.getvalue() == first
        assert "stopped" in first
        assert "off" in first

        channel.publish(PresenterStatus(auto_question_enabled=True, seconds_left=900))
        assert "15:00" in console.file.getvalue()
        screen.detach()


@pytest.mark.unit
@pytest.mark.parametrize("seconds,expected", [(0, "0:00"), (59, "0:59"), (900, "15:00"), (-5, "0:00")])
def test_format_countdown(seconds, expected):
    assert format_countdown(seconds) == expected
