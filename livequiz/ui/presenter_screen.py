"""Rich console view of the presenter status."""

import logging
from typing import Optional

from pubsub import pub
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..models.presenter import PresenterStatus
from ..presenter.broadcast import PRESENTER_STATUS_TOPIC

logger = logging.getLogger(__name__)

COMMANDS_HELP = "1=Start recording  2=Stop recording  3=Send question now  4=Toggle auto-question  q=Quit"


def format_countdown(seconds_left: int) -> str:
    minutes, seconds = divmod(max(0, seconds_left), 60)
    return f"{minutes}:{seconds:02d}"


class PresenterScreen:
    """Renders every PresenterStatus published on the presenter topic."""

    def __init__(self, console: Optional[Console] = None, topic: str = PRESENTER_STATUS_TOPIC):
        self.console = console or Console()
        self.topic = topic
        self.last_rendered: Optional[PresenterStatus] = None

    def attach(self) -> None:
        pub.subscribe(self.on_status, self.topic)

    def detach(self) -> None:
        pub.unsubscribe(self.on_status, self.topic)

    def on_status(self, status: PresenterStatus) -> None:
        # Redraw only when something visible changed
        if status == self.last_rendered:
            return
        self.last_rendered = status
        self.console.clear()
        self.console.print(self.render(status))

    def render(self, status: PresenterStatus) -> Panel:
        table = Table.grid(padding=(0, 2))
        table.add_column(style="bold")
        table.add_column()

        if status.is_recording:
            table.add_row("Recording", f"[bold red]● LIVE[/] ({status.mode}, {status.recording_duration}s)")
        else:
            table.add_row("Recording", "[yellow]stopped[/]")

        if status.auto_question_enabled:
            table.add_row("Auto-question", f"[green]on[/], next in {format_countdown(status.seconds_left)}")
        else:
            table.add_row("Auto-question", "off")

        table.add_row("Transcript", f"{status.transcript_length} chars")

        if status.last_question_sent:
            sent = status.last_question_sent
            table.add_row("Last question", f"({sent.type}) {escape(sent.question)}")

        if status.message:
            table.add_row("Notice", f"[bold red]{escape(status.message)}[/]")

        return Panel(table, title="LiveQuiz", subtitle=COMMANDS_HELP)
