"""LiveQuiz - turn a live lecture into quiz questions for every student in the room."""

__version__ = "0.1.0"
