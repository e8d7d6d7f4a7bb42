"""Roster of students linked to the instructor."""

import logging
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)


def load_roster(path: str) -> List[str]:
    """Read student ids, one per line; blank lines and '#' comments are ignored."""
    roster_file = Path(path)
    if not roster_file.exists():
        logger.warning(f"Roster file not found: {path}")
        return []

    with open(roster_file, "r", encoding="utf-8") as f:
        students = [line.strip() for line in f
                    if line.strip() and not line.lstrip().startswith("#")]
    logger.info(f"Loaded {len(students)} students from {path}")
    return students
