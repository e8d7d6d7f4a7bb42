"""Terminal UI for the instructor."""
