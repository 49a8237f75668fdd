"""Service facade: start, retry and inspect strategy runs."""
