"""Contextual logging for stratrun."""
