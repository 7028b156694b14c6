"""Habit Tracker backend: HTTP API, static media and live updates."""

__version__ = "1.0.0"
