"""StudyBuddy: adaptive CBC study companion backend and sync client."""

__version__ = "0.1.0"
