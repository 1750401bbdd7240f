"""formbot: conversational form bot engine."""

__version__ = "0.3.0"
