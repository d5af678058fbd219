"""momentum: conversational memory for a motivational voice assistant."""

__version__ = "0.1.0"
