"""Configuration for the memory subsystem.

Values come from environment variables (a ``.env`` file is loaded by the CLI
entry point) and fall back to the defaults below.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_DATA_PATH = Path.home() / ".momentum" / "user_memories.json"
DEFAULT_MODEL = "llama-3.1-70b-versatile"


@dataclass
class MemoryConfig:
    """Configuration for memory records, enrichment, and persistence.

    Attributes:
        data_path: JSON snapshot file holding every user's memory.
        autosave_interval: Seconds between periodic snapshots.
        model: Groq model used for extraction and summaries.
        extraction_timeout: Seconds to wait for fact extraction.
        summary_timeout: Seconds to wait for a conversation summary.
        max_calls_per_user: Daily enrichment cap per user.
        max_total_calls: Daily enrichment cap across all users.
        min_message_length: Shorter messages are never enriched.
        history_limit: Conversation turns kept per user.
        goals_limit: Goal fragments kept per user.
        triggers_limit: Motivation triggers kept per user.
        problems_limit: Problem fragments kept per user.
        decisions_limit: Decision fragments kept per user.
        topics_limit: Topic tags kept per user.
        timeline_days: Days of timeline kept per user.
    """

    data_path: Path = DEFAULT_DATA_PATH
    autosave_interval: float = 30.0
    model: str = DEFAULT_MODEL
    extraction_timeout: float = 10.0
    summary_timeout: float = 5.0
    max_calls_per_user: int = 100
    max_total_calls: int = 500
    min_message_length: int = 10
    history_limit: int = 50
    goals_limit: int = 10
    triggers_limit: int = 15
    problems_limit: int = 10
    decisions_limit: int = 10
    topics_limit: int = 20
    timeline_days: int = 60

    def __post_init__(self) -> None:
        """Validate config and set defaults."""
        self.data_path = Path(self.data_path).expanduser()

        if self.autosave_interval <= 0:
            raise ValueError("autosave_interval must be positive")
        if self.extraction_timeout <= 0 or self.summary_timeout <= 0:
            raise ValueError("timeouts must be positive")

        for name in (
            "max_calls_per_user",
            "max_total_calls",
            "history_limit",
            "goals_limit",
            "triggers_limit",
            "problems_limit",
            "decisions_limit",
            "topics_limit",
            "timeline_days",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s: %r. Using %d.", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid number for %s: %r. Using %s.", name, raw, default)
        return default


def config_from_env() -> MemoryConfig:
    """Load configuration from environment variables."""
    data_path = os.getenv("MOMENTUM_DATA_PATH")
    return MemoryConfig(
        data_path=Path(data_path) if data_path else DEFAULT_DATA_PATH,
        autosave_interval=_env_float("MOMENTUM_AUTOSAVE_INTERVAL", 30.0),
        model=os.getenv("GROQ_MODEL", DEFAULT_MODEL),
        extraction_timeout=_env_float("MOMENTUM_EXTRACTION_TIMEOUT", 10.0),
        summary_timeout=_env_float("MOMENTUM_SUMMARY_TIMEOUT", 5.0),
        max_calls_per_user=_env_int("MOMENTUM_MAX_CALLS_PER_USER", 100),
        max_total_calls=_env_int("MOMENTUM_MAX_TOTAL_CALLS", 500),
    )
