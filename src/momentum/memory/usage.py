"""Daily quota for background enrichment calls.

The governor bounds spend on the extraction LLM. It is a cost breaker, not a
correctness mechanism: a denied turn is still recorded, just not enriched.
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Any, Callable

logger = logging.getLogger(__name__)

SHORT_REPLIES = frozenset({"ok", "thanks", "yes", "no", "sure", "great", "cool"})


class UsageGovernor:
    """Tracks enrichment calls per user and in total for the current day.

    Counters reset lazily: every call compares today's date against the date
    of the last reset.
    """

    def __init__(
        self,
        max_calls_per_user: int = 100,
        max_total_calls: int = 500,
        min_message_length: int = 10,
        today: Callable[[], date] = date.today,
    ) -> None:
        """Initialize the governor.

        Args:
            max_calls_per_user: Daily enrichment cap for a single user.
            max_total_calls: Daily enrichment cap across all users.
            min_message_length: Messages shorter than this are never enriched.
            today: Clock returning the current calendar date.
        """
        self.max_calls_per_user = max_calls_per_user
        self.max_total_calls = max_total_calls
        self.min_message_length = min_message_length
        self._today = today
        self._reset_date = today()
        self._counts: dict[str, int] = defaultdict(int)
        self._total = 0
        self._warned_global = False

    def _reset_if_new_day(self) -> None:
        today = self._today()
        if today != self._reset_date:
            logger.info(
                "Resetting enrichment usage for %s (%d calls on %s)",
                today.isoformat(),
                self._total,
                self._reset_date.isoformat(),
            )
            self._reset_date = today
            self._counts.clear()
            self._total = 0
            self._warned_global = False

    def can_enrich(self, user_id: str, message: str) -> bool:
        """Decide whether a message is worth an enrichment call.

        Rules are checked in order and the first failing rule denies:
        too short, a bare acknowledgement, user cap reached, global cap
        reached.
        """
        self._reset_if_new_day()

        if len(message) < self.min_message_length:
            return False

        if message.strip().lower() in SHORT_REPLIES:
            return False

        if self._counts.get(user_id, 0) >= self.max_calls_per_user:
            logger.debug("User %s reached the daily enrichment cap", user_id)
            return False

        if self._total >= self.max_total_calls:
            if not self._warned_global:
                logger.warning(
                    "Global daily enrichment cap reached (%d calls)", self._total
                )
                self._warned_global = True
            return False

        return True

    def record_usage(self, user_id: str) -> None:
        """Count one enrichment call for a user."""
        self._reset_if_new_day()
        self._counts[user_id] += 1
        self._total += 1

    def usage_for(self, user_id: str) -> int:
        """Return how many enrichment calls a user made today."""
        self._reset_if_new_day()
        return self._counts.get(user_id, 0)

    @property
    def total_calls(self) -> int:
        self._reset_if_new_day()
        return self._total

    def snapshot(self) -> dict[str, Any]:
        """Return today's usage as a plain dict."""
        self._reset_if_new_day()
        return {
            "date": self._reset_date.isoformat(),
            "users": dict(self._counts),
            "total_calls": self._total,
            "max_calls_per_user": self.max_calls_per_user,
            "max_total_calls": self.max_total_calls,
        }
