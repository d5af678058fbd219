"""Background enrichment of conversation turns.

Each recorded turn may be sent to the LLM for structured fact extraction and
a one-line summary. Results are merged into the user's fact store and daily
timeline. Enrichment is best effort: every failure degrades to less
personalization and nothing is raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable

from .facts import MergeOutcome, merge_fact, record_day_activity
from .models import ConversationTurn, ExtractedFact, MemoryRecord

if TYPE_CHECKING:
    from ..logging import JSONLLogger
    from .extractor import FactExtractor
    from .summarizer import TurnSummarizer
    from .usage import UsageGovernor

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentResult:
    """Outcome of enriching one turn."""

    skipped: bool = False
    reason: str | None = None
    source: str | None = None
    fact_count: int = 0
    learned: list[str] = field(default_factory=list)
    key_events: list[str] = field(default_factory=list)
    summary: str | None = None


class EnrichmentPipeline:
    """Extracts facts and a summary from a turn and merges them into memory."""

    def __init__(
        self,
        governor: UsageGovernor,
        extractor: FactExtractor,
        summarizer: TurnSummarizer,
        timeline_days: int = 60,
        on_update: Callable[[], object] | None = None,
        event_logger: JSONLLogger | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the pipeline.

        Args:
            governor: Quota gate consulted before any LLM call.
            extractor: Structured fact extractor.
            summarizer: One-line turn summarizer.
            timeline_days: Days of timeline kept per user.
            on_update: Called after a record was enriched (e.g. to persist).
            event_logger: Optional JSONL event log.
            clock: Returns the current time.
        """
        self.governor = governor
        self.extractor = extractor
        self.summarizer = summarizer
        self.timeline_days = timeline_days
        self.on_update = on_update
        self.event_logger = event_logger
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    def get_lock(self, user_id: str) -> asyncio.Lock:
        """Get the merge lock for a user."""
        if user_id not in self._locks:
            self._locks[user_id] = asyncio.Lock()
        return self._locks[user_id]

    async def enrich(self, record: MemoryRecord, turn: ConversationTurn) -> EnrichmentResult:
        """Enrich a turn that was already appended to the record's history.

        Args:
            record: The user's memory record, updated in place.
            turn: The conversation turn to analyze.

        Returns:
            EnrichmentResult describing what was merged.
        """
        try:
            return await self._enrich(record, turn)
        except Exception as e:
            logger.error(f"Enrichment failed for user {record.user_id}: {e}", exc_info=True)
            return EnrichmentResult(skipped=True, reason="error")

    async def _enrich(self, record: MemoryRecord, turn: ConversationTurn) -> EnrichmentResult:
        user_id = record.user_id
        if not self.governor.can_enrich(user_id, turn.user_message):
            logger.debug("Enrichment skipped for user %s", user_id)
            self._log_event("log_enrichment_skipped", user_id, "quota")
            return EnrichmentResult(skipped=True, reason="quota")

        self.governor.record_usage(user_id)
        started = time.monotonic()

        extraction, summary = await asyncio.gather(
            self.extractor.extract(turn.user_message, turn.ai_response),
            self.summarizer.summarize(turn.user_message, turn.ai_response, turn.topics),
        )

        async with self.get_lock(user_id):
            result = self._merge(record, turn, extraction.facts, summary)
            result.source = extraction.source

        duration_ms = (time.monotonic() - started) * 1000
        logger.info(
            "Enriched turn for user %s: %d facts (%s) in %.0fms",
            user_id,
            result.fact_count,
            extraction.source,
            duration_ms,
        )
        self._log_event(
            "log_enrichment",
            user_id,
            extraction.source,
            result.fact_count,
            duration_ms,
            error=extraction.error,
        )

        if self.on_update is not None:
            try:
                self.on_update()
            except Exception as e:
                logger.error(f"Persisting after enrichment failed: {e}")

        return result

    def _log_event(self, method: str, *args: Any, **kwargs: Any) -> None:
        if self.event_logger is None:
            return
        try:
            getattr(self.event_logger, method)(*args, **kwargs)
        except Exception as e:
            logger.warning(f"Event log write failed ({method}): {e}")

    def _merge(
        self,
        record: MemoryRecord,
        turn: ConversationTurn,
        facts: list[ExtractedFact],
        summary: str,
    ) -> EnrichmentResult:
        """Merge extracted facts and the summary into the record."""
        now = self._clock()
        learned: list[str] = []
        key_events: list[str] = []

        for extracted in facts:
            outcome, fact, change = merge_fact(record.facts, extracted, now=now)
            if outcome is MergeOutcome.CONFIRMED:
                continue
            learned.append(f"{extracted.key}: {fact.value}")
            if change is not None:
                key_events.append(
                    f"{extracted.key} changed from {change.value} to {fact.value}"
                )

        record_day_activity(
            record,
            turn.timestamp,
            summary,
            fact_count=len(facts),
            learned=learned,
            topics=turn.topics,
            key_events=key_events,
            max_days=self.timeline_days,
        )

        turn.facts_extracted = True
        turn.fact_count = len(facts)
        record.touch(now)

        return EnrichmentResult(
            fact_count=len(facts),
            learned=learned,
            key_events=key_events,
            summary=summary,
        )
