"""Memory manager: owns every user's memory record.

This is the main interface of the memory system. The chat layer calls
``record_turn`` after each exchange and ``format_context`` before building
the next prompt.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable

from ..config import MemoryConfig
from .facts import recent_facts
from .models import ConversationTurn, MemoryRecord, Personality
from .patterns import append_unique, extract_patterns, extract_topics
from .store import MemoryStore

if TYPE_CHECKING:
    from groq import AsyncGroq

    from ..logging import JSONLLogger
    from .enrichment import EnrichmentPipeline

logger = logging.getLogger(__name__)

NEW_USER_CONTEXT = "New user - no conversation history yet."

# Fact categories surfaced in the prompt context, in display order
CONTEXT_CATEGORIES = ("personal", "relationships", "work", "possessions", "preferences")


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


@dataclass
class MemoryStats:
    """Aggregate statistics about a user's conversations."""

    user_id: str
    total_conversations: int = 0
    total_messages: int = 0
    average_message_length: int = 0
    most_common_topics: list[tuple[str, int]] = field(default_factory=list)
    conversation_streak: int = 0
    last_conversation: datetime | None = None
    total_facts: int = 0
    preferred_personality: str = Personality.default().value

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "total_conversations": self.total_conversations,
            "total_messages": self.total_messages,
            "average_message_length": self.average_message_length,
            "most_common_topics": [
                {"topic": topic, "count": count}
                for topic, count in self.most_common_topics
            ],
            "conversation_streak": self.conversation_streak,
            "last_conversation": (
                self.last_conversation.isoformat() if self.last_conversation else None
            ),
            "total_facts": self.total_facts,
            "preferred_personality": self.preferred_personality,
        }


def conversation_streak(record: MemoryRecord) -> int:
    """Count consecutive calendar days with conversations, ending at the latest one."""
    days = sorted({turn.timestamp.date() for turn in record.conversation_history})
    if not days:
        return 0

    streak = 1
    for i in range(len(days) - 1, 0, -1):
        if days[i] - days[i - 1] == timedelta(days=1):
            streak += 1
        else:
            break
    return streak


class MemoryManager:
    """Orchestrates memory records: turn recording, formatting, and persistence.

    Records live in memory for the lifetime of the process. ``open`` loads
    the snapshot and starts periodic saving; ``close`` waits for in-flight
    enrichment and writes a final snapshot.
    """

    def __init__(
        self,
        store: MemoryStore,
        config: MemoryConfig | None = None,
        pipeline: EnrichmentPipeline | None = None,
        event_logger: JSONLLogger | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the manager.

        Args:
            store: Snapshot storage for all records.
            config: Caps and limits, defaults to MemoryConfig().
            pipeline: Optional background enrichment pipeline.
            event_logger: Optional JSONL event log.
            clock: Returns the current time.
        """
        self.store = store
        self.config = config or MemoryConfig()
        self.pipeline = pipeline
        self.event_logger = event_logger
        self._clock = clock
        self._records: dict[str, MemoryRecord] = {}
        self._pending: set[asyncio.Task] = set()
        self._opened = False

        if self.pipeline is not None and self.pipeline.on_update is None:
            self.pipeline.on_update = self.save

    @classmethod
    def from_config(
        cls,
        config: MemoryConfig,
        llm_client: AsyncGroq,
        event_logger: JSONLLogger | None = None,
    ) -> MemoryManager:
        """Wire a manager with enrichment backed by a Groq client."""
        from .enrichment import EnrichmentPipeline
        from .extractor import FactExtractor
        from .summarizer import TurnSummarizer
        from .usage import UsageGovernor

        governor = UsageGovernor(
            max_calls_per_user=config.max_calls_per_user,
            max_total_calls=config.max_total_calls,
            min_message_length=config.min_message_length,
        )
        pipeline = EnrichmentPipeline(
            governor=governor,
            extractor=FactExtractor(
                llm_client, model=config.model, timeout=config.extraction_timeout
            ),
            summarizer=TurnSummarizer(
                llm_client, model=config.model, timeout=config.summary_timeout
            ),
            timeline_days=config.timeline_days,
            event_logger=event_logger,
        )
        store = MemoryStore(config.data_path, autosave_interval=config.autosave_interval)
        return cls(store, config=config, pipeline=pipeline, event_logger=event_logger)

    # ── lifecycle ──────────────────────────────────────────────────────

    def open(self) -> None:
        """Load the snapshot and start periodic saving if a loop is running."""
        if self._opened:
            return
        self._records = self.store.load_all()
        self._opened = True

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, periodic snapshots disabled")
            return
        self.store.start_autosave(self.save)

    async def close(self) -> None:
        """Wait for enrichment, stop periodic saving, and save one last time."""
        await self.wait_for_enrichment()
        await self.store.stop_autosave()
        self.save()
        self._opened = False

    async def wait_for_enrichment(self) -> None:
        """Wait until every scheduled enrichment task has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def save(self) -> bool:
        """Snapshot every record. Failures are logged, never raised."""
        try:
            ok = self.store.save_all(self._records)
        except Exception as e:
            logger.error(f"Memory snapshot failed: {e}", exc_info=True)
            ok = False
        self._log_event("log_snapshot", len(self._records), ok)
        return ok

    def _log_event(self, method: str, *args: Any) -> None:
        """Write to the event log. Failures are logged, never raised."""
        if self.event_logger is None:
            return
        try:
            getattr(self.event_logger, method)(*args)
        except Exception as e:
            logger.warning(f"Event log write failed ({method}): {e}")

    # ── records ────────────────────────────────────────────────────────

    @property
    def user_ids(self) -> list[str]:
        return list(self._records)

    def get_or_create(self, user_id: str) -> MemoryRecord:
        """Get a user's record, creating an empty one on first reference."""
        record = self._records.get(user_id)
        if record is None:
            now = self._clock()
            record = MemoryRecord(user_id=user_id, created_at=now, last_updated=now)
            self._records[user_id] = record
            logger.info("Created memory record for user %s", user_id)
        return record

    def record_turn(
        self,
        user_id: str,
        user_message: str,
        ai_response: str,
        personality: str | Personality | None = None,
    ) -> asyncio.Task | None:
        """Add a conversation turn to a user's memory.

        Patterns and topics are merged synchronously. Enrichment is scheduled
        as a detached task on the running loop and not awaited. This method
        never raises.

        Args:
            user_id: Stable user identifier.
            user_message: What the user said.
            ai_response: What the assistant replied.
            personality: Personality used for this turn, if known.

        Returns:
            The scheduled enrichment task, or None if none was scheduled.
        """
        try:
            record = self.get_or_create(user_id)
            turn = self._append_turn(record, user_message, ai_response, personality)
        except Exception as e:
            logger.error(f"Failed to record turn for user {user_id}: {e}", exc_info=True)
            return None

        self.save()
        return self._schedule_enrichment(record, turn)

    def _append_turn(
        self,
        record: MemoryRecord,
        user_message: str,
        ai_response: str,
        personality: str | Personality | None,
    ) -> ConversationTurn:
        cfg = self.config
        now = self._clock()
        if personality is not None:
            record.profile.preferred_personality = Personality.resolve(personality)

        topics = extract_topics(user_message)
        patterns = extract_patterns(user_message)

        turn = ConversationTurn(
            timestamp=now,
            user_message=user_message,
            ai_response=ai_response,
            topics=topics,
            message_length=len(user_message),
            personality=record.profile.preferred_personality.value,
        )
        record.conversation_history.append(turn)
        if len(record.conversation_history) > cfg.history_limit:
            record.conversation_history = record.conversation_history[-cfg.history_limit:]

        record.goals = append_unique(record.goals, patterns.goals, cfg.goals_limit)
        p = record.patterns
        p.problems = append_unique(p.problems, patterns.problems, cfg.problems_limit)
        p.decisions = append_unique(p.decisions, patterns.decisions, cfg.decisions_limit)
        p.motivation_triggers = append_unique(
            p.motivation_triggers, patterns.triggers, cfg.triggers_limit
        )
        p.topics = append_unique(p.topics, topics, cfg.topics_limit)

        record.recent_patterns_summary = self._summarize_patterns(record)
        record.touch(now)

        logger.info(
            "Memory updated for user %s - %d total conversations",
            record.user_id,
            len(record.conversation_history),
        )
        self._log_event(
            "log_turn_recorded", record.user_id, topics, len(record.conversation_history)
        )
        return turn

    def _summarize_patterns(self, record: MemoryRecord) -> str:
        count = len(record.conversation_history)
        personality = record.profile.preferred_personality.value
        recent = [
            topic
            for turn in record.conversation_history[-5:]
            for topic in turn.topics
        ]
        topics = ", ".join(append_unique([], recent, 3))

        if count > 3:
            return (
                f"Regular user with {_plural(count, 'conversation')}. "
                f"Recent topics: {topics or 'none yet'}. "
                f"Prefers {personality} personality."
            )
        summary = f"New user exploring {personality} personality. {_plural(count, 'conversation')} so far."
        if topics:
            summary += f" Recent topics: {topics}."
        return summary

    def _schedule_enrichment(
        self, record: MemoryRecord, turn: ConversationTurn
    ) -> asyncio.Task | None:
        if self.pipeline is None:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, skipping enrichment for %s", record.user_id)
            return None

        task = loop.create_task(self.pipeline.enrich(record, turn))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    # ── reading ────────────────────────────────────────────────────────

    def format_context(self, user_id: str) -> str:
        """Format a user's memory as a prose block for the prompt builder.

        Args:
            user_id: Stable user identifier.

        Returns:
            Context block starting with 'USER MEMORY CONTEXT:', or a fixed
            sentence for users without history.
        """
        record = self.get_or_create(user_id)
        history = record.conversation_history
        if not history:
            return NEW_USER_CONTEXT

        today = self._clock().date()
        lines = [
            "USER MEMORY CONTEXT:",
            f"- Total conversations: {len(history)}",
            f"- Recent patterns: {record.recent_patterns_summary}",
            f"- Current goals: {', '.join(record.goals[-3:]) or 'None identified yet'}",
        ]

        for category in CONTEXT_CATEGORIES:
            facts = recent_facts(record, category, limit=5)
            if not facts:
                continue
            rendered = []
            for key, fact in facts:
                text = f"{key}: {fact.value}"
                if fact.context:
                    text += f" ({fact.context})"
                rendered.append(text)
            lines.append(f"- Known {category} facts: {'; '.join(rendered)}")

        days = [day for day in record.timeline if not day.is_empty()][-7:]
        if days:
            lines.append("- Recent timeline:")
            for day in reversed(days):
                label = "Today" if day.date == today.isoformat() else day.date
                learned = ", ".join(day.facts_learned) or "nothing new"
                lines.append(
                    f"  {label}: learned {learned} "
                    f"({_plural(len(day.conversations), 'conversation')})"
                )

        p = record.patterns
        if p.motivation_triggers:
            lines.append(f"- Motivation triggers: {', '.join(p.motivation_triggers[-5:])}")
        if p.problems:
            lines.append(f"- Recent challenges: {', '.join(p.problems[-3:])}")
        if p.topics:
            lines.append(f"- Discussion topics: {', '.join(p.topics[-5:])}")

        last = history[-1].timestamp.date()
        lines.append(f"- Last conversation: {'Today' if last == today else last.isoformat()}")

        return "\n".join(lines)

    def get_stats(self, user_id: str) -> MemoryStats:
        """Compute conversation statistics for a user."""
        record = self.get_or_create(user_id)
        history = record.conversation_history

        counts: Counter[str] = Counter()
        for turn in history:
            counts.update(turn.topics)

        return MemoryStats(
            user_id=user_id,
            total_conversations=len(history),
            total_messages=len(history) * 2,
            average_message_length=(
                round(sum(turn.message_length for turn in history) / len(history))
                if history
                else 0
            ),
            most_common_topics=counts.most_common(5),
            conversation_streak=conversation_streak(record),
            last_conversation=history[-1].timestamp if history else None,
            total_facts=record.fact_count(),
            preferred_personality=record.profile.preferred_personality.value,
        )

    # ── export / import ────────────────────────────────────────────────

    def export_user(self, user_id: str) -> dict[str, Any]:
        """Export a user's full memory as a JSON-serializable dict."""
        record = self.get_or_create(user_id)
        return {
            "memory": record.to_dict(),
            "exported_at": self._clock().isoformat(),
        }

    def import_user(self, user_id: str, data: dict[str, Any]) -> MemoryRecord:
        """Replace a user's memory with previously exported data.

        Accepts either the envelope produced by ``export_user`` or a bare
        record dict.

        Raises:
            ValueError: If the data cannot be parsed into a record.
        """
        memory = data.get("memory", data)
        try:
            record = MemoryRecord.from_dict({**memory, "user_id": user_id})
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid memory data for user {user_id}: {e}") from e

        self._records[user_id] = record
        self.save()
        logger.info("Imported memory for user %s", user_id)
        return record
