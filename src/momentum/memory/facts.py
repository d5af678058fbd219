"""Per-category fact storage with change tracking, and the daily timeline."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum

from .models import DayConversation, DayEntry, ExtractedFact, Fact, FactChange, MemoryRecord

logger = logging.getLogger(__name__)


class MergeOutcome(Enum):
    """What happened when a fact was merged into the store."""

    NEW = "new"
    CONFIRMED = "confirmed"
    CHANGED = "changed"


def _same_value(a: str, b: str) -> bool:
    return a.strip().casefold() == b.strip().casefold()


def merge_fact(
    facts: dict[str, dict[str, Fact]],
    extracted: ExtractedFact,
    now: datetime | None = None,
) -> tuple[MergeOutcome, Fact, FactChange | None]:
    """Merge an extracted fact into a category -> key -> Fact mapping.

    A new key is inserted. A known key with the same value only has its
    mention metadata bumped. A known key with a different value archives the
    old value, with the confidence it had, into ``previous_values`` before it
    is overwritten. Values are compared ignoring case and surrounding
    whitespace, so "Acme" and " acme" confirm each other rather than count as
    a change. Confidence is always the maximum ever observed for the key.

    Args:
        facts: The record's fact mapping, modified in place.
        extracted: The fact to merge.
        now: Timestamp to record, defaults to the current time.

    Returns:
        Tuple of (outcome, stored fact, archived change or None).
    """
    now = now or datetime.now()
    confidence = min(1.0, max(0.0, extracted.confidence))
    category = facts.setdefault(extracted.category.value, {})
    existing = category.get(extracted.key)

    if existing is None:
        fact = Fact(
            value=extracted.value,
            context=extracted.context,
            confidence=confidence,
            first_mentioned=now,
            last_mentioned=now,
        )
        category[extracted.key] = fact
        logger.debug("New fact %s.%s = %s", extracted.category.value, extracted.key, extracted.value)
        return MergeOutcome.NEW, fact, None

    change = None
    if not _same_value(existing.value, extracted.value):
        # Archive the old value as it was before this mention
        change = FactChange(
            value=existing.value,
            context=existing.context,
            confidence=existing.confidence,
            date_changed=now,
        )

    existing.mention_count += 1
    existing.last_mentioned = now
    existing.confidence = max(existing.confidence, confidence)

    if change is None:
        return MergeOutcome.CONFIRMED, existing, None

    existing.previous_values.append(change)
    existing.value = extracted.value
    existing.context = extracted.context or existing.context
    logger.info(
        "Fact changed %s.%s: %s -> %s",
        extracted.category.value,
        extracted.key,
        change.value,
        extracted.value,
    )
    return MergeOutcome.CHANGED, existing, change


def recent_facts(
    record: MemoryRecord, category: str, limit: int = 5
) -> list[tuple[str, Fact]]:
    """Return the most recently mentioned facts of a category, newest first."""
    facts = record.facts.get(category, {})
    ordered = sorted(facts.items(), key=lambda item: item[1].last_mentioned, reverse=True)
    return ordered[:limit]


def get_day_entry(record: MemoryRecord, day: str, max_days: int = 60) -> DayEntry:
    """Get the timeline entry for a calendar day, creating it if needed.

    Args:
        record: The user's memory record.
        day: ISO calendar date (YYYY-MM-DD).
        max_days: Timeline cap; the oldest days are evicted first.
    """
    for entry in reversed(record.timeline):
        if entry.date == day:
            return entry

    entry = DayEntry(date=day)
    record.timeline.append(entry)
    record.timeline.sort(key=lambda e: e.date)
    if len(record.timeline) > max_days:
        record.timeline = record.timeline[-max_days:]
    return entry


def record_day_activity(
    record: MemoryRecord,
    when: datetime,
    summary: str,
    fact_count: int,
    learned: list[str],
    topics: list[str],
    key_events: list[str] | None = None,
    max_days: int = 60,
) -> DayEntry:
    """Append a conversation summary and what it taught us to the day's entry."""
    entry = get_day_entry(record, when.date().isoformat(), max_days=max_days)
    entry.conversations.append(
        DayConversation(
            time=when.strftime("%H:%M"),
            summary=summary,
            facts_extracted_count=fact_count,
        )
    )
    for item in learned:
        if item not in entry.facts_learned:
            entry.facts_learned.append(item)
    for topic in topics:
        if topic not in entry.topics_discussed:
            entry.topics_discussed.append(topic)
    entry.key_events.extend(key_events or [])
    return entry
