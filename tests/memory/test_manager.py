"""Tests for MemoryManager."""

from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from momentum.config import MemoryConfig
from momentum.memory import (
    NEW_USER_CONTEXT,
    EnrichmentPipeline,
    ExtractedFact,
    FactCategory,
    MemoryManager,
    MemoryStore,
    Personality,
    merge_fact,
)
from momentum.memory.facts import record_day_activity
from momentum.memory.manager import conversation_streak


class FakeClock:
    """Controllable wall clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 5, 4, 9, 0))


@pytest.fixture
def store(tmp_path: Path) -> MemoryStore:
    return MemoryStore(tmp_path / "user_memories.json")


@pytest.fixture
def manager(store: MemoryStore, clock: FakeClock) -> MemoryManager:
    """Manager without enrichment."""
    return MemoryManager(store, clock=clock)


class TestRecordTurn:
    """Tests for record_turn."""

    def test_creates_record_on_first_turn(self, manager: MemoryManager, clock: FakeClock):
        manager.record_turn("u1", "My boss keeps changing deadlines", "That sounds frustrating")

        record = manager.get_or_create("u1")
        assert len(record.conversation_history) == 1
        turn = record.conversation_history[0]
        assert turn.timestamp == clock.now
        assert turn.topics == ["work"]
        assert turn.message_length == len("My boss keeps changing deadlines")
        assert turn.personality == "Lana Croft"
        assert record.patterns.topics == ["work"]

    def test_goal_and_topics_from_one_turn(self, manager: MemoryManager):
        manager.record_turn(
            "u1", "I work at Acme and I'm trying to get promoted this year", "Go for it!"
        )

        record = manager.get_or_create("u1")
        assert len(record.goals) == 1
        assert "trying to get promoted" in record.goals[0]
        assert "work" in record.patterns.topics
        assert "personal-development" in record.patterns.topics
        assert "1 conversation so far" in record.recent_patterns_summary

    def test_personality_updates_profile(self, manager: MemoryManager):
        manager.record_turn("u1", "hello there friend", "Hi!", personality="Baxter Jordan")

        record = manager.get_or_create("u1")
        assert record.profile.preferred_personality is Personality.BAXTER_JORDAN
        assert record.conversation_history[-1].personality == "Baxter Jordan"

    def test_history_capped(self, store: MemoryStore, clock: FakeClock):
        manager = MemoryManager(store, config=MemoryConfig(data_path=store.path, history_limit=3), clock=clock)
        for i in range(5):
            manager.record_turn("u1", f"message number {i}", "ok")

        history = manager.get_or_create("u1").conversation_history
        assert [t.user_message for t in history] == [f"message number {i}" for i in (2, 3, 4)]

    def test_turn_is_persisted(self, manager: MemoryManager, store: MemoryStore):
        manager.record_turn("u1", "hello there friend", "Hi!")

        records = store.load_all()
        assert records["u1"].conversation_history[0].user_message == "hello there friend"

    def test_no_task_without_pipeline(self, manager: MemoryManager):
        assert manager.record_turn("u1", "hello there friend", "Hi!") is None

    def test_never_raises(self, manager: MemoryManager):
        manager._append_turn = Mock(side_effect=RuntimeError("boom"))
        assert manager.record_turn("u1", "hello there friend", "Hi!") is None

    def test_save_failure_is_contained(self, manager: MemoryManager, store: MemoryStore):
        store.save_all = Mock(side_effect=RuntimeError("boom"))
        manager.record_turn("u1", "hello there friend", "Hi!")
        assert len(manager.get_or_create("u1").conversation_history) == 1


class TestCaps:
    """Capped lists keep only the newest unique entries."""

    def test_goals_problems_decisions_capped_at_ten(self, manager: MemoryManager):
        for i in range(12):
            manager.record_turn("u1", f"I want to finish chapter {i:02d}", "ok")
            manager.record_turn("u1", f"I'm struggling with item {i:02d}", "ok")
            manager.record_turn("u1", f"Should I pick plan {i:02d}", "ok")

        record = manager.get_or_create("u1")
        assert record.goals == [f"I want to finish chapter {i:02d}" for i in range(2, 12)]
        assert record.patterns.problems == [
            f"I'm struggling with item {i:02d}" for i in range(2, 12)
        ]
        assert record.patterns.decisions == [f"Should I pick plan {i:02d}" for i in range(2, 12)]

    def test_triggers_and_topics_use_their_limits(self, store: MemoryStore, clock: FakeClock):
        config = MemoryConfig(data_path=store.path, triggers_limit=3, topics_limit=4)
        manager = MemoryManager(store, config=config, clock=clock)
        for word in ("excited", "stressed", "confused", "tired", "happy", "sad"):
            manager.record_turn("u1", f"feeling {word}", "ok")
        for message in ("my boss", "the gym", "my partner", "money", "study", "habit"):
            manager.record_turn("u1", message, "ok")

        patterns = manager.get_or_create("u1").patterns
        assert patterns.motivation_triggers == ["energy", "positivity", "support"]
        assert patterns.topics == ["relationships", "finance", "learning", "personal-development"]

    def test_default_trigger_and_topic_limits(self):
        config = MemoryConfig()
        assert config.triggers_limit == 15
        assert config.topics_limit == 20


class TestEventLogFailures:
    """A failing event log never breaks turn recording."""

    @pytest.fixture
    def broken_logger(self) -> Mock:
        event_logger = Mock()
        event_logger.log_snapshot.side_effect = OSError("No space left on device")
        event_logger.log_turn_recorded.side_effect = OSError("No space left on device")
        return event_logger

    def test_record_turn_still_saves(
        self, store: MemoryStore, clock: FakeClock, broken_logger: Mock
    ):
        manager = MemoryManager(store, event_logger=broken_logger, clock=clock)

        manager.record_turn("u1", "I work at Acme and it is hard", "ok")

        assert len(manager.get_or_create("u1").conversation_history) == 1
        assert "u1" in store.load_all()
        broken_logger.log_turn_recorded.assert_called_once()

    def test_save_reports_result(self, store: MemoryStore, broken_logger: Mock):
        manager = MemoryManager(store, event_logger=broken_logger)
        assert manager.save() is True

    @pytest.mark.asyncio
    async def test_enrichment_still_scheduled(
        self, store: MemoryStore, clock: FakeClock, broken_logger: Mock
    ):
        pipeline = Mock(spec=EnrichmentPipeline)
        pipeline.on_update = None
        pipeline.enrich = AsyncMock()
        manager = MemoryManager(
            store, pipeline=pipeline, event_logger=broken_logger, clock=clock
        )

        task = manager.record_turn("u1", "I work at Acme and it is hard", "ok")
        await manager.close()

        assert task is not None
        pipeline.enrich.assert_awaited_once()
        assert "u1" in store.load_all()


class TestPatternsSummary:
    def test_regular_user_summary(self, manager: MemoryManager):
        for _ in range(4):
            manager.record_turn("u1", "My boss wants the report", "ok")

        summary = manager.get_or_create("u1").recent_patterns_summary
        assert summary == (
            "Regular user with 4 conversations. Recent topics: work. "
            "Prefers Lana Croft personality."
        )

    def test_new_user_without_topics(self, manager: MemoryManager):
        manager.record_turn("u1", "just checking in today", "Hi!")
        summary = manager.get_or_create("u1").recent_patterns_summary
        assert summary == "New user exploring Lana Croft personality. 1 conversation so far."


class TestFormatContext:
    """Tests for format_context."""

    def test_new_user(self, manager: MemoryManager):
        assert manager.format_context("nobody") == NEW_USER_CONTEXT
        assert manager.format_context("nobody") == "New user - no conversation history yet."

    def test_header_and_counts(self, manager: MemoryManager):
        manager.record_turn("u1", "I'm stressed about my boss", "Breathe.")
        manager.record_turn("u1", "I want to get better at sleeping", "Nice goal.")

        context = manager.format_context("u1")
        lines = context.splitlines()

        assert lines[0] == "USER MEMORY CONTEXT:"
        assert lines[1] == "- Total conversations: 2"
        assert lines[2].startswith("- Recent patterns: New user exploring Lana Croft")
        assert lines[3].startswith("- Current goals: ")
        assert "want to get better at sleeping" in lines[3]
        assert "- Motivation triggers: stress" in context
        assert "- Discussion topics: work" in context
        assert lines[-1] == "- Last conversation: Today"

    def test_no_goals(self, manager: MemoryManager):
        manager.record_turn("u1", "hello there friend", "Hi!")
        assert "- Current goals: None identified yet" in manager.format_context("u1")

    def test_facts_rendered_newest_first(self, manager: MemoryManager, clock: FakeClock):
        manager.record_turn("u1", "hello there friend", "Hi!")
        record = manager.get_or_create("u1")
        merge_fact(
            record.facts,
            ExtractedFact(FactCategory.WORK, "company", "Acme", "mentioned at lunch"),
            now=clock.now,
        )
        merge_fact(
            record.facts,
            ExtractedFact(FactCategory.WORK, "job_title", "Engineer"),
            now=clock.now + timedelta(minutes=1),
        )
        merge_fact(
            record.facts,
            ExtractedFact(FactCategory.HOBBIES, "sport", "climbing"),
            now=clock.now,
        )

        context = manager.format_context("u1")

        assert (
            "- Known work facts: job_title: Engineer; company: Acme (mentioned at lunch)"
            in context
        )
        # Only the prompt-relevant categories are shown
        assert "climbing" not in context

    def test_timeline_newest_first(self, manager: MemoryManager, clock: FakeClock):
        manager.record_turn("u1", "hello there friend", "Hi!")
        record = manager.get_or_create("u1")
        yesterday = clock.now - timedelta(days=1)
        record_day_activity(record, yesterday, "Talked jobs", 1, ["company: Acme"], ["work"])
        record_day_activity(record, clock.now, "Talked dogs", 1, ["dog_name: Rex"], [])
        record_day_activity(record, clock.now, "Small talk", 0, [], [])

        lines = manager.format_context("u1").splitlines()
        start = lines.index("- Recent timeline:")

        assert lines[start + 1] == "  Today: learned dog_name: Rex (2 conversations)"
        assert lines[start + 2] == "  2026-05-03: learned company: Acme (1 conversation)"

    def test_last_conversation_date(self, manager: MemoryManager, clock: FakeClock):
        manager.record_turn("u1", "hello there friend", "Hi!")
        clock.advance(days=2)
        assert manager.format_context("u1").splitlines()[-1] == "- Last conversation: 2026-05-04"

    def test_format_is_stable(self, manager: MemoryManager):
        manager.record_turn("u1", "I'm stuck on my thesis and exhausted", "You got this.")
        assert manager.format_context("u1") == manager.format_context("u1")


class TestStats:
    """Tests for get_stats."""

    def test_empty_user(self, manager: MemoryManager):
        stats = manager.get_stats("u1")
        assert stats.total_conversations == 0
        assert stats.conversation_streak == 0
        assert stats.last_conversation is None
        assert stats.average_message_length == 0

    def test_counts(self, manager: MemoryManager):
        manager.record_turn("u1", "My boss is great", "ok")  # 16 chars
        manager.record_turn("u1", "My boss and my gym plan", "ok")  # 23 chars

        stats = manager.get_stats("u1")

        assert stats.total_conversations == 2
        assert stats.total_messages == 4
        assert stats.average_message_length == 20
        assert stats.most_common_topics == [("work", 2), ("health", 1)]
        assert stats.preferred_personality == "Lana Croft"

    def test_to_dict(self, manager: MemoryManager):
        manager.record_turn("u1", "My boss is great", "ok")
        data = manager.get_stats("u1").to_dict()
        assert data["most_common_topics"] == [{"topic": "work", "count": 1}]
        assert data["last_conversation"] == "2026-05-04T09:00:00"


class TestStreak:
    """Tests for conversation_streak."""

    def test_three_consecutive_days(self, manager: MemoryManager, clock: FakeClock):
        clock.advance(days=-2)
        manager.record_turn("u1", "hello there friend", "Hi!")
        clock.advance(days=1)
        manager.record_turn("u1", "hello there friend", "Hi!")
        clock.advance(days=1)
        manager.record_turn("u1", "hello there friend", "Hi!")
        manager.record_turn("u1", "hello again friend", "Hi!")

        assert conversation_streak(manager.get_or_create("u1")) == 3

    def test_gap_breaks_streak(self, manager: MemoryManager, clock: FakeClock):
        clock.advance(days=-3)
        manager.record_turn("u1", "hello there friend", "Hi!")
        clock.advance(days=2)
        manager.record_turn("u1", "hello there friend", "Hi!")
        clock.advance(days=1)
        manager.record_turn("u1", "hello there friend", "Hi!")

        assert manager.get_stats("u1").conversation_streak == 2


class TestExportImport:
    """Tests for export_user and import_user."""

    def test_export_envelope(self, manager: MemoryManager):
        manager.record_turn("u1", "My boss is great", "ok")

        exported = manager.export_user("u1")

        assert exported["exported_at"] == "2026-05-04T09:00:00"
        assert exported["memory"]["user_id"] == "u1"
        assert len(exported["memory"]["conversation_history"]) == 1

    def test_import_replaces_record(self, manager: MemoryManager, store: MemoryStore):
        manager.record_turn("u1", "My boss is great", "ok")
        exported = manager.export_user("u1")

        record = manager.import_user("u2", exported)

        assert record.user_id == "u2"
        assert manager.get_or_create("u2").conversation_history[0].user_message == "My boss is great"
        assert "u2" in store.load_all()

    def test_import_bare_record(self, manager: MemoryManager):
        record = manager.import_user("u3", {"goals": ["want to read more"]})
        assert record.goals == ["want to read more"]

    def test_import_invalid_data(self, manager: MemoryManager):
        with pytest.raises(ValueError):
            manager.import_user("u4", {"memory": {"conversation_history": [{"oops": 1}]}})


class TestLifecycle:
    """Tests for open/close."""

    @pytest.mark.asyncio
    async def test_open_loads_and_starts_autosave(self, store: MemoryStore, clock: FakeClock):
        first = MemoryManager(store, clock=clock)
        first.record_turn("u1", "hello there friend", "Hi!")

        manager = MemoryManager(store, clock=clock)
        manager.open()
        assert manager.user_ids == ["u1"]
        assert store.autosave_running

        await manager.close()
        assert not store.autosave_running

    def test_open_without_loop(self, store: MemoryStore):
        manager = MemoryManager(store)
        manager.open()
        assert not store.autosave_running

    @pytest.mark.asyncio
    async def test_close_saves(self, store: MemoryStore, clock: FakeClock):
        manager = MemoryManager(store, clock=clock)
        manager.open()
        manager.get_or_create("u9")

        await manager.close()

        assert "u9" in store.load_all()


class TestEnrichmentScheduling:
    """Tests for the background enrichment hand-off."""

    @pytest.mark.asyncio
    async def test_schedules_task(self, store: MemoryStore, clock: FakeClock):
        pipeline = Mock(spec=EnrichmentPipeline)
        pipeline.on_update = None
        pipeline.enrich = AsyncMock()
        manager = MemoryManager(store, pipeline=pipeline, clock=clock)

        task = manager.record_turn("u1", "hello there friend", "Hi!")
        assert task is not None
        await manager.wait_for_enrichment()

        pipeline.enrich.assert_awaited_once()
        record, turn = pipeline.enrich.call_args.args
        assert record.user_id == "u1"
        assert turn.user_message == "hello there friend"
        assert pipeline.on_update == manager.save

    def test_no_loop_skips_enrichment(self, store: MemoryStore):
        pipeline = Mock(spec=EnrichmentPipeline)
        pipeline.on_update = None
        manager = MemoryManager(store, pipeline=pipeline)

        assert manager.record_turn("u1", "hello there friend", "Hi!") is None
        pipeline.enrich.assert_not_called()
