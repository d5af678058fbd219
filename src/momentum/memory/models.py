"""Data models for the conversational memory system."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class FactCategory(str, Enum):
    """Categories a fact about the user can belong to."""

    PERSONAL = "personal"
    RELATIONSHIPS = "relationships"
    WORK = "work"
    HOBBIES = "hobbies"
    POSSESSIONS = "possessions"
    EXPERIENCES = "experiences"
    PREFERENCES = "preferences"
    SKILLS = "skills"
    PROBLEMS = "problems"
    GOALS = "goals"
    MEMORIES = "memories"


class Personality(str, Enum):
    """Assistant personalities a user can prefer."""

    LANA_CROFT = "Lana Croft"
    BAXTER_JORDAN = "Baxter Jordan"

    @classmethod
    def default(cls) -> Personality:
        return cls.LANA_CROFT

    @classmethod
    def resolve(cls, value: str | Personality | None) -> Personality:
        """Resolve a personality name, falling back to the default."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if value == member.value:
                return member
        return cls.default()


def _now() -> datetime:
    return datetime.now()


def _parse_dt(value: str | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _format_dt(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class FactChange:
    """An archived value of a fact, kept when the value changes."""

    value: str
    context: str
    confidence: float
    date_changed: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "context": self.context,
            "confidence": self.confidence,
            "date_changed": _format_dt(self.date_changed),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FactChange:
        return cls(
            value=data["value"],
            context=data.get("context", ""),
            confidence=float(data.get("confidence", 0.0)),
            date_changed=_parse_dt(data["date_changed"]),
        )


@dataclass
class Fact:
    """A single belief about the user, with provenance and history.

    Attributes:
        value: Current value of the fact.
        context: Short note on where the fact came from.
        confidence: Highest confidence ever observed for this key (0.0-1.0).
        first_mentioned: When the key was first learned.
        last_mentioned: When the key was last seen in a conversation.
        mention_count: Number of times the key was seen. Never decreases.
        previous_values: Archived values, oldest first.
    """

    value: str
    context: str = ""
    confidence: float = 0.5
    first_mentioned: datetime = field(default_factory=_now)
    last_mentioned: datetime = field(default_factory=_now)
    mention_count: int = 1
    previous_values: list[FactChange] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "context": self.context,
            "confidence": self.confidence,
            "first_mentioned": _format_dt(self.first_mentioned),
            "last_mentioned": _format_dt(self.last_mentioned),
            "mention_count": self.mention_count,
            "previous_values": [change.to_dict() for change in self.previous_values],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Fact:
        return cls(
            value=data["value"],
            context=data.get("context", ""),
            confidence=float(data.get("confidence", 0.5)),
            first_mentioned=_parse_dt(data["first_mentioned"]),
            last_mentioned=_parse_dt(data["last_mentioned"]),
            mention_count=int(data.get("mention_count", 1)),
            previous_values=[
                FactChange.from_dict(change)
                for change in data.get("previous_values", [])
            ],
        )


@dataclass(frozen=True)
class ExtractedFact:
    """A fact candidate produced by extraction, before merging.

    Attributes:
        category: Category the fact belongs to.
        key: Short snake_case identifier (e.g. 'company', 'dog_name').
        value: The fact content.
        context: Where in the conversation the fact came from.
        confidence: Extractor confidence, 0.0-1.0.
    """

    category: FactCategory
    key: str
    value: str
    context: str = ""
    confidence: float = 0.5


@dataclass
class ConversationTurn:
    """One user message plus the assistant's reply."""

    timestamp: datetime
    user_message: str
    ai_response: str
    topics: list[str] = field(default_factory=list)
    message_length: int = 0
    personality: str | None = None
    facts_extracted: bool = False
    fact_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = _format_dt(self.timestamp)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationTurn:
        data = dict(data)
        data["timestamp"] = _parse_dt(data["timestamp"])
        return cls(**data)


@dataclass
class DayConversation:
    """Summary line for one conversation inside a day entry."""

    time: str
    summary: str
    facts_extracted_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DayConversation:
        return cls(**data)


@dataclass
class DayEntry:
    """Per-day log of what was learned and discussed."""

    date: str
    conversations: list[DayConversation] = field(default_factory=list)
    facts_learned: list[str] = field(default_factory=list)
    topics_discussed: list[str] = field(default_factory=list)
    key_events: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.conversations or self.facts_learned)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "conversations": [c.to_dict() for c in self.conversations],
            "facts_learned": list(self.facts_learned),
            "topics_discussed": list(self.topics_discussed),
            "key_events": list(self.key_events),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DayEntry:
        return cls(
            date=data["date"],
            conversations=[
                DayConversation.from_dict(c) for c in data.get("conversations", [])
            ],
            facts_learned=list(data.get("facts_learned", [])),
            topics_discussed=list(data.get("topics_discussed", [])),
            key_events=list(data.get("key_events", [])),
        )


@dataclass
class Patterns:
    """Aggregated behavioral signals, each a bounded FIFO of unique fragments."""

    motivation_triggers: list[str] = field(default_factory=list)
    problems: list[str] = field(default_factory=list)
    decisions: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Patterns:
        return cls(
            motivation_triggers=list(data.get("motivation_triggers", [])),
            problems=list(data.get("problems", [])),
            decisions=list(data.get("decisions", [])),
            topics=list(data.get("topics", [])),
        )


@dataclass
class Profile:
    """Free-form user preferences."""

    preferred_personality: Personality = field(default_factory=Personality.default)
    interaction_style: str = "encouraging"

    def to_dict(self) -> dict[str, Any]:
        return {
            "preferred_personality": self.preferred_personality.value,
            "interaction_style": self.interaction_style,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Profile:
        return cls(
            preferred_personality=Personality.resolve(
                data.get("preferred_personality")
            ),
            interaction_style=data.get("interaction_style", "encouraging"),
        )


@dataclass
class MemoryRecord:
    """Everything remembered about one user."""

    user_id: str
    created_at: datetime = field(default_factory=_now)
    profile: Profile = field(default_factory=Profile)
    goals: list[str] = field(default_factory=list)
    conversation_history: list[ConversationTurn] = field(default_factory=list)
    patterns: Patterns = field(default_factory=Patterns)
    facts: dict[str, dict[str, Fact]] = field(default_factory=dict)
    timeline: list[DayEntry] = field(default_factory=list)
    recent_patterns_summary: str = "New user"
    last_updated: datetime = field(default_factory=_now)

    def touch(self, now: datetime | None = None) -> None:
        """Update the last mutation timestamp."""
        self.last_updated = now or _now()

    def fact_count(self) -> int:
        return sum(len(facts) for facts in self.facts.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "user_id": self.user_id,
            "created_at": _format_dt(self.created_at),
            "profile": self.profile.to_dict(),
            "goals": list(self.goals),
            "conversation_history": [
                turn.to_dict() for turn in self.conversation_history
            ],
            "patterns": self.patterns.to_dict(),
            "facts": {
                category: {key: fact.to_dict() for key, fact in facts.items()}
                for category, facts in self.facts.items()
            },
            "timeline": [day.to_dict() for day in self.timeline],
            "recent_patterns_summary": self.recent_patterns_summary,
            "last_updated": _format_dt(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryRecord:
        """Create from dictionary."""
        return cls(
            user_id=data["user_id"],
            created_at=_parse_dt(data.get("created_at")) or _now(),
            profile=Profile.from_dict(data.get("profile", {})),
            goals=list(data.get("goals", [])),
            conversation_history=[
                ConversationTurn.from_dict(turn)
                for turn in data.get("conversation_history", [])
            ],
            patterns=Patterns.from_dict(data.get("patterns", {})),
            facts={
                category: {
                    key: Fact.from_dict(fact) for key, fact in facts.items()
                }
                for category, facts in data.get("facts", {}).items()
            },
            timeline=[DayEntry.from_dict(day) for day in data.get("timeline", [])],
            recent_patterns_summary=data.get("recent_patterns_summary", "New user"),
            last_updated=_parse_dt(data.get("last_updated")) or _now(),
        )
