"""Memory module for per-user conversational context."""

from .enrichment import EnrichmentPipeline, EnrichmentResult
from .extractor import ExtractionResult, FactExtractor, fallback_extract
from .facts import MergeOutcome, merge_fact
from .manager import NEW_USER_CONTEXT, MemoryManager, MemoryStats
from .models import (
    ConversationTurn,
    DayEntry,
    ExtractedFact,
    Fact,
    FactCategory,
    FactChange,
    MemoryRecord,
    Personality,
)
from .patterns import extract_patterns, extract_topics
from .store import MemoryStore
from .summarizer import TurnSummarizer
from .usage import UsageGovernor

__all__ = [
    "ConversationTurn",
    "DayEntry",
    "EnrichmentPipeline",
    "EnrichmentResult",
    "ExtractedFact",
    "ExtractionResult",
    "Fact",
    "FactCategory",
    "FactChange",
    "FactExtractor",
    "MemoryManager",
    "MemoryRecord",
    "MemoryStats",
    "MemoryStore",
    "MergeOutcome",
    "NEW_USER_CONTEXT",
    "Personality",
    "TurnSummarizer",
    "UsageGovernor",
    "extract_patterns",
    "extract_topics",
    "fallback_extract",
    "merge_fact",
]
