"""Keyword-based topic and behavioral pattern extraction.

Everything here is a pure function of the message text. The fragment windows
captured for goals, problems, and decisions are a heuristic: a fixed slice
around the trigger phrase, not a parsed sentence.
"""

import re
from dataclasses import dataclass, field

TOPIC_PATTERNS: dict[str, re.Pattern[str]] = {
    "work": re.compile(
        r"\b(work|job|career|boss|team|project|meeting|deadline|presentation"
        r"|office|business|professional)\b"
    ),
    "health": re.compile(
        r"\b(health|fitness|exercise|gym|diet|sleep|stress|wellness|workout"
        r"|nutrition)\b"
    ),
    "relationships": re.compile(
        r"\b(relationship|partner|friend|family|dating|marriage|social|love"
        r"|romance)\b"
    ),
    "finance": re.compile(
        r"\b(money|finance|budget|investment|debt|salary|expensive|income"
        r"|financial)\b"
    ),
    "learning": re.compile(
        r"\b(learn|study|course|skill|education|training|practice|school"
        r"|university)\b"
    ),
    "personal-development": re.compile(
        r"\b(habit|routine|goal|improve|better|change|growth|motivation"
        r"|productivity|promotion|promoted|progress)\b"
    ),
    "technology": re.compile(
        r"\b(ai|artificial intelligence|technology|programming|code|software"
        r"|computer|tech)\b"
    ),
    "travel": re.compile(
        r"\b(travel|vacation|trip|flight|hotel|destination|explore|adventure)\b"
    ),
    "hobbies": re.compile(
        r"\b(hobby|fun|game|movie|music|book|art|creative|entertainment)\b"
    ),
}

GOAL_PHRASES = (
    "want to",
    "need to",
    "trying to",
    "working on",
    "goal",
    "achieve",
    "hoping to",
    "plan to",
    "figure out",
    "would like to",
)

PROBLEM_PHRASES = (
    "struggling with",
    "stuck on",
    "problem with",
    "issue with",
    "challenge",
    "difficult",
    "hard to",
    "can't seem to",
    "trouble with",
)

DECISION_PHRASES = (
    "should i",
    "deciding",
    "choice",
    "option",
    "thinking about",
    "considering",
    "debating",
    "torn between",
)

# trigger name -> words that signal it
EMOTION_TRIGGERS: dict[str, tuple[str, ...]] = {
    "excitement": ("excited", "motivated", "energized"),
    "stress": ("stressed", "overwhelmed", "anxious"),
    "clarity": ("confused", "unclear", "lost"),
    "energy": ("tired", "exhausted", "burnt out"),
    "positivity": ("happy", "great", "fantastic"),
    "support": ("sad", "down", "depressed"),
}

WINDOW_BEFORE = 10
WINDOW_AFTER = 50


@dataclass
class ExtractedPatterns:
    """Behavioral signals found in a single message."""

    goals: list[str] = field(default_factory=list)
    problems: list[str] = field(default_factory=list)
    decisions: list[str] = field(default_factory=list)
    triggers: list[str] = field(default_factory=list)


def extract_topics(text: str) -> list[str]:
    """Return every topic tag whose vocabulary appears in the text.

    Tags are independent of each other and come back in the fixed order of
    TOPIC_PATTERNS.
    """
    lowered = text.lower()
    return [topic for topic, pattern in TOPIC_PATTERNS.items() if pattern.search(lowered)]


def _capture_windows(text: str, lowered: str, phrases: tuple[str, ...]) -> list[str]:
    fragments = []
    for phrase in phrases:
        index = lowered.find(phrase)
        if index == -1:
            continue
        start = max(0, index - WINDOW_BEFORE)
        end = min(len(text), index + WINDOW_AFTER)
        fragment = text[start:end].strip()
        if fragment:
            fragments.append(fragment)
    return fragments


def extract_patterns(text: str) -> ExtractedPatterns:
    """Scan a message for goals, problems, decisions, and emotional triggers.

    Args:
        text: The user's message.

    Returns:
        ExtractedPatterns with one fragment per matched phrase. Fragments keep
        the original casing of the message.
    """
    lowered = text.lower()
    triggers = [
        trigger
        for trigger, words in EMOTION_TRIGGERS.items()
        if any(word in lowered for word in words)
    ]
    return ExtractedPatterns(
        goals=_capture_windows(text, lowered, GOAL_PHRASES),
        problems=_capture_windows(text, lowered, PROBLEM_PHRASES),
        decisions=_capture_windows(text, lowered, DECISION_PHRASES),
        triggers=triggers,
    )


def append_unique(items: list[str], new_items: list[str], cap: int) -> list[str]:
    """Merge fragments into a bounded FIFO of unique values.

    Existing order is preserved, duplicates are skipped, and once the list
    exceeds ``cap`` the oldest entries are dropped.
    """
    merged = list(items)
    for item in new_items:
        if item not in merged:
            merged.append(item)
    if len(merged) > cap:
        merged = merged[-cap:]
    return merged
