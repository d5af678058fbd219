"""Structured fact extraction from a conversation turn using an LLM."""

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from groq import AsyncGroq

from .models import ExtractedFact, FactCategory

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """Analyze this conversation turn and extract stable facts about the user that are worth remembering for future conversations.

Return ONLY valid JSON with exactly these keys, each a list (use [] when nothing applies):
{
  "personal": [], "relationships": [], "work": [], "hobbies": [],
  "possessions": [], "experiences": [], "preferences": [], "skills": [],
  "problems": [], "goals": [], "memories": []
}

Each item must look like:
{"key": "<short_snake_case_key>", "value": "<the fact>", "context": "<where it came from>", "confidence": <0.0-1.0>}

Rules:
- Only facts the USER states about themselves, not the assistant's suggestions
- Keys are short and reusable: name, age, company, job_title, partner_name, dog_name, city, ...
- Reuse the same key when a fact changes (e.g. a new company is still "company")
- Do not extract questions or hypotheticals as facts

Conversation turn:
"""

# (pattern, category, key, confidence)
FALLBACK_RULES: list[tuple[re.Pattern[str], FactCategory, str, float]] = [
    (
        re.compile(r"\bmy name is ([A-Za-z][A-Za-z'-]*)", re.IGNORECASE),
        FactCategory.PERSONAL,
        "name",
        0.6,
    ),
    (
        re.compile(r"\b[Ii](?:'m| am) ([A-Z][a-z'-]+)\b"),
        FactCategory.PERSONAL,
        "name",
        0.5,
    ),
    (
        re.compile(r"\bmy dog'?s name is ([A-Za-z][A-Za-z'-]*)", re.IGNORECASE),
        FactCategory.POSSESSIONS,
        "dog_name",
        0.6,
    ),
    (
        re.compile(r"\b[Ii] work (?:at|for) ([A-Z][\w&'-]*(?:\s+[A-Z][\w&'-]*)*)"),
        FactCategory.WORK,
        "company",
        0.6,
    ),
]


@dataclass
class ExtractionResult:
    """Facts extracted from a turn and how they were obtained."""

    facts: list[ExtractedFact] = field(default_factory=list)
    source: str = "llm"
    error: str | None = None


def fallback_extract(user_message: str) -> list[ExtractedFact]:
    """Best-effort regex extraction used when the LLM is unavailable.

    Only a handful of very explicit statements are recognised, with lower
    confidence than LLM output. The first rule to produce a given key wins.
    """
    facts: list[ExtractedFact] = []
    seen: set[tuple[FactCategory, str]] = set()
    for pattern, category, key, confidence in FALLBACK_RULES:
        if (category, key) in seen:
            continue
        match = pattern.search(user_message)
        if not match:
            continue
        value = match.group(1).strip()
        if category is FactCategory.PERSONAL:
            value = value.capitalize()
        seen.add((category, key))
        facts.append(
            ExtractedFact(
                category=category,
                key=key,
                value=value,
                context=match.group(0),
                confidence=confidence,
            )
        )
    return facts


def _normalize_key(key: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", key.strip().lower()).strip("_")


class FactExtractor:
    """Extracts categorized facts from a conversation turn using an LLM."""

    def __init__(
        self,
        llm_client: AsyncGroq,
        model: str = "llama-3.1-70b-versatile",
        timeout: float = 10.0,
    ) -> None:
        """Initialize the extractor.

        Args:
            llm_client: The Groq client for LLM calls.
            model: The model to use for extraction.
            timeout: Seconds to wait for the LLM before falling back.
        """
        self.client = llm_client
        self.model = model
        self.timeout = timeout

    async def extract(self, user_message: str, ai_response: str) -> ExtractionResult:
        """Extract facts from one turn.

        Never raises: on timeout, malformed output, or any client error the
        regex fallback is used instead.

        Args:
            user_message: What the user said.
            ai_response: What the assistant replied.

        Returns:
            ExtractionResult with source 'llm' or 'fallback'.
        """
        prompt = EXTRACTION_PROMPT + f"User: {user_message}\nAssistant: {ai_response}"

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=0.1,  # Low temperature for consistent extraction
                    response_format={"type": "json_object"},
                ),
                timeout=self.timeout,
            )
            content = response.choices[0].message.content or ""
            return ExtractionResult(facts=self._parse_response(content))

        except asyncio.TimeoutError:
            error = f"timed out after {self.timeout}s"
        except ValueError as e:
            error = f"invalid response: {e}"
        except Exception as e:
            error = str(e) or type(e).__name__

        logger.warning(f"Fact extraction failed, using fallback: {error}")
        return ExtractionResult(
            facts=fallback_extract(user_message), source="fallback", error=error
        )

    def _parse_response(self, content: str) -> list[ExtractedFact]:
        """Parse the LLM's JSON into extracted facts.

        Raises:
            ValueError: If the response is not a JSON object.
        """
        json_str = content.strip()
        if json_str.startswith("```"):
            # Strip markdown code fences
            json_str = json_str.split("\n", 1)[1] if "\n" in json_str else ""
            json_str = json_str.rsplit("```", 1)[0].strip()

        data = json.loads(json_str)
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")

        facts = []
        for category_name, items in data.items():
            try:
                category = FactCategory(category_name)
            except ValueError:
                logger.warning(f"Skipping unknown fact category: {category_name}")
                continue
            if not isinstance(items, list):
                continue
            for item in items:
                fact = self._parse_item(category, item)
                if fact is not None:
                    facts.append(fact)
        return facts

    def _parse_item(self, category: FactCategory, item: Any) -> ExtractedFact | None:
        if not isinstance(item, dict) or "key" not in item or "value" not in item:
            logger.warning(f"Skipping invalid fact item: {item}")
            return None

        key = _normalize_key(str(item["key"]))
        value = str(item["value"]).strip()
        if not key or not value:
            return None

        try:
            confidence = float(item.get("confidence", 0.7))
        except (TypeError, ValueError):
            confidence = 0.7

        return ExtractedFact(
            category=category,
            key=key,
            value=value,
            context=str(item.get("context") or ""),
            confidence=min(1.0, max(0.0, confidence)),
        )
