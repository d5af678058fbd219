"""One-line conversation summaries for the daily timeline."""

import asyncio
import logging

from groq import AsyncGroq

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = """Summarize this exchange between a user and their motivational assistant in ONE short sentence (max 20 words), focusing on what the user talked about.

User: {user_message}
Assistant: {ai_response}

Summary:"""


def fallback_summary(topics: list[str]) -> str:
    """Build a summary from already-extracted topics."""
    if len(topics) >= 2:
        return f"Discussed {topics[0]} and {topics[1]}"
    if topics:
        return f"Discussed {topics[0]}"
    return "General conversation"


class TurnSummarizer:
    """Summarizes a conversation turn in one sentence."""

    def __init__(
        self,
        llm_client: AsyncGroq,
        model: str = "llama-3.1-70b-versatile",
        timeout: float = 5.0,
    ) -> None:
        self.client = llm_client
        self.model = model
        self.timeout = timeout

    async def summarize(
        self, user_message: str, ai_response: str, topics: list[str]
    ) -> str:
        """Return a one-line summary, or a templated one if the LLM fails."""
        prompt = SUMMARY_PROMPT.format(
            user_message=user_message, ai_response=ai_response
        )
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=0.3,
                    max_tokens=60,
                ),
                timeout=self.timeout,
            )
            summary = (response.choices[0].message.content or "").strip()
        except asyncio.TimeoutError:
            logger.warning("Summary generation timed out after %ss", self.timeout)
            return fallback_summary(topics)
        except Exception as e:
            logger.warning(f"Summary generation failed: {e}")
            return fallback_summary(topics)

        # Keep the first line only, without wrapping quotes
        summary = summary.splitlines()[0].strip().strip('"') if summary else ""
        return summary or fallback_summary(topics)
