"""JSONL event logging for memory observability."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class LogEntry:
    """A single log entry."""

    timestamp: str
    event: str
    user_id: str | None = None
    duration_ms: float | None = None
    source: str | None = None
    facts: int | None = None
    reason: str | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a flat dict, excluding None values."""
        data = asdict(self)
        extra = data.pop("extra")
        result = {k: v for k, v in data.items() if v is not None}
        result.update({k: v for k, v in extra.items() if v is not None})
        return result


class JSONLLogger:
    """Logger that writes structured logs in JSONL format."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "memory.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        if log_dir is None:
            log_dir = Path.home() / ".momentum" / "logs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)

    @property
    def log_path(self) -> Path:
        """Current log file path."""
        return self.log_dir / self.filename

    def _rotate_if_needed(self) -> None:
        """Rotate log file if it exceeds max size."""
        if not self.log_path.exists():
            return

        if self.log_path.stat().st_size >= self.max_size_bytes:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            rotated_name = f"{self.log_path.stem}_{timestamp}.jsonl"
            self.log_path.rename(self.log_dir / rotated_name)

    def _write(self, entry: LogEntry) -> None:
        """Write a log entry to the file."""
        self._rotate_if_needed()

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")

    def log(
        self,
        event: str,
        *,
        user_id: str | None = None,
        duration_ms: float | None = None,
        source: str | None = None,
        facts: int | None = None,
        reason: str | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log an event."""
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            user_id=user_id,
            duration_ms=duration_ms,
            source=source,
            facts=facts,
            reason=reason,
            error=error,
            extra=extra if extra else {},
        )
        self._write(entry)

    def log_turn_recorded(
        self, user_id: str, topics: list[str], history_size: int
    ) -> None:
        """Log a conversation turn added to memory."""
        self.log(
            "turn_recorded",
            user_id=user_id,
            topics=topics,
            history_size=history_size,
        )

    def log_enrichment(
        self,
        user_id: str,
        source: str,
        facts: int,
        duration_ms: float,
        *,
        error: str | None = None,
    ) -> None:
        """Log a completed enrichment run."""
        self.log(
            "enrichment",
            user_id=user_id,
            source=source,
            facts=facts,
            duration_ms=duration_ms,
            error=error,
        )

    def log_enrichment_skipped(self, user_id: str, reason: str) -> None:
        """Log an enrichment that was not attempted."""
        self.log("enrichment_skipped", user_id=user_id, reason=reason)

    def log_snapshot(self, users: int, success: bool, *, error: str | None = None) -> None:
        """Log a persistence snapshot."""
        self.log("snapshot_saved", users=users, success=success, error=error)


# Global logger instance
_logger: JSONLLogger | None = None


def get_logger() -> JSONLLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = JSONLLogger()
    return _logger


def configure_logger(log_dir: str | Path | None = None, max_size_mb: float = 10.0) -> JSONLLogger:
    """Configure and return the global logger."""
    global _logger
    _logger = JSONLLogger(log_dir=log_dir, max_size_mb=max_size_mb)
    return _logger
