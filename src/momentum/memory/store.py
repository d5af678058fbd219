"""JSON snapshot storage for memory records."""

import asyncio
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from .models import MemoryRecord

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class MemoryStore:
    """Whole-snapshot persistence of every user's memory in one JSON file.

    Each save overwrites the file through a temporary file and an atomic
    rename, so a failed write leaves the previous snapshot intact.
    """

    def __init__(self, path: Path, autosave_interval: float = 30.0) -> None:
        """Initialize the store with a snapshot path.

        Args:
            path: Path to the JSON snapshot file.
            autosave_interval: Seconds between periodic saves.
        """
        self.path = path
        self.autosave_interval = autosave_interval
        self._autosave_task: asyncio.Task | None = None

    def load_all(self) -> dict[str, MemoryRecord]:
        """Load every record from the snapshot.

        A missing file is not an error. A corrupt file is moved aside so the
        next save does not overwrite it, and loading starts empty.
        """
        if not self.path.exists():
            logger.debug("No memory snapshot at %s, starting empty", self.path)
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            records = self._parse_snapshot(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error("Corrupt memory snapshot %s: %s", self.path, e)
            self._quarantine()
            return {}
        except OSError as e:
            logger.error("Cannot read memory snapshot %s: %s", self.path, e)
            return {}

        logger.info("Loaded %d users from %s", len(records), self.path)
        return records

    def _parse_snapshot(self, data: Any) -> dict[str, MemoryRecord]:
        if not isinstance(data, dict):
            raise ValueError("snapshot must be a JSON object")

        if "schema_version" in data:
            version = data["schema_version"]
            if version > SCHEMA_VERSION:
                raise ValueError(f"unsupported schema_version {version}")
            users = data.get("users", {})
        else:
            # Legacy snapshots are a bare mapping of user_id -> record
            users = data
        if not isinstance(users, dict):
            raise ValueError("users must be a JSON object")

        records = {}
        for user_id, record_data in users.items():
            record_data = {"user_id": user_id, **record_data}
            records[user_id] = MemoryRecord.from_dict(record_data)
        return records

    def _quarantine(self) -> None:
        corrupt_path = self.path.with_name(self.path.name + ".corrupt")
        try:
            os.replace(self.path, corrupt_path)
            logger.warning("Moved corrupt snapshot to %s", corrupt_path)
        except OSError as e:
            logger.error("Failed to move corrupt snapshot aside: %s", e)

    def save_all(self, records: dict[str, MemoryRecord]) -> bool:
        """Write every record to the snapshot file.

        Args:
            records: Mapping of user_id to record.

        Returns:
            True if the snapshot was written, False on an OS error.
        """
        snapshot = {
            "schema_version": SCHEMA_VERSION,
            "saved_at": datetime.now().isoformat(),
            "users": {user_id: record.to_dict() for user_id, record in records.items()},
        }

        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=self.path.name + ".", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError as e:
            logger.error("Failed to save memory snapshot to %s: %s", self.path, e)
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            return False

        logger.debug("Saved %d users to %s", len(records), self.path)
        return True

    async def _autosave_loop(self, snapshot_fn: Callable[[], bool]) -> None:
        """Background task for periodic snapshots."""
        while True:
            try:
                await asyncio.sleep(self.autosave_interval)
                snapshot_fn()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Periodic memory snapshot failed")

    def start_autosave(self, snapshot_fn: Callable[[], bool]) -> None:
        """Start the periodic snapshot task on the running event loop."""
        if self._autosave_task is None or self._autosave_task.done():
            self._autosave_task = asyncio.create_task(self._autosave_loop(snapshot_fn))

    async def stop_autosave(self) -> None:
        """Stop the periodic snapshot task."""
        task = self._autosave_task
        self._autosave_task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    @property
    def autosave_running(self) -> bool:
        return self._autosave_task is not None and not self._autosave_task.done()
