"""Cursor stores for stream consumers.

Persists the last checkpointed cursor of each consumer instance so a
restarted process resumes where it left off. The slot is keyed by
instance id; two consumers never share a cursor.

Implementations:
- InMemoryCursorStore: process-local, for tests and one-off streams
- JsonFileCursorStore: one JSON file holding every instance's cursor,
  written atomically (temp file, then os.replace)

Usage:
    store = create_cursor_store(config.cursor_store_path)
    cursor = await store.load("trigger-a")
    await store.save("trigger-a", "c42")
"""

import asyncio
import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class CursorStore(Protocol):
    """Key-value slot for stream cursors, scoped by instance id."""

    async def load(self, instance_id: str) -> str | None:
        """Return the stored cursor, or None when nothing was saved."""
        ...

    async def save(self, instance_id: str, cursor: str) -> None:
        """Persist the cursor. Raises on failure."""
        ...


class InMemoryCursorStore:
    def __init__(self, initial: dict[str, str] | None = None):
        self._cursors: dict[str, str] = dict(initial or {})

    async def load(self, instance_id: str) -> str | None:
        return self._cursors.get(instance_id)

    async def save(self, instance_id: str, cursor: str) -> None:
        self._cursors[instance_id] = cursor

    def snapshot(self) -> dict[str, str]:
        return dict(self._cursors)


class JsonFileCursorStore:
    """Local JSON file cursor store.

    File layout:
        {"cursors": {"<instance_id>": {"cursor": "...", "updated_at": "..."}}}

    A missing or unreadable file loads as empty. Saves are serialized with a
    lock and written to a temp file that replaces the original, so a crash
    mid-write never leaves a truncated file behind.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._lock = asyncio.Lock()

        logger.info(
            "JsonFileCursorStore initialized",
            extra={"store_path": str(self._path)},
        )

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, dict]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(
                "Failed to read cursor store, starting fresh",
                extra={"store_path": str(self._path), "error_message": str(e)},
            )
            return {}

        cursors = data.get("cursors") if isinstance(data, dict) else None
        return cursors if isinstance(cursors, dict) else {}

    def _write_all(self, cursors: dict[str, dict]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_suffix(self._path.suffix + ".tmp")

        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump({"cursors": cursors}, f, indent=2, sort_keys=True)
            f.flush()
            os.fsync(f.fileno())

        # Atomic replace
        os.replace(temp_path, self._path)

    async def load(self, instance_id: str) -> str | None:
        async with self._lock:
            entry = self._read_all().get(instance_id)

        if not isinstance(entry, dict) or not entry.get("cursor"):
            logger.info(
                "No stored cursor",
                extra={"instance_id": instance_id, "store_path": str(self._path)},
            )
            return None

        cursor = str(entry["cursor"])
        logger.info(
            "Loaded stored cursor",
            extra={"instance_id": instance_id, "cursor": cursor},
        )
        return cursor

    async def save(self, instance_id: str, cursor: str) -> None:
        async with self._lock:
            cursors = self._read_all()
            cursors[instance_id] = {
                "cursor": cursor,
                "updated_at": datetime.now(UTC).isoformat(),
            }
            self._write_all(cursors)

        logger.debug(
            "Saved cursor",
            extra={"instance_id": instance_id, "cursor": cursor},
        )


def create_cursor_store(path: str | Path | None = None) -> CursorStore:
    """File-backed store when a path is configured, in-memory otherwise."""
    if path:
        return JsonFileCursorStore(path)
    return InMemoryCursorStore()
