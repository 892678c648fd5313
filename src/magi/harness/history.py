"""
History log -- capped, append-only record of finished deliberations.

Each entry is immutable once appended:

    {"id", "timestamp" (ISO-8601), "topic", "result", "logs": [...]}

The log keeps the 20 most recent entries; on overflow the oldest entry by
insertion order is evicted. With a path the log is file-backed: loaded on
construction and rewritten on every append, so a crash after judgment
still leaves the decision on disk.

export() produces the backup document used by `magi history --export`.
"""

import copy
import json
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 20
EXPORT_VERSION = "1.0"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class HistoryLogEntry:
    id: str
    timestamp: str
    topic: str
    result: str
    logs: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    @classmethod
    def create(cls, topic: str, result: str, logs: list[dict[str, Any]]) -> "HistoryLogEntry":
        return cls(
            id=uuid.uuid4().hex[:16],
            timestamp=_now_iso(),
            topic=topic,
            result=result,
            logs=tuple(copy.deepcopy(logs)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "topic": self.topic,
            "result": self.result,
            "logs": [dict(item) for item in self.logs],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoryLogEntry":
        return cls(
            id=str(data["id"]),
            timestamp=str(data.get("timestamp", "")),
            topic=str(data.get("topic", "")),
            result=str(data.get("result", "")),
            logs=tuple(data.get("logs", [])),
        )


@runtime_checkable
class HistorySink(Protocol):
    """Write-only view of the log used by the orchestrator."""

    def append(self, entry: HistoryLogEntry) -> None: ...


class HistoryLog:
    """
    FIFO-capped history of deliberation results.

    Usage:
        log = HistoryLog(path=Path(".magi/history.json"))
        log.append(HistoryLogEntry.create(topic, "APPROVED", transcript))
        for entry in log.entries():  # newest first
            print(entry.topic, entry.result)
    """

    def __init__(self, path: Path | None = None, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._path = path
        self._capacity = capacity
        self._entries: deque[HistoryLogEntry] = deque(maxlen=capacity)
        if path is not None and path.exists():
            self._load(path)

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: HistoryLogEntry) -> None:
        if len(self._entries) == self._capacity:
            evicted = self._entries[0]
            logger.debug(f"[HistoryLog] Evicting {evicted.id} ({evicted.timestamp})")
        self._entries.append(entry)
        logger.info(f"[HistoryLog] Recorded {entry.id}: {entry.result}")
        if self._path is not None:
            self._save(self._path)

    def entries(self) -> list[HistoryLogEntry]:
        """All entries, newest first."""
        return list(reversed(self._entries))

    def get(self, entry_id: str) -> HistoryLogEntry | None:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def clear(self) -> None:
        self._entries.clear()
        if self._path is not None:
            self._save(self._path)

    def export(self) -> dict[str, Any]:
        return {
            "exported_at": _now_iso(),
            "version": EXPORT_VERSION,
            "data": {"history": [e.to_dict() for e in self.entries()]},
        }

    def _save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        data = [e.to_dict() for e in self.entries()]
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        logger.debug(f"[HistoryLog] Saved {len(data)} entries to {path}")

    def _load(self, path: Path) -> None:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"History file {path} does not contain a list")
        # File is newest first; replay oldest first so eviction order holds.
        for item in reversed(data[: self._capacity]):
            self._entries.append(HistoryLogEntry.from_dict(item))
        logger.info(f"[HistoryLog] Loaded {len(self._entries)} entries from {path}")
