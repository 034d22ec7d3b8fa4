import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from ..drafts.storage import KeyValueStorage, StorageError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 50


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OfflineQueueEntry:
    id: str
    data: dict[str, Any]
    saved_at: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "data": self.data, "savedAt": self.saved_at}


class OfflineQueue:
    """Submissions waiting for the backend, oldest first.

    Entries are removed by id once acknowledged. When the queue grows past
    ``max_entries`` the oldest entries are dropped.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        namespace: str = "eta",
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.storage = storage
        self.namespace = namespace
        self.max_entries = max_entries
        self.clock = clock

    @property
    def key(self) -> str:
        return f"{self.namespace}.offline_applications"

    def entries(self) -> list[OfflineQueueEntry]:
        raw = self.storage.get_item(self.key)
        if raw is None:
            return []
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding malformed offline queue")
            return []
        if not isinstance(parsed, list):
            return []
        entries: list[OfflineQueueEntry] = []
        for item in parsed:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            data = item.get("data")
            entries.append(
                OfflineQueueEntry(
                    id=str(item["id"]),
                    data=data if isinstance(data, dict) else {},
                    saved_at=str(item.get("savedAt") or ""),
                )
            )
        return entries

    def _write(self, entries: list[OfflineQueueEntry]) -> None:
        try:
            payload = json.dumps([entry.to_dict() for entry in entries], ensure_ascii=False)
        except (TypeError, ValueError) as err:
            raise StorageError(f"Offline queue entry is not serialisable: {err}") from err
        self.storage.set_item(self.key, payload)

    def _next_id(self, existing: set[str], now: datetime) -> str:
        base = f"OFFLINE-{int(now.timestamp() * 1000)}"
        candidate = base
        suffix = 1
        while candidate in existing:
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    def append(self, data: dict[str, Any]) -> str:
        entries = self.entries()
        now = self.clock()
        entry = OfflineQueueEntry(
            id=self._next_id({e.id for e in entries}, now),
            data=data,
            saved_at=now.isoformat(),
        )
        entries.append(entry)
        if len(entries) > self.max_entries:
            dropped = entries[: len(entries) - self.max_entries]
            entries = entries[len(dropped):]
            logger.warning(
                "Offline queue over capacity (%s); dropped oldest: %s",
                self.max_entries,
                ", ".join(e.id for e in dropped),
            )
        self._write(entries)
        logger.info("Application saved offline as %s (%s queued)", entry.id, len(entries))
        return entry.id

    def remove(self, entry_ids: Iterable[str]) -> int:
        targets = set(entry_ids)
        if not targets:
            return 0
        entries = self.entries()
        remaining = [entry for entry in entries if entry.id not in targets]
        removed = len(entries) - len(remaining)
        if removed:
            self._write(remaining)
        return removed

    def clear(self) -> None:
        self.storage.remove_item(self.key)

    def __len__(self) -> int:
        return len(self.entries())
