"""Key-value storage used by the draft layer.

``SqliteLocalStorage`` is the durable slot shared by every client pointing at
the same database file. ``MemorySessionStorage`` is the per-context scratch
slot that disappears on teardown. Both are synchronous and unlocked: the last
writer wins.
"""

import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path

from ...db.database import get_db
from ...db.schema import init_db


class StorageError(RuntimeError):
    """Raised when a storage read or write fails."""


class StorageQuotaExceededError(StorageError):
    """Raised when a write would push the storage past its quota."""


class KeyValueStorage(ABC):
    def __init__(self, quota_bytes: int | None = None):
        self.quota_bytes = quota_bytes

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove_item(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def keys(self) -> list[str]:
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def _used_bytes_excluding(self, key: str) -> int:
        raise NotImplementedError

    def _check_quota(self, key: str, value: str) -> None:
        if self.quota_bytes is None:
            return
        projected = self._used_bytes_excluding(key) + len(value.encode("utf-8"))
        if projected > self.quota_bytes:
            raise StorageQuotaExceededError(
                f"Storage quota exceeded writing {key!r}: {projected} > {self.quota_bytes} bytes"
            )


class MemorySessionStorage(KeyValueStorage):
    def __init__(self, quota_bytes: int | None = None):
        super().__init__(quota_bytes)
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Storage values must be strings, got {type(value).__name__}")
        self._check_quota(key, value)
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items.keys())

    def clear(self) -> None:
        self._items.clear()

    def _used_bytes_excluding(self, key: str) -> int:
        return sum(len(v.encode("utf-8")) for k, v in self._items.items() if k != key)


class SqliteLocalStorage(KeyValueStorage):
    def __init__(self, db_path: str | Path, quota_bytes: int | None = None):
        super().__init__(quota_bytes)
        self.db_path = Path(db_path)
        try:
            init_db(self.db_path)
        except sqlite3.Error as err:
            raise StorageError(f"Failed to initialise local storage at {self.db_path}") from err

    def _connect(self) -> sqlite3.Connection:
        try:
            return get_db(self.db_path)
        except sqlite3.Error as err:
            raise StorageError(f"Failed to open local storage at {self.db_path}") from err

    def get_item(self, key: str) -> str | None:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM local_storage WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as err:
            raise StorageError(f"Failed to read {key!r}") from err
        finally:
            conn.close()
        return None if row is None else str(row["value"])

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Storage values must be strings, got {type(value).__name__}")
        self._check_quota(key, value)
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO local_storage (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                  value = excluded.value,
                  updated_at = excluded.updated_at
                """,
                (key, value, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
        except sqlite3.Error as err:
            raise StorageError(f"Failed to write {key!r}") from err
        finally:
            conn.close()

    def remove_item(self, key: str) -> None:
        conn = self._connect()
        try:
            conn.execute("DELETE FROM local_storage WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.Error as err:
            raise StorageError(f"Failed to remove {key!r}") from err
        finally:
            conn.close()

    def keys(self) -> list[str]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT key FROM local_storage ORDER BY key").fetchall()
        except sqlite3.Error as err:
            raise StorageError("Failed to list storage keys") from err
        finally:
            conn.close()
        return [str(row["key"]) for row in rows]

    def clear(self) -> None:
        conn = self._connect()
        try:
            conn.execute("DELETE FROM local_storage")
            conn.commit()
        except sqlite3.Error as err:
            raise StorageError("Failed to clear storage") from err
        finally:
            conn.close()

    def _used_bytes_excluding(self, key: str) -> int:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT COALESCE(SUM(LENGTH(CAST(value AS BLOB))), 0) FROM local_storage WHERE key != ?",
                (key,),
            ).fetchone()
        except sqlite3.Error as err:
            raise StorageError("Failed to measure storage usage") from err
        finally:
            conn.close()
        return int(row[0] or 0)
