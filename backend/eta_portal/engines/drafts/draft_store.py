from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from .completion import evaluate_completion
from .storage import KeyValueStorage, StorageError

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=30)

# Fields used for the informational completion figure stored with a draft.
DEFAULT_APPLICANT_FIELDS = (
    "firstName",
    "lastName",
    "email",
    "passportNumber",
    "dateOfBirth",
    "nationality",
    "hasJob",
    "hasCriminalConvictions",
)

Listener = Callable[[], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(raw: Any) -> datetime | None:
    if not isinstance(raw, str) or not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _dumps(payload: Any) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False, sort_keys=True)
    except (TypeError, ValueError) as err:
        raise StorageError(f"Value is not serialisable: {err}") from err


@dataclass
class ApplicantRecord:
    applicant_id: str
    values: dict[str, Any] = field(default_factory=dict)
    last_modified: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "applicant_id": self.applicant_id,
            "values": self.values,
            "last_modified": self.last_modified.isoformat() if self.last_modified else None,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ApplicantRecord":
        values = raw.get("values")
        return cls(
            applicant_id=str(raw.get("applicant_id") or ""),
            values=dict(values) if isinstance(values, Mapping) else {},
            last_modified=_parse_ts(raw.get("last_modified")),
        )


@dataclass
class CachedDraft:
    id: str
    records: list[ApplicantRecord]
    created_at: datetime
    expires_at: datetime
    step: str
    completion_percentage: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "records": [record.to_dict() for record in self.records],
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "step": self.step,
            "completion_percentage": self.completion_percentage,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "CachedDraft":
        created_at = _parse_ts(raw.get("created_at"))
        expires_at = _parse_ts(raw.get("expires_at"))
        records = raw.get("records")
        if created_at is None or expires_at is None or not isinstance(records, list):
            raise ValueError("Cached draft is missing required fields")
        return cls(
            id=str(raw.get("id") or ""),
            records=[ApplicantRecord.from_dict(item) for item in records if isinstance(item, Mapping)],
            created_at=created_at,
            expires_at=expires_at,
            step=str(raw.get("step") or ""),
            completion_percentage=int(raw.get("completion_percentage") or 0),
        )


def draft_completion_percentage(records: list[ApplicantRecord]) -> int:
    if not records:
        return 0
    completed = sum(
        evaluate_completion(record.values, DEFAULT_APPLICANT_FIELDS).completed_fields for record in records
    )
    return round(completed * 100 / (len(records) * len(DEFAULT_APPLICANT_FIELDS)))


class DraftStore:
    """Single-slot draft cache with lazy TTL eviction.

    The cached draft lives in durable local storage and survives restarts for
    ``ttl``. The per-applicant working copy lives in session storage and is
    what autosave writes to on every tick.
    """

    def __init__(
        self,
        local_storage: KeyValueStorage,
        session_storage: KeyValueStorage,
        namespace: str = "eta",
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.local_storage = local_storage
        self.session_storage = session_storage
        self.namespace = namespace
        self.ttl = ttl
        self.clock = clock
        self._listeners: list[Listener] = []

    @property
    def draft_key(self) -> str:
        return f"{self.namespace}.cached_application"

    @property
    def applicants_key(self) -> str:
        return f"{self.namespace}.applicants"

    @property
    def last_modified_key(self) -> str:
        return f"{self.namespace}.applicants.last_modified"

    # -- observers ---------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Draft store listener failed")

    # -- cached draft ------------------------------------------------------

    def save(self, records: list[ApplicantRecord], step: str) -> str:
        now = self.clock()
        draft = CachedDraft(
            id=uuid4().hex,
            records=[
                ApplicantRecord(r.applicant_id, dict(r.values), r.last_modified or now) for r in records
            ],
            created_at=now,
            expires_at=now + self.ttl,
            step=step,
            completion_percentage=draft_completion_percentage(records),
        )
        self.local_storage.set_item(self.draft_key, _dumps(draft.to_dict()))
        logger.info(
            "Application cached (draft=%s, applicants=%s, step=%s, expires=%s)",
            draft.id,
            len(draft.records),
            step,
            draft.expires_at.isoformat(),
        )
        self._notify()
        return draft.id

    def get_cached_draft(self) -> CachedDraft | None:
        raw = self.local_storage.get_item(self.draft_key)
        if raw is None:
            return None
        try:
            draft = CachedDraft.from_dict(json.loads(raw))
        except (json.JSONDecodeError, ValueError, TypeError, AttributeError):
            logger.warning("Discarding malformed cached draft")
            self.local_storage.remove_item(self.draft_key)
            return None
        if draft.is_expired(self.clock()):
            logger.info("Evicting expired cached draft %s", draft.id)
            self.local_storage.remove_item(self.draft_key)
            return None
        return draft

    def has_cached_draft(self) -> bool:
        return self.get_cached_draft() is not None

    def read_for_current_user(self) -> list[ApplicantRecord]:
        draft = self.get_cached_draft()
        return draft.records if draft is not None else []

    def time_remaining(self) -> str | None:
        draft = self.get_cached_draft()
        if draft is None:
            return None
        remaining = int((draft.expires_at - self.clock()).total_seconds())
        if remaining <= 0:
            return None
        minutes, seconds = divmod(remaining, 60)
        if minutes > 0:
            return f"{minutes} minute{'s' if minutes != 1 else ''}"
        return f"{seconds} second{'s' if seconds != 1 else ''}"

    def clear(self) -> None:
        self.local_storage.remove_item(self.draft_key)
        self._notify()

    def restore_to_session(self) -> bool:
        draft = self.get_cached_draft()
        if draft is None:
            return False
        self.clear_session()
        for record in draft.records:
            self.update_applicant(record.applicant_id, record.values)
        logger.info("Restored cached application with %s applicant(s)", len(draft.records))
        return True

    # -- session working copy ----------------------------------------------

    def get_applicants(self) -> list[ApplicantRecord]:
        raw = self.session_storage.get_item(self.applicants_key)
        if raw is None:
            return []
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding malformed session applicants")
            return []
        if not isinstance(parsed, list):
            return []
        return [ApplicantRecord.from_dict(item) for item in parsed if isinstance(item, Mapping)]

    def get_applicant(self, applicant_id: str) -> ApplicantRecord | None:
        for record in self.get_applicants():
            if record.applicant_id == applicant_id:
                return record
        return None

    def update_applicant(self, applicant_id: str, values: Mapping[str, Any]) -> ApplicantRecord:
        """Merge ``values`` into one applicant of the session working copy.

        Numeric ids are 1-based positions; missing earlier applicants are
        padded with empty records so the list stays positional.
        """
        applicants = self.get_applicants()
        target = next((r for r in applicants if r.applicant_id == applicant_id), None)
        if target is None:
            if applicant_id.isdigit():
                for position in range(len(applicants) + 1, int(applicant_id) + 1):
                    applicants.append(ApplicantRecord(applicant_id=str(position)))
                target = next((r for r in applicants if r.applicant_id == applicant_id), None)
            if target is None:
                target = ApplicantRecord(applicant_id=applicant_id)
                applicants.append(target)

        now = self.clock()
        target.values = {**target.values, **dict(values)}
        target.last_modified = now
        self.session_storage.set_item(self.applicants_key, _dumps([r.to_dict() for r in applicants]))
        self.session_storage.set_item(self.last_modified_key, now.isoformat())
        return target

    def clear_session(self) -> None:
        prefix = f"{self.namespace}."
        for key in self.session_storage.keys():
            if key.startswith(prefix):
                self.session_storage.remove_item(key)

    def clear_all(self) -> None:
        self.clear_session()
        self.clear()
