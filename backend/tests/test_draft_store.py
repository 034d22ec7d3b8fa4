import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from eta_portal.engines.drafts.draft_store import ApplicantRecord, DraftStore
from eta_portal.engines.drafts.storage import (
    MemorySessionStorage,
    SqliteLocalStorage,
    StorageError,
    StorageQuotaExceededError,
)

START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _store(tmp_path: Path, clock: _Clock) -> DraftStore:
    return DraftStore(
        SqliteLocalStorage(tmp_path / "local.db"),
        MemorySessionStorage(),
        clock=clock,
    )


def _records() -> list[ApplicantRecord]:
    return [
        ApplicantRecord(
            "1",
            {
                "firstName": "Ada",
                "lastName": "Lovelace",
                "hasJob": "yes",
                "address": {"line1": "12 St James's Sq", "city": "London"},
                "consents": [True, False],
                "nickname": "Åda ✈",
            },
        ),
        ApplicantRecord("2", {"firstName": "Charles", "useSameAddressAsPrimary": True}),
    ]


def test_round_trip_preserves_field_values(tmp_path):
    clock = _Clock(START)
    store = _store(tmp_path, clock)
    records = _records()

    draft_id = store.save(records, "personal-details")
    clock.now = START + timedelta(minutes=5)
    restored = store.read_for_current_user()

    assert draft_id
    assert [r.applicant_id for r in restored] == ["1", "2"]
    assert [r.values for r in restored] == [r.values for r in records]
    assert store.get_cached_draft().step == "personal-details"


def test_draft_older_than_ttl_is_not_surfaced(tmp_path):
    clock = _Clock(START)
    store = _store(tmp_path, clock)
    store.save(_records(), "documents")

    clock.now = START + timedelta(minutes=29, seconds=59)
    assert store.has_cached_draft() is True

    clock.now = START + timedelta(minutes=31)
    assert store.has_cached_draft() is False
    assert store.read_for_current_user() == []
    assert store.local_storage.get_item(store.draft_key) is None


def test_save_overwrites_single_slot(tmp_path):
    clock = _Clock(START)
    store = _store(tmp_path, clock)
    first = store.save(_records(), "personal-details")
    second = store.save([ApplicantRecord("1", {"firstName": "Grace"})], "review")

    draft = store.get_cached_draft()
    assert first != second
    assert draft.id == second
    assert len(draft.records) == 1
    assert draft.records[0].values == {"firstName": "Grace"}


def test_malformed_draft_is_treated_as_absent(tmp_path):
    store = _store(tmp_path, _Clock(START))
    store.local_storage.set_item(store.draft_key, "{not json")

    assert store.has_cached_draft() is False
    assert store.read_for_current_user() == []
    assert store.local_storage.get_item(store.draft_key) is None


def test_time_remaining_reports_minutes_then_seconds(tmp_path):
    clock = _Clock(START)
    store = _store(tmp_path, clock)
    store.save(_records(), "review")

    clock.now = START + timedelta(minutes=28, seconds=30)
    assert store.time_remaining() == "1 minute"
    clock.now = START + timedelta(minutes=29, seconds=15)
    assert store.time_remaining() == "45 seconds"
    clock.now = START + timedelta(minutes=30)
    assert store.time_remaining() is None


def test_draft_records_completion_percentage(tmp_path):
    store = _store(tmp_path, _Clock(START))
    store.save([ApplicantRecord("1", {"firstName": "Ada", "lastName": "L", "hasJob": "no", "email": ""})], "x")
    assert store.get_cached_draft().completion_percentage == 38


def test_update_applicant_pads_and_merges(tmp_path):
    clock = _Clock(START)
    store = _store(tmp_path, clock)

    store.update_applicant("2", {"firstName": "Charles"})
    store.update_applicant("2", {"lastName": "Babbage"})

    applicants = store.get_applicants()
    assert [a.applicant_id for a in applicants] == ["1", "2"]
    assert applicants[0].values == {}
    assert applicants[1].values == {"firstName": "Charles", "lastName": "Babbage"}
    assert applicants[1].last_modified == START


def test_restore_to_session_replaces_working_copy(tmp_path):
    store = _store(tmp_path, _Clock(START))
    store.update_applicant("1", {"firstName": "Stale"})
    store.save(_records(), "review")

    assert store.restore_to_session() is True
    applicants = store.get_applicants()
    assert applicants[0].values["firstName"] == "Ada"
    assert applicants[1].values["firstName"] == "Charles"


def test_restore_without_draft_returns_false(tmp_path):
    store = _store(tmp_path, _Clock(START))
    assert store.restore_to_session() is False


def test_subscribers_hear_save_and_clear(tmp_path):
    store = _store(tmp_path, _Clock(START))
    events: list[bool] = []
    unsubscribe = store.subscribe(lambda: events.append(store.has_cached_draft()))

    store.save(_records(), "review")
    store.clear()
    unsubscribe()
    store.save(_records(), "review")

    assert events == [True, False]


def test_failing_subscriber_does_not_block_save(tmp_path):
    store = _store(tmp_path, _Clock(START))

    def broken() -> None:
        raise RuntimeError("listener exploded")

    store.subscribe(broken)
    store.save(_records(), "review")
    assert store.has_cached_draft() is True


def test_clients_sharing_local_storage_see_last_write(tmp_path):
    clock = _Clock(START)
    tab_a = _store(tmp_path, clock)
    tab_b = _store(tmp_path, clock)

    tab_a.save([ApplicantRecord("1", {"firstName": "A"})], "one")
    tab_b.save([ApplicantRecord("1", {"firstName": "B"})], "two")

    assert tab_a.read_for_current_user()[0].values == {"firstName": "B"}


def test_quota_exceeded_raises_and_keeps_previous_value(tmp_path):
    session = MemorySessionStorage(quota_bytes=200)
    store = DraftStore(SqliteLocalStorage(tmp_path / "local.db"), session, clock=_Clock(START))
    store.update_applicant("1", {"firstName": "Ada"})
    before = session.get_item(store.applicants_key)

    with pytest.raises(StorageQuotaExceededError):
        store.update_applicant("1", {"notes": "x" * 500})

    assert session.get_item(store.applicants_key) == before


def test_unserialisable_values_raise_storage_error(tmp_path):
    store = _store(tmp_path, _Clock(START))
    with pytest.raises(StorageError):
        store.update_applicant("1", {"when": object()})


def test_clear_session_removes_only_namespaced_keys(tmp_path):
    store = _store(tmp_path, _Clock(START))
    store.update_applicant("1", {"firstName": "Ada"})
    store.session_storage.set_item("other.app", json.dumps({"keep": True}))

    store.clear_session()

    assert store.get_applicants() == []
    assert store.session_storage.get_item("other.app") is not None


def test_draft_with_malformed_records_is_treated_as_absent(tmp_path):
    store = _store(tmp_path, _Clock(START))
    store.local_storage.set_item(
        store.draft_key,
        json.dumps({"id": "d1", "created_at": START.isoformat(), "records": "garbage"}),
    )

    assert store.has_cached_draft() is False
    assert store.read_for_current_user() == []
    assert store.local_storage.get_item(store.draft_key) is None
