import asyncio
import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

import httpx

from eta_portal.config import Settings
from eta_portal.engines.context import ClientContext
from eta_portal.engines.drafts.autosave import AutoSaveScheduler


def _context(tmp_path: Path) -> ClientContext:
    settings = Settings(
        backend_url="http://backend.test",
        data_dir=tmp_path / "data",
        db_path=tmp_path / "client.db",
    )
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"status": "ok"}))
    return ClientContext.open(settings, transport=transport)


class _Notices:
    def __init__(self):
        self.items: list[tuple[str, str]] = []

    def __call__(self, level: str, message: str) -> None:
        self.items.append((level, message))


def test_unchanged_form_is_written_exactly_once(tmp_path, monkeypatch):
    async def scenario():
        ctx = _context(tmp_path)
        writes: list[str] = []
        original = ctx.draft_store.update_applicant

        def counting_update(applicant_id, values):
            writes.append(applicant_id)
            return original(applicant_id, values)

        monkeypatch.setattr(ctx.draft_store, "update_applicant", counting_update)
        values = {"firstName": "Ada", "address": {"city": "London"}}
        scheduler = AutoSaveScheduler(ctx, "1", lambda: values, notifier=_Notices())

        results = [scheduler.tick() for _ in range(5)]
        await ctx.close()
        return writes, results

    writes, results = asyncio.run(scenario())
    assert writes == ["1"]
    assert results == [True, False, False, False, False]


def test_changed_form_is_written_again_and_notifies(tmp_path):
    async def scenario():
        ctx = _context(tmp_path)
        notices = _Notices()
        values = {"firstName": "Ada"}
        scheduler = AutoSaveScheduler(ctx, "1", lambda: values, notifier=notices)

        scheduler.tick()
        values["lastName"] = "Lovelace"
        wrote = scheduler.save_now()
        saved = ctx.draft_store.get_applicant("1").values
        await ctx.close()
        return wrote, saved, notices.items

    wrote, saved, notices = asyncio.run(scenario())
    assert wrote is True
    assert saved == {"firstName": "Ada", "lastName": "Lovelace"}
    assert notices == [("success", "Progress saved automatically")] * 2


def test_write_failure_is_reported_and_retried_next_tick(tmp_path):
    async def scenario():
        ctx = _context(tmp_path)
        notices = _Notices()
        ctx.session_storage.quota_bytes = 10
        scheduler = AutoSaveScheduler(ctx, "1", lambda: {"firstName": "Ada"}, notifier=notices)

        first = scheduler.tick()
        ctx.session_storage.quota_bytes = None
        second = scheduler.tick()
        await ctx.close()
        return first, second, notices.items

    first, second, notices = asyncio.run(scenario())
    assert first is False
    assert second is True
    assert notices[0] == ("error", "Failed to save progress")
    assert notices[1] == ("success", "Progress saved automatically")


def test_empty_applicant_id_disables_saving(tmp_path):
    async def scenario():
        ctx = _context(tmp_path)
        scheduler = AutoSaveScheduler(ctx, "", lambda: {"firstName": "Ada"}, notifier=_Notices())
        wrote = scheduler.tick()
        scheduler.start()
        running = scheduler.running
        await ctx.close()
        return wrote, running

    assert asyncio.run(scenario()) == (False, False)


def test_timer_saves_periodically_and_stops(tmp_path):
    async def scenario():
        ctx = _context(tmp_path)
        values = {"firstName": "Ada"}
        scheduler = AutoSaveScheduler(ctx, "1", lambda: values, interval_seconds=0.01, notifier=_Notices())

        scheduler.start()
        await asyncio.sleep(0.05)
        values["lastName"] = "Lovelace"
        await asyncio.sleep(0.05)
        await scheduler.stop()
        running = scheduler.running
        saved = ctx.draft_store.get_applicant("1").values
        await ctx.close()
        return running, saved

    running, saved = asyncio.run(scenario())
    assert running is False
    assert saved == {"firstName": "Ada", "lastName": "Lovelace"}


def test_unload_cancels_timer_then_flushes(tmp_path):
    async def scenario():
        ctx = _context(tmp_path)
        values = {"firstName": "Ada"}
        scheduler = AutoSaveScheduler(ctx, "1", lambda: values, interval_seconds=3600, notifier=_Notices())
        scheduler.start()
        values["passportNumber"] = "123456789"

        await ctx.close()
        return scheduler.running, ctx.draft_store.get_applicant("1").values

    running, saved = asyncio.run(scenario())
    assert running is False
    assert saved == {"firstName": "Ada", "passportNumber": "123456789"}


def test_stopped_scheduler_is_not_flushed_on_unload(tmp_path):
    async def scenario():
        ctx = _context(tmp_path)
        values = {"firstName": "Ada"}
        scheduler = AutoSaveScheduler(ctx, "1", lambda: values, interval_seconds=3600, notifier=_Notices())
        scheduler.start()
        await scheduler.stop()

        await ctx.close()
        return ctx.draft_store.get_applicant("1")

    assert asyncio.run(scenario()) is None
