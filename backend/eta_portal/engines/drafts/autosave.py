from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from .storage import StorageError

if TYPE_CHECKING:
    from ..context import ClientContext

logger = logging.getLogger(__name__)

FormAccessor = Callable[[], Mapping[str, Any]]
Notifier = Callable[[str, str], None]


def log_notifier(level: str, message: str) -> None:
    if level == "error":
        logger.warning("Autosave notice: %s", message)
    else:
        logger.info("Autosave notice: %s", message)


class AutoSaveScheduler:
    """Periodically copies live form values into the session working copy.

    A tick whose serialised form matches the last saved one writes nothing.
    Failed writes are reported through ``notifier`` and retried on the next
    tick; the timer keeps running.
    """

    def __init__(
        self,
        context: ClientContext,
        applicant_id: str,
        get_values: FormAccessor,
        interval_seconds: float | None = None,
        notifier: Notifier = log_notifier,
        show_toast: bool = True,
    ):
        self.context = context
        self.applicant_id = applicant_id
        self.get_values = get_values
        self.interval_seconds = interval_seconds or context.settings.autosave_interval_seconds
        self.notifier = notifier
        self.show_toast = show_toast
        self.last_saved_fingerprint = ""
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _fingerprint(self, values: Mapping[str, Any]) -> str:
        return json.dumps(values, ensure_ascii=False, sort_keys=True)

    def tick(self) -> bool:
        """Save once if the form changed. Returns whether a write happened."""
        if not self.applicant_id:
            return False

        try:
            values = dict(self.get_values())
            fingerprint = self._fingerprint(values)
        except (TypeError, ValueError):
            logger.exception("Auto-save failed to serialise form for applicant %s", self.applicant_id)
            if self.show_toast:
                self.notifier("error", "Failed to save progress")
            return False

        if fingerprint == self.last_saved_fingerprint:
            return False

        try:
            self.context.draft_store.update_applicant(self.applicant_id, values)
        except StorageError:
            logger.exception("Auto-save failed for applicant %s", self.applicant_id)
            if self.show_toast:
                self.notifier("error", "Failed to save progress")
            return False

        self.last_saved_fingerprint = fingerprint
        if self.show_toast:
            self.notifier("success", "Progress saved automatically")
        return True

    def save_now(self) -> bool:
        return self.tick()

    async def _autosave_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.tick()
            except Exception:
                logger.exception("Auto-save tick failed")

    def start(self) -> None:
        if not self.applicant_id or self.running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._autosave_loop())
        self.context.add_unload_listener(self.handle_unload)
        logger.info(
            "Auto-save started for applicant %s (every %ss)", self.applicant_id, self.interval_seconds
        )

    def _cancel_timer(self) -> asyncio.Task | None:
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
        return task

    async def stop(self) -> None:
        self.context.remove_unload_listener(self.handle_unload)
        task = self._cancel_timer()
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Auto-save stopped for applicant %s", self.applicant_id)

    def handle_unload(self) -> None:
        """Stop the timer, then flush once. Best effort."""
        self._cancel_timer()
        self.context.remove_unload_listener(self.handle_unload)
        self.tick()
