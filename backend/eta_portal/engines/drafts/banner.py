from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..context import ClientContext

logger = logging.getLogger(__name__)


class CachedApplicationBanner:
    """Shows a resume prompt while a non-expired draft is cached.

    State is re-derived from the draft store on every check: once on
    ``start()``, every ``poll_seconds`` after that, and whenever the store
    reports a save or clear.
    """

    def __init__(self, context: ClientContext, poll_seconds: float | None = None):
        self.context = context
        self.poll_seconds = poll_seconds or context.settings.banner_poll_seconds
        self.visible = False
        self.cached_count = 0
        self._task: asyncio.Task | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def message(self) -> str:
        if not self.visible:
            return ""
        suffix = "" if self.cached_count == 1 else "s"
        return f"You have {self.cached_count} saved application{suffix}"

    @property
    def time_remaining(self) -> str | None:
        return self.context.draft_store.time_remaining() if self.visible else None

    def check(self) -> bool:
        store = self.context.draft_store
        try:
            self.cached_count = len(store.read_for_current_user())
            self.visible = self.cached_count > 0
        except Exception:
            logger.exception("Error checking for cached applications")
        return self.visible

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_seconds)
            self.check()

    def start(self) -> None:
        self.check()
        if self._unsubscribe is None:
            self._unsubscribe = self.context.draft_store.subscribe(self.check)
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
