import logging
from collections.abc import Callable
from datetime import timedelta

import httpx

from ..clients.backend import BackendClient
from ..config import Settings, load_settings
from .drafts.draft_store import DraftStore
from .drafts.storage import KeyValueStorage, MemorySessionStorage, SqliteLocalStorage

logger = logging.getLogger(__name__)

UnloadListener = Callable[[], None]


class ClientContext:
    """Everything one applicant session needs, built once and passed down.

    ``close()`` plays the part of page exit: unload listeners run first, in
    registration order, then the HTTP client is closed.
    """

    def __init__(
        self,
        settings: Settings,
        local_storage: KeyValueStorage,
        session_storage: KeyValueStorage,
        backend: BackendClient,
    ):
        self.settings = settings
        self.local_storage = local_storage
        self.session_storage = session_storage
        self.backend = backend
        self.draft_store = DraftStore(
            local_storage,
            session_storage,
            namespace=settings.storage_namespace,
            ttl=timedelta(minutes=settings.draft_ttl_minutes),
        )
        self._unload_listeners: list[UnloadListener] = []
        self._closed = False

    @classmethod
    def open(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ClientContext":
        resolved = settings or load_settings()
        local_storage = SqliteLocalStorage(resolved.db_path, quota_bytes=resolved.storage_quota_bytes)
        session_storage = MemorySessionStorage(quota_bytes=resolved.storage_quota_bytes)
        backend = BackendClient(
            resolved.backend_url,
            timeout_seconds=resolved.http_timeout_seconds,
            transport=transport,
        )
        logger.info("Client context opened (backend=%s, storage=%s)", resolved.backend_url, resolved.db_path)
        return cls(resolved, local_storage, session_storage, backend)

    @property
    def closed(self) -> bool:
        return self._closed

    def add_unload_listener(self, listener: UnloadListener) -> None:
        if listener not in self._unload_listeners:
            self._unload_listeners.append(listener)

    def remove_unload_listener(self, listener: UnloadListener) -> None:
        if listener in self._unload_listeners:
            self._unload_listeners.remove(listener)

    def fire_unload(self) -> None:
        for listener in list(self._unload_listeners):
            try:
                listener()
            except Exception:
                logger.exception("Unload listener failed")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.fire_unload()
        self._unload_listeners.clear()
        await self.backend.aclose()
        logger.info("Client context closed")

    async def __aenter__(self) -> "ClientContext":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
