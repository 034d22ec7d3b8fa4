"""Thin async wrapper around the receiving backend's HTTP API."""

import json
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "ETA-Portal/0.1"
SUBMIT_PATH = "/api/submit-application"
HEALTH_PATH = "/api/health"


class BackendClient:
    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_seconds,
            transport=transport,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        )

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def submit_application(
        self,
        form_data: dict[str, Any],
        application_id: str,
        documents: list[tuple[str, bytes, str]],
    ) -> httpx.Response:
        """POST one application as multipart form data.

        ``documents`` holds ``(filename, content, content_type)`` tuples; each
        becomes a repeated ``documents`` part.
        """
        files = [("documents", (name, content, content_type)) for name, content, content_type in documents]
        data = {
            "formData": json.dumps(form_data, ensure_ascii=False),
            "applicationId": application_id,
        }
        logger.debug("Submitting application %s with %s document(s)", application_id, len(files))
        return await self._client.post(SUBMIT_PATH, data=data, files=files or None)

    async def get_health(self) -> dict[str, Any]:
        response = await self._client.get(HEALTH_PATH)
        response.raise_for_status()
        payload = response.json()
        return payload if isinstance(payload, dict) else {}

    async def aclose(self) -> None:
        await self._client.aclose()
