from __future__ import annotations

import logging
import mimetypes
import random
import string
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx

from ..drafts.storage import StorageError
from .offline_queue import OfflineQueue

if TYPE_CHECKING:
    from ..context import ClientContext

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = "Failed to submit application. Please try again."
OFFLINE_MESSAGE = (
    "The application service is unavailable. Your application has been saved "
    "and will be submitted when the connection is restored."
)
APPLICATION_ID_ALPHABET = string.ascii_lowercase + string.digits


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DocumentFile:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @classmethod
    def from_path(cls, path: str | Path) -> "DocumentFile":
        file_path = Path(path)
        guessed, _ = mimetypes.guess_type(file_path.name)
        return cls(
            filename=file_path.name,
            content=file_path.read_bytes(),
            content_type=guessed or "application/octet-stream",
        )


@dataclass(frozen=True)
class SubmissionResult:
    success: bool
    message: str
    application_id: str | None = None
    error: str | None = None
    status_code: int | None = None
    queued: bool = False

    @property
    def retryable(self) -> bool:
        """Transport failures and server errors are worth queueing."""
        return not self.success and (self.status_code is None or self.status_code >= 500)


def generate_application_id(now: datetime | None = None) -> str:
    stamp = int((now or _utcnow()).timestamp() * 1000)
    suffix = "".join(random.choices(APPLICATION_ID_ALPHABET, k=9))
    return f"ETA-{stamp}-{suffix}"


def build_attachments(documents: Mapping[str, Sequence[DocumentFile]]) -> list[tuple[str, bytes, str]]:
    """Flatten per-applicant documents into ``<applicantId>-<filename>`` parts."""
    attachments: list[tuple[str, bytes, str]] = []
    for applicant_id, files in documents.items():
        for document in files:
            attachments.append((f"{applicant_id}-{document.filename}", document.content, document.content_type))
    return attachments


class SubmissionCoordinator:
    def __init__(
        self,
        context: ClientContext,
        offline_queue: OfflineQueue | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.context = context
        self.clock = clock
        self.offline_queue = offline_queue or OfflineQueue(
            context.local_storage,
            namespace=context.settings.storage_namespace,
            max_entries=context.settings.offline_queue_max,
        )

    async def _transmit(
        self,
        application_data: Mapping[str, Any],
        documents: Mapping[str, Sequence[DocumentFile]],
    ) -> SubmissionResult:
        now = self.clock()
        application_id = generate_application_id(now)
        form_data = {
            **dict(application_data),
            "applicationId": application_id,
            "submittedAt": now.isoformat(),
        }
        attachments = build_attachments(documents)

        try:
            response = await self.context.backend.submit_application(form_data, application_id, attachments)
        except (httpx.HTTPError, TypeError, ValueError) as err:
            logger.exception("Submission error for %s", application_id)
            return SubmissionResult(success=False, message=FAILURE_MESSAGE, error=str(err))

        if response.is_error:
            logger.error(
                "Submission of %s rejected: %s %s",
                application_id,
                response.status_code,
                response.reason_phrase,
            )
            return SubmissionResult(
                success=False,
                message=FAILURE_MESSAGE,
                error=f"Submission failed: {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            return SubmissionResult(
                success=False,
                message=FAILURE_MESSAGE,
                error="Submission failed: unexpected response body",
                status_code=response.status_code,
            )

        error = body.get("error")
        return SubmissionResult(
            success=bool(body.get("success")),
            message=str(body.get("message") or ("" if body.get("success") else FAILURE_MESSAGE)),
            application_id=str(body.get("applicationId") or application_id),
            error=str(error) if error is not None else None,
            status_code=response.status_code,
        )

    def _clear_local_state(self) -> None:
        try:
            self.context.draft_store.clear_all()
        except StorageError:
            logger.exception("Failed to clear local application state after submission")

    async def submit(
        self,
        application_data: Mapping[str, Any],
        documents: Mapping[str, Sequence[DocumentFile]] | None = None,
    ) -> SubmissionResult:
        """Send the application with its documents.

        A successful submission is the only thing that tears down the cached
        draft and the session working copy. Failures are returned, not raised,
        and are never retried here.
        """
        result = await self._transmit(application_data, documents or {})
        if result.success:
            self._clear_local_state()
            logger.info("Application %s submitted", result.application_id)
        return result

    async def check_backend_health(self) -> bool:
        try:
            payload = await self.context.backend.get_health()
        except (httpx.HTTPError, ValueError):
            logger.warning("Backend not available, running in offline mode")
            return False
        return payload.get("status") == "ok"

    def save_offline(self, application_data: Mapping[str, Any]) -> str:
        return self.offline_queue.append(dict(application_data))

    def get_offline_applications(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self.offline_queue.entries()]

    async def submit_offline_queue(self) -> int:
        """Retry every queued submission in order; attachments are not kept.

        Only the entries the backend acknowledged are removed, whatever their
        position in the queue.
        """
        acknowledged: list[str] = []
        for entry in self.offline_queue.entries():
            result = await self._transmit(entry.data, {})
            if result.success:
                acknowledged.append(entry.id)
            else:
                logger.warning("Offline application %s still pending: %s", entry.id, result.error)
        if acknowledged:
            self.offline_queue.remove(acknowledged)
            logger.info("Submitted %s offline application(s)", len(acknowledged))
        return len(acknowledged)

    async def submit_with_fallback(
        self,
        application_data: Mapping[str, Any],
        documents: Mapping[str, Sequence[DocumentFile]] | None = None,
    ) -> SubmissionResult:
        """Submit, or queue locally when the backend cannot take it right now."""
        if await self.check_backend_health():
            result = await self.submit(application_data, documents)
            if result.success or not result.retryable:
                return result
            error = result.error
        else:
            error = "Backend unavailable"

        try:
            offline_id = self.save_offline(application_data)
        except StorageError as err:
            logger.exception("Failed to queue application for offline submission")
            return SubmissionResult(success=False, message=FAILURE_MESSAGE, error=str(err), queued=False)
        return SubmissionResult(
            success=False,
            message=OFFLINE_MESSAGE,
            application_id=offline_id,
            error=error,
            queued=True,
        )
