"""Final submission of assembled applications, with an offline fallback."""

from .coordinator import DocumentFile, SubmissionCoordinator, SubmissionResult, generate_application_id
from .offline_queue import OfflineQueue, OfflineQueueEntry

__all__ = [
    "DocumentFile",
    "OfflineQueue",
    "OfflineQueueEntry",
    "SubmissionCoordinator",
    "SubmissionResult",
    "generate_application_id",
]
