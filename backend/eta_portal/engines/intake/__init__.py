"""Server-side storage of submitted applications."""

from .application_store import (
    DocumentLimitError,
    DuplicateApplicationError,
    IncomingDocument,
    InvalidApplicationError,
    get_application,
    list_applications,
    parse_form_data,
    store_application,
    update_status,
)

__all__ = [
    "DocumentLimitError",
    "DuplicateApplicationError",
    "IncomingDocument",
    "InvalidApplicationError",
    "get_application",
    "list_applications",
    "parse_form_data",
    "store_application",
    "update_status",
]
