import logging
import sqlite3

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from ..config import Settings, get_settings
from ..engines.intake import (
    DocumentLimitError,
    DuplicateApplicationError,
    IncomingDocument,
    InvalidApplicationError,
    parse_form_data,
    store_application,
)
from ..engines.submission import generate_application_id
from .deps import db_conn

router = APIRouter(prefix="/api", tags=["submissions"])
logger = logging.getLogger(__name__)


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


@router.post("/submit-application")
async def submit_application(
    form_data_raw: str = Form(..., alias="formData"),
    application_id: str | None = Form(default=None, alias="applicationId"),
    documents: list[UploadFile] | None = File(default=None),
    db: sqlite3.Connection = Depends(db_conn),
    settings: Settings = Depends(get_settings),
):
    try:
        form_data = parse_form_data(form_data_raw)
    except InvalidApplicationError as err:
        return _failure(400, str(err))

    resolved_id = str(application_id or form_data.get("applicationId") or "").strip()
    if not resolved_id:
        resolved_id = generate_application_id()
    form_data["applicationId"] = resolved_id

    incoming: list[IncomingDocument] = []
    for upload in documents or []:
        incoming.append(
            IncomingDocument(
                filename=str(upload.filename or "").strip() or "document",
                content=await upload.read(),
                content_type=upload.content_type,
            )
        )

    try:
        store_application(
            db,
            settings.applications_dir,
            resolved_id,
            form_data,
            incoming,
            max_documents=settings.max_documents,
            max_document_bytes=settings.max_document_bytes,
        )
    except DocumentLimitError as err:
        return _failure(413, str(err))
    except DuplicateApplicationError as err:
        return _failure(409, str(err))
    except InvalidApplicationError as err:
        return _failure(400, str(err))
    except (OSError, sqlite3.Error):
        logger.exception("Failed to store application %s", resolved_id)
        return _failure(500, "Failed to submit application")

    return {
        "success": True,
        "message": "Application submitted successfully",
        "applicationId": resolved_id,
    }
