import json
import logging
import re
import shutil
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

APPLICATION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
ALLOWED_STATUSES = {"submitted", "processing", "approved", "rejected"}
JSON_COLUMNS = {"form_data_json"}


class InvalidApplicationError(ValueError):
    """Raised when the submitted form data cannot be accepted."""


class DocumentLimitError(ValueError):
    """Raised when too many or too large documents are attached."""


class DuplicateApplicationError(ValueError):
    """Raised when an application id has already been stored."""


@dataclass
class IncomingDocument:
    filename: str
    content: bytes
    content_type: str | None = None


def parse_form_data(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as err:
        raise InvalidApplicationError("formData is not valid JSON") from err
    if not isinstance(parsed, dict):
        raise InvalidApplicationError("formData must be a JSON object")
    return parsed


def _safe_filename(name: str) -> str:
    base = Path(str(name or "")).name
    safe = re.sub(r"[^A-Za-z0-9._-]+", "_", base).strip("._")
    return safe or "document"


def _primary_email(form_data: dict[str, Any]) -> str | None:
    applicants = form_data.get("applicants")
    if isinstance(applicants, list) and applicants and isinstance(applicants[0], dict):
        email = str(applicants[0].get("email") or "").strip()
        return email or None
    email = str(form_data.get("email") or "").strip()
    return email or None


def _applicant_count(form_data: dict[str, Any]) -> int:
    applicants = form_data.get("applicants")
    if isinstance(applicants, list):
        return len(applicants)
    return 1 if form_data else 0


def validate_documents(documents: list[IncomingDocument], max_documents: int, max_document_bytes: int) -> None:
    if len(documents) > max_documents:
        raise DocumentLimitError(f"At most {max_documents} documents may be attached")
    for document in documents:
        if len(document.content) > max_document_bytes:
            raise DocumentLimitError(
                f"{document.filename} exceeds the {max_document_bytes // (1024 * 1024)}MB limit"
            )


def store_application(
    db: sqlite3.Connection,
    applications_dir: Path,
    application_id: str,
    form_data: dict[str, Any],
    documents: list[IncomingDocument],
    max_documents: int = 10,
    max_document_bytes: int = 5 * 1024 * 1024,
) -> dict[str, Any]:
    """Persist one submitted application and its documents.

    The JSON snapshot and files go under ``<applications_dir>/<id>/``; the
    sqlite rows index them for tracking. The rows are inserted first and only
    committed once the files are on disk, so a failed write leaves neither.
    """
    if not APPLICATION_ID_PATTERN.match(application_id):
        raise InvalidApplicationError("applicationId is invalid")
    validate_documents(documents, max_documents, max_document_bytes)

    exists = db.execute("SELECT 1 FROM applications WHERE id = ?", (application_id,)).fetchone()
    if exists is not None:
        raise DuplicateApplicationError(f"Application {application_id} already exists")

    app_dir = applications_dir / application_id
    targets = [
        (document, app_dir / f"{index:02d}-{_safe_filename(document.filename)}")
        for index, document in enumerate(documents, start=1)
    ]
    submitted_at = str(form_data.get("submittedAt") or datetime.now(timezone.utc).isoformat())
    now = datetime.now(timezone.utc).isoformat()
    try:
        db.execute(
            """
            INSERT INTO applications (
                id,
                status,
                status_message,
                applicant_count,
                primary_email,
                form_data_json,
                submitted_at,
                updated_at
            )
            VALUES (?, 'submitted', ?, ?, ?, ?, ?, ?)
            """,
            (
                application_id,
                "Application received and awaiting review",
                _applicant_count(form_data),
                _primary_email(form_data),
                json.dumps(form_data, ensure_ascii=False),
                submitted_at,
                now,
            ),
        )
    except sqlite3.IntegrityError as err:
        db.rollback()
        raise DuplicateApplicationError(f"Application {application_id} already exists") from err

    try:
        db.executemany(
            """
            INSERT INTO application_documents (application_id, original_name, stored_path, size_bytes, content_type)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                (application_id, document.filename, str(target), len(document.content), document.content_type)
                for document, target in targets
            ],
        )
        app_dir.mkdir(parents=True, exist_ok=True)
        (app_dir / "application.json").write_text(
            json.dumps(form_data, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        for document, target in targets:
            target.write_bytes(document.content)
        db.commit()
    except (OSError, sqlite3.Error):
        db.rollback()
        shutil.rmtree(app_dir, ignore_errors=True)
        raise

    logger.info("Stored application %s with %s document(s) in %s", application_id, len(targets), app_dir)
    return get_application(db, application_id) or {}


def _row_to_application(row: sqlite3.Row) -> dict[str, Any]:
    item = dict(row)
    for col in JSON_COLUMNS:
        raw = item.get(col)
        if isinstance(raw, str):
            try:
                item[col] = json.loads(raw)
            except json.JSONDecodeError:
                pass
    return item


def get_application(db: sqlite3.Connection, application_id: str) -> dict[str, Any] | None:
    row = db.execute("SELECT * FROM applications WHERE id = ?", (application_id,)).fetchone()
    if row is None:
        return None
    item = _row_to_application(row)
    docs = db.execute(
        """
        SELECT original_name, size_bytes, content_type, uploaded_at
        FROM application_documents
        WHERE application_id = ?
        ORDER BY id
        """,
        (application_id,),
    ).fetchall()
    item["documents"] = [dict(doc) for doc in docs]
    return item


def list_applications(db: sqlite3.Connection) -> list[dict[str, Any]]:
    rows = db.execute(
        """
        SELECT id, status, status_message, applicant_count, primary_email, submitted_at, updated_at
        FROM applications
        ORDER BY submitted_at DESC
        """
    ).fetchall()
    return [dict(row) for row in rows]


def update_status(
    db: sqlite3.Connection,
    application_id: str,
    status: str,
    status_message: str | None = None,
) -> dict[str, Any] | None:
    if status not in ALLOWED_STATUSES:
        raise InvalidApplicationError("Invalid status")
    result = db.execute(
        "UPDATE applications SET status = ?, status_message = COALESCE(?, status_message), updated_at = ? WHERE id = ?",
        (status, status_message, datetime.now(timezone.utc).isoformat(), application_id),
    )
    db.commit()
    if result.rowcount == 0:
        return None
    return get_application(db, application_id)
