import sqlite3

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..engines.intake import InvalidApplicationError, get_application, list_applications, update_status
from .deps import db_conn

router = APIRouter(prefix="/api", tags=["applications"])


class UpdateApplicationStatusRequest(BaseModel):
    status: str
    status_message: str | None = None


def _get_application_or_404(application_id: str, db: sqlite3.Connection):
    application = get_application(db, application_id)
    if application is None:
        raise HTTPException(status_code=404, detail="Application not found")
    return application


@router.get("/applications")
def get_applications(db: sqlite3.Connection = Depends(db_conn)):
    return list_applications(db)


@router.get("/applications/{application_id}")
def track_application(application_id: str, db: sqlite3.Connection = Depends(db_conn)):
    return _get_application_or_404(application_id, db)


@router.patch("/applications/{application_id}/status")
def update_application_status(
    application_id: str,
    payload: UpdateApplicationStatusRequest,
    db: sqlite3.Connection = Depends(db_conn),
):
    try:
        updated = update_status(db, application_id, payload.status, payload.status_message)
    except InvalidApplicationError as err:
        raise HTTPException(status_code=400, detail=str(err)) from err
    if updated is None:
        raise HTTPException(status_code=404, detail="Application not found")
    return updated
