import sqlite3
from collections.abc import Iterator

from fastapi import Depends

from ..config import Settings, get_settings
from ..db.database import get_db


def db_conn(settings: Settings = Depends(get_settings)) -> Iterator[sqlite3.Connection]:
    conn = get_db(settings.db_path)
    try:
        yield conn
    finally:
        conn.close()
