import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

BACKEND_DIR = Path(__file__).resolve().parents[1]
DEFAULT_DATA_DIR = BACKEND_DIR / "data"
DEFAULT_BACKEND_URL = "http://localhost:3001"


def _env_str(name: str, default: str) -> str:
    value = os.environ.get(name, "").strip()
    return value or default


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        parsed = int(raw)
    except ValueError:
        logger.warning("Invalid %s value: %s", name, raw)
        return default
    if parsed < minimum:
        logger.warning("%s must be >= %s, got %s", name, minimum, parsed)
        return default
    return parsed


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        parsed = float(raw)
    except ValueError:
        logger.warning("Invalid %s value: %s", name, raw)
        return default
    if parsed <= 0:
        logger.warning("%s must be positive, got %s", name, parsed)
        return default
    return parsed


@dataclass(frozen=True)
class Settings:
    backend_url: str = DEFAULT_BACKEND_URL
    data_dir: Path = DEFAULT_DATA_DIR
    db_path: Path = field(default_factory=lambda: DEFAULT_DATA_DIR / "eta_portal.db")
    storage_namespace: str = "eta"
    draft_ttl_minutes: int = 30
    autosave_interval_seconds: float = 30.0
    banner_poll_seconds: float = 30.0
    offline_queue_max: int = 50
    http_timeout_seconds: float = 30.0
    storage_quota_bytes: int = 5 * 1024 * 1024
    max_document_bytes: int = 5 * 1024 * 1024
    max_documents: int = 10

    @property
    def applications_dir(self) -> Path:
        return self.data_dir / "applications"


def load_settings() -> Settings:
    """Read settings from ``ETA_*`` environment variables.

    Unset or invalid values fall back to the defaults on :class:`Settings`.
    """
    data_dir = Path(_env_str("ETA_DATA_DIR", str(DEFAULT_DATA_DIR))).expanduser()
    db_path = Path(_env_str("ETA_DB_PATH", str(data_dir / "eta_portal.db"))).expanduser()
    return Settings(
        backend_url=_env_str("ETA_BACKEND_URL", DEFAULT_BACKEND_URL).rstrip("/"),
        data_dir=data_dir,
        db_path=db_path,
        storage_namespace=_env_str("ETA_STORAGE_NAMESPACE", "eta"),
        draft_ttl_minutes=_env_int("ETA_DRAFT_TTL_MINUTES", 30),
        autosave_interval_seconds=_env_float("ETA_AUTOSAVE_INTERVAL_SECONDS", 30.0),
        banner_poll_seconds=_env_float("ETA_BANNER_POLL_SECONDS", 30.0),
        offline_queue_max=_env_int("ETA_OFFLINE_QUEUE_MAX", 50),
        http_timeout_seconds=_env_float("ETA_HTTP_TIMEOUT_SECONDS", 30.0),
        storage_quota_bytes=_env_int("ETA_STORAGE_QUOTA_BYTES", 5 * 1024 * 1024),
        max_document_bytes=_env_int("ETA_MAX_DOCUMENT_BYTES", 5 * 1024 * 1024),
        max_documents=_env_int("ETA_MAX_DOCUMENTS", 10),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
