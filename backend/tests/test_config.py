import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from eta_portal.config import DEFAULT_BACKEND_URL, load_settings


def test_defaults_when_environment_is_empty(monkeypatch):
    for name in ("ETA_BACKEND_URL", "ETA_DRAFT_TTL_MINUTES", "ETA_AUTOSAVE_INTERVAL_SECONDS", "ETA_DATA_DIR"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.backend_url == DEFAULT_BACKEND_URL
    assert settings.draft_ttl_minutes == 30
    assert settings.autosave_interval_seconds == 30.0
    assert settings.offline_queue_max == 50


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("ETA_BACKEND_URL", "https://api.example.com/")
    monkeypatch.setenv("ETA_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("ETA_DB_PATH", raising=False)
    monkeypatch.setenv("ETA_DRAFT_TTL_MINUTES", "45")
    monkeypatch.setenv("ETA_BANNER_POLL_SECONDS", "5.5")
    settings = load_settings()
    assert settings.backend_url == "https://api.example.com"
    assert settings.db_path == tmp_path / "eta_portal.db"
    assert settings.applications_dir == tmp_path / "applications"
    assert settings.draft_ttl_minutes == 45
    assert settings.banner_poll_seconds == 5.5


def test_invalid_values_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("ETA_DRAFT_TTL_MINUTES", "soon")
    monkeypatch.setenv("ETA_OFFLINE_QUEUE_MAX", "0")
    monkeypatch.setenv("ETA_HTTP_TIMEOUT_SECONDS", "-3")
    settings = load_settings()
    assert settings.draft_ttl_minutes == 30
    assert settings.offline_queue_max == 50
    assert settings.http_timeout_seconds == 30.0
