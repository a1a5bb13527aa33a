# tests/unit/core/test_config.py
from marketsync.core.config import Settings, clear_settings_cache, get_settings


def test_settings_are_cached():
    assert get_settings() is get_settings()


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("JOB_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("SYNC_SCHEDULE_ENABLED", "true")
    clear_settings_cache()

    settings = get_settings()

    assert settings.JOB_MAX_ATTEMPTS == 5
    assert settings.SYNC_SCHEDULE_ENABLED is True


def test_schedule_defaults():
    settings = Settings()

    assert settings.USER_ORDERS_SCHEDULE == "*/10 * * * *"
    assert settings.CATEGORIES_SCHEDULE == "0 22 * * *"
    assert settings.EXPORT_STATUS_DELAY == 300
