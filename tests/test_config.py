import pytest
from pydantic import ValidationError

from docauth.config import Settings, StoreBackend, get_settings, reset_settings_cache
from docauth.service.lifecycle import DEFAULT_SESSION_MAX_AGE


def test_defaults():
    settings = Settings()

    assert settings.store_backend == StoreBackend.MEMORY
    assert settings.session_max_age == DEFAULT_SESSION_MAX_AGE
    assert settings.session_update_age == 0
    assert settings.sanity_api_version == "2021-04-13"
    assert settings.debug is False


def test_from_env_reads_declared_names(monkeypatch):
    monkeypatch.setenv("DOCUMENT_STORE", "sanity")
    monkeypatch.setenv("SANITY_PROJECT_ID", "proj123")
    monkeypatch.setenv("SANITY_API_TOKEN", "sk-test")
    monkeypatch.setenv("SANITY_USE_CDN", "true")
    monkeypatch.setenv("SESSION_MAX_AGE", "3600")
    monkeypatch.setenv("SESSION_UPDATE_AGE", "60")
    monkeypatch.setenv("AUTH_DEBUG", "1")

    settings = Settings.from_env()

    assert settings.store_backend == StoreBackend.SANITY
    assert settings.sanity_project_id == "proj123"
    assert settings.sanity_token == "sk-test"
    assert settings.sanity_use_cdn is True
    assert settings.session_max_age == 3600
    assert settings.session_update_age == 60
    assert settings.debug is True


def test_unknown_backend_rejected(monkeypatch):
    monkeypatch.setenv("DOCUMENT_STORE", "postgres")

    with pytest.raises(ValidationError):
        Settings.from_env()


def test_sanity_backend_requires_project_id():
    with pytest.raises(ValidationError):
        Settings(store_backend="sanity")


@pytest.mark.parametrize("field", ["session_max_age", "session_update_age"])
def test_negative_ages_rejected(field):
    with pytest.raises(ValidationError):
        Settings(**{field: -1})


def test_get_settings_is_cached_until_reset(monkeypatch):
    monkeypatch.setenv("APP_BASE_URL", "https://first.example")
    first = get_settings()
    monkeypatch.setenv("APP_BASE_URL", "https://second.example")

    assert get_settings() is first

    reset_settings_cache()
    assert get_settings().base_url == "https://second.example"
