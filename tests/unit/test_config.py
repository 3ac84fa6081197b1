import dataclasses

import pytest

from shared.config import Settings, load_settings

SQLITE = "sqlite+aiosqlite:///:memory:"


def test_defaults():
    s = Settings(database_url=SQLITE)
    assert s.environment == "local"
    assert s.is_local and not s.is_prod
    assert s.ycloud_api_base_url == "https://api.ycloud.com/v2"
    assert s.reminder_window_strategy == "next_day"
    assert (s.survey_min_age_hours, s.survey_max_age_hours) == (24, 48)
    assert s.upsell_max_lateness_hours == 48
    assert s.template_language == "es"


def test_database_url_scheme_validated():
    with pytest.raises(ValueError):
        Settings(database_url="mysql://localhost/db")


def test_window_strategy_validated():
    with pytest.raises(ValueError):
        Settings(database_url=SQLITE, reminder_window_strategy="weekly")


def test_survey_ages_validated():
    with pytest.raises(ValueError):
        Settings(database_url=SQLITE, survey_min_age_hours=48, survey_max_age_hours=24)


def test_negative_delay_rejected():
    with pytest.raises(ValueError):
        Settings(database_url=SQLITE, send_delay_seconds=-1)


def test_safe_dict_masks_secrets():
    s = Settings(database_url="postgresql+asyncpg://user:pw@db/clinic", trigger_secret="very-long-trigger-secret")
    safe = s.safe_dict()
    assert safe["database_url"] == "<masked>"
    assert "very-long-trigger-secret" not in safe["trigger_secret"]


def test_replace_recomputes_derived_flags():
    s = dataclasses.replace(Settings(database_url=SQLITE), environment="prod")
    assert s.is_prod


def test_load_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", SQLITE)
    monkeypatch.setenv("REMINDER_WINDOW_STRATEGY", "rolling")
    monkeypatch.setenv("SEND_DELAY_SECONDS", "0")
    monkeypatch.setenv("TRIGGER_SECRET", "abc")
    s = load_settings()
    assert s.reminder_window_strategy == "rolling"
    assert s.send_delay_seconds == 0.0
    assert s.trigger_secret == "abc"


def test_load_settings_requires_database_url(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(ValueError):
        load_settings()


def test_load_settings_rejects_bad_numbers(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", SQLITE)
    monkeypatch.setenv("WORKER_INTERVAL_SECONDS", "hourly")
    with pytest.raises(ValueError):
        load_settings()
