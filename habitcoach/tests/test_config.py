"""
Tests for environment-driven settings.
"""
import pytest
from pydantic import ValidationError

from habitcoach.config import Settings, get_settings


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.openai_api_key is None
        assert settings.narrative_timeout_seconds == 8.0
        assert settings.max_parallel_narratives == 4
        assert settings.timezone == "UTC"
        assert settings.narrative_enabled is False

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("HABITCOACH_TIMEZONE", "Asia/Shanghai")
        monkeypatch.setenv("HABITCOACH_MAX_PARALLEL_NARRATIVES", "2")

        settings = Settings(_env_file=None)

        assert settings.narrative_enabled is True
        assert settings.timezone == "Asia/Shanghai"
        assert settings.max_parallel_narratives == 2

    def test_field_names_accepted(self):
        settings = Settings(_env_file=None, narrative_timeout_seconds=1.5)
        assert settings.narrative_timeout_seconds == 1.5

    @pytest.mark.parametrize("kwargs", [
        {'narrative_timeout_seconds': 0},
        {'max_parallel_narratives': 0},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **kwargs)


class TestGetSettings:

    def test_cached(self):
        assert get_settings() is get_settings()

    def test_cache_clear_rereads_environment(self, monkeypatch):
        assert get_settings().timezone == "UTC"
        monkeypatch.setenv("HABITCOACH_TIMEZONE", "Europe/Paris")
        assert get_settings().timezone == "UTC"

        get_settings.cache_clear()
        assert get_settings().timezone == "Europe/Paris"
