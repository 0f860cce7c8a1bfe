"""
Tests for Application Configuration.
"""

import pytest
from pydantic import ValidationError

from app.config import Settings, get_settings
from src.diffing.schemas import WhitespaceMode


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """get_settings is cached; start every test from a clean cache."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Defaults, environment overrides and validation."""

    def test_defaults(self, monkeypatch) -> None:
        monkeypatch.delenv("UPPER_THRESHOLD", raising=False)

        settings = Settings(_env_file=None)

        assert settings.whitespace_mode == WhitespaceMode.NORMALIZE
        assert (settings.lower_threshold, settings.upper_threshold) == (0.3, 0.85)
        assert settings.both_unresolved_confidence == 0.7
        assert settings.conflicting_chains_confidence == 0.5
        assert settings.verification_discount == 0.85
        assert settings.log_level == "INFO"

    def test_environment_override(self, monkeypatch) -> None:
        monkeypatch.setenv("UPPER_THRESHOLD", "0.9")
        monkeypatch.setenv("whitespace_mode", "ignore")
        monkeypatch.setenv("MAX_WORKERS", "8")

        settings = get_settings()

        assert settings.upper_threshold == 0.9
        assert settings.whitespace_mode == WhitespaceMode.IGNORE
        assert settings.max_workers == 8

    def test_settings_are_cached(self) -> None:
        assert get_settings() is get_settings()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"lower_threshold": 0.9, "upper_threshold": 0.5},
            {"lower_threshold": 0.5, "upper_threshold": 0.5},
            {"title_weight": 0.0, "body_weight": 0.0},
            {"upper_threshold": 1.5},
            {"max_workers": 0},
        ],
    )
    def test_invalid_values_rejected(self, overrides) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **overrides)
