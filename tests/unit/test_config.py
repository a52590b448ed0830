"""
Unit tests for settings loading.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from cardwise.config import Settings, get_settings


@pytest.fixture(autouse=True)
def clean_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.fsrs_parameters_version == "fsrs-v4"
        assert settings.fsrs_request_retention == 0.9
        assert settings.new_cards_limit == 20
        assert settings.review_limit == 100
        assert settings.persistence_retry_attempts == 2
        assert settings.mature_threshold_days == 21.0
        assert settings.database_url.startswith("sqlite:///")

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("CARDWISE_REVIEW_LIMIT", "5")
        monkeypatch.setenv("CARDWISE_FSRS_ENABLE_FUZZ", "true")
        monkeypatch.setenv("CARDWISE_LEARNING_STEPS_MINUTES", "[1, 5, 30]")

        settings = Settings(_env_file=None)

        assert settings.review_limit == 5
        assert settings.fsrs_enable_fuzz is True
        assert settings.learning_steps_minutes == [1.0, 5.0, 30.0]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"fsrs_request_retention": 0.5},
            {"fsrs_maximum_interval": 0},
            {"new_cards_limit": -1},
            {"learning_steps_minutes": []},
            {"relearning_steps_minutes": [0]},
            {"log_level": "TRACE"},
        ],
    )
    def test_rejects_invalid_values(self, overrides):
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, **overrides)

    def test_fsrs_config_dict(self):
        config = Settings(_env_file=None).get_fsrs_config()

        assert config["version"] == "fsrs-v4"
        assert config["request_retention"] == 0.9
        assert config["learning_steps_minutes"] == [1.0, 10.0]

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
