"""Tests for portal settings."""

import pytest
from pydantic import ValidationError

from compass_portal.core.config import Settings


class TestSettings:
    """Tests for defaults and safety validators."""

    def test_defaults(self):
        """Test popup and polling defaults used by the OAuth flow."""
        defaults = Settings(_env_file=None)
        assert defaults.popup_size == (600, 700)
        assert defaults.oauth_poll_interval_seconds == 1.0
        assert defaults.oauth_reload_delay_seconds == 2.0
        assert defaults.app_name == "Compass Portal"

    def test_trailing_slash_removed(self, settings):
        """Test the base URL is stored without a trailing slash."""
        assert settings.api_base_url == "https://compass.test/api"

    def test_environment_lower_cased(self):
        """Test the environment name is case-insensitive."""
        assert Settings(_env_file=None, environment="Staging").environment == "staging"

    def test_debug_rejected_in_production(self):
        """Test debug mode cannot be enabled in production."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, environment="production", debug=True)

    def test_plain_http_rejected_in_production(self):
        """Test production requires an https backend."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, environment="production", api_base_url="http://compass.internal/api")

    def test_landing_url(self):
        """Test the landing URL is built from host and port."""
        settings = Settings(_env_file=None, landing_host="localhost", landing_port=9000)
        assert settings.landing_url == "http://localhost:9000"
        assert not settings.is_production
