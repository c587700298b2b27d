"""
API Gateway — Settings Tests
==============================

What:  GatewaySettings defaults, parsing helpers and validation.
How:   `_env_file=None` keeps a developer's local .env out of the results.
"""

import pytest
from pydantic import ValidationError

from gateway.config import SERVER_PORT, GatewaySettings, load_settings


def make_settings(**overrides) -> GatewaySettings:
    return GatewaySettings(_env_file=None, **overrides)


class TestDefaults:

    def test_port_is_4000(self):
        assert SERVER_PORT == 4000
        assert make_settings().server_port == 4000

    def test_development_by_default(self):
        settings = make_settings()
        assert settings.node_env == "development"
        assert settings.is_development is True

    def test_signing_disabled_by_default(self):
        assert make_settings().session_keys_list == ()

    def test_single_probe_attempt_by_default(self):
        assert make_settings().elastic_probe_attempts == 1


class TestParsing:

    def test_session_keys_keep_their_order(self):
        settings = make_settings(session_keys=" newest , older,, oldest ")
        assert settings.session_keys_list == ("newest", "older", "oldest")

    def test_client_origins_are_split(self):
        settings = make_settings(client_url="http://a.test, http://b.test,")
        assert settings.client_origins_list == ["http://a.test", "http://b.test"]

    def test_node_env_is_normalized(self):
        settings = make_settings(node_env=" Production ")
        assert settings.node_env == "production"
        assert settings.is_development is False

    def test_log_level_is_upper_cased(self):
        assert make_settings(log_level="debug").log_level == "DEBUG"

    def test_environment_variables_are_read(self, monkeypatch):
        monkeypatch.setenv("NODE_ENV", "production")
        monkeypatch.setenv("SESSION_KEYS", "k1,k2")
        settings = load_settings(_env_file=None)
        assert settings.is_development is False
        assert settings.session_keys_list == ("k1", "k2")


class TestValidation:

    def test_invalid_log_level_is_rejected(self):
        with pytest.raises(ValidationError, match="Invalid log_level"):
            make_settings(log_level="verbose")

    def test_probe_attempts_must_be_positive(self):
        with pytest.raises(ValidationError):
            make_settings(elastic_probe_attempts=0)

    def test_settings_are_frozen(self):
        settings = make_settings()
        with pytest.raises(ValidationError):
            settings.server_port = 8080
