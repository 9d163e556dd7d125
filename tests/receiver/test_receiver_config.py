"""Unit tests for receiver configuration."""

import pytest
from pydantic import ValidationError

from src.receiver.config import ReceiverSettings, get_settings
from tests.receiver.helpers import APP_IDENTIFIER, WEBHOOK_SECRET


@pytest.fixture
def required_env(monkeypatch, private_key_pem):
    monkeypatch.setenv("GITHUB_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("GITHUB_PRIVATE_KEY", private_key_pem)
    monkeypatch.setenv("GITHUB_APP_IDENTIFIER", APP_IDENTIFIER)
    for name in (
        "GITHUB_API_URL",
        "GITHUB_EXCHANGE_TIMEOUT_SECONDS",
        "GITHUB_API_TIMEOUT_SECONDS",
        "ISSUE_LABEL",
        "HOST",
        "PORT",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestReceiverSettings:
    def test_defaults(self, required_env) -> None:
        settings = get_settings()

        assert settings.github_webhook_secret == WEBHOOK_SECRET
        assert settings.github_app_identifier == APP_IDENTIFIER
        assert settings.github_api_url == "https://api.github.com"
        assert settings.github_exchange_timeout_seconds == 10.0
        assert settings.github_api_timeout_seconds == 30.0
        assert settings.issue_label == "needs-response"
        assert settings.host == "0.0.0.0"
        assert settings.port == 8080
        assert settings.log_level == "INFO"

    def test_overrides(self, required_env) -> None:
        required_env.setenv("GITHUB_API_URL", "https://ghe.example.com/api/v3/")
        required_env.setenv("GITHUB_EXCHANGE_TIMEOUT_SECONDS", "2.5")
        required_env.setenv("PORT", "3000")
        required_env.setenv("LOG_LEVEL", "debug")

        settings = get_settings()

        assert settings.github_api_url == "https://ghe.example.com/api/v3"
        assert settings.github_exchange_timeout_seconds == 2.5
        assert settings.port == 3000
        assert settings.log_level == "DEBUG"

    def test_escaped_private_key_is_normalized(
        self, required_env, private_key_pem
    ) -> None:
        required_env.setenv("GITHUB_PRIVATE_KEY", private_key_pem.replace("\n", "\\n"))

        settings = get_settings()

        assert settings.github_private_key == private_key_pem.strip()

    @pytest.mark.parametrize(
        "name",
        ["GITHUB_WEBHOOK_SECRET", "GITHUB_PRIVATE_KEY", "GITHUB_APP_IDENTIFIER"],
    )
    def test_credentials_are_required(self, required_env, name) -> None:
        required_env.delenv(name)

        with pytest.raises(ValidationError):
            get_settings()

    @pytest.mark.parametrize(
        "name,value",
        [
            ("GITHUB_WEBHOOK_SECRET", "   "),
            ("GITHUB_PRIVATE_KEY", "not a pem"),
            ("GITHUB_APP_IDENTIFIER", " "),
            ("GITHUB_API_URL", "api.github.com"),
            ("GITHUB_EXCHANGE_TIMEOUT_SECONDS", "0"),
            ("GITHUB_API_TIMEOUT_SECONDS", "-1"),
            ("ISSUE_LABEL", " "),
            ("PORT", "70000"),
            ("LOG_LEVEL", "chatty"),
        ],
    )
    def test_invalid_values_are_rejected(self, required_env, name, value) -> None:
        required_env.setenv(name, value)

        with pytest.raises(ValidationError):
            get_settings()

    def test_identifier_is_stripped_when_passed_directly(self, private_key_pem) -> None:
        settings = ReceiverSettings(
            github_webhook_secret="s",
            github_private_key=private_key_pem,
            github_app_identifier=" 99 ",
        )

        assert settings.github_app_identifier == "99"
