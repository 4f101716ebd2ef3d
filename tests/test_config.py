"""
Tests for configuration loading.
"""

import logging

import pytest

from turn_authorization.config import load_authorization_options, load_host_settings
from turn_authorization.constants import HandlerTypes
from turn_authorization.errors import AuthorizationConfigurationError
from turn_authorization.models.configuration import (
    DEFAULT_INVALID_CODE_MESSAGE,
    DEFAULT_TEXT,
    DEFAULT_TITLE,
)

LATEST = "AgentApplication__UserAuthorization__Handlers__{}__Settings__{}"


def latest(handler_id, prop):
    return LATEST.format(handler_id, prop)


class TestLatestFormat:
    """Tests for the AgentApplication__UserAuthorization environment format."""

    def test_reads_handler_settings(self):
        """Test every latest property maps to its option."""
        environ = {
            latest("graph", "azureBotOAuthConnectionName"): "GraphConnection",
            latest("graph", "title"): "Graph sign-in",
            latest("graph", "text"): "Sign in to Graph",
            latest("graph", "invalidSignInRetryMax"): "3",
            latest("graph", "invalidSignInRetryMessage"): "Bad {code}",
            latest("graph", "invalidSignInRetryMessageFormat"): "Six digits, {attemptsLeft} left",
            latest("graph", "invalidSignInRetryMaxExceededMessage"): "Out of {maxAttempts}",
            latest("graph", "oboConnectionName"): "OboConnection",
            latest("graph", "oboScopes"): "api://a/.default, api://b/.default",
            latest("graph", "enableSso"): "false",
        }

        options = load_authorization_options(environ=environ)["graph"]

        assert options.type == HandlerTypes.AZURE_BOT
        assert options.azure_bot_oauth_connection_name == "GraphConnection"
        assert options.title == "Graph sign-in"
        assert options.text == "Sign in to Graph"
        assert options.max_attempts == 3
        assert options.messages.invalid_code == "Bad {code}"
        assert options.messages.invalid_code_format == "Six digits, {attemptsLeft} left"
        assert options.messages.max_attempts_exceeded == "Out of {maxAttempts}"
        assert options.obo_connection_name == "OboConnection"
        assert options.obo_scopes == ["api://a/.default", "api://b/.default"]
        assert options.enable_sso is False

    def test_defaults(self):
        """Test unset properties keep their defaults."""
        environ = {latest("graph", "azureBotOAuthConnectionName"): "GraphConnection"}

        options = load_authorization_options(environ=environ)["graph"]

        assert options.title == DEFAULT_TITLE
        assert options.text == DEFAULT_TEXT
        assert options.max_attempts == 2
        assert options.messages.invalid_code == DEFAULT_INVALID_CODE_MESSAGE
        assert options.enable_sso is True
        assert options.obo_scopes == []

    def test_keys_are_case_insensitive(self):
        """Test prefix and property names ignore case."""
        environ = {"AGENTAPPLICATION__USERAUTHORIZATION__HANDLERS__graph__SETTINGS__AZUREBOTOAUTHCONNECTIONNAME": "Conn"}

        options = load_authorization_options(environ=environ)

        assert options["graph"].azure_bot_oauth_connection_name == "Conn"

    def test_multiple_handlers_keep_order(self):
        """Test every configured handler is returned."""
        environ = {
            latest("graph", "azureBotOAuthConnectionName"): "GraphConnection",
            latest("github", "azureBotOAuthConnectionName"): "GitHubConnection",
        }

        assert list(load_authorization_options(environ=environ)) == ["graph", "github"]

    def test_whitespace_scopes(self):
        """Test scopes without commas split on whitespace."""
        environ = {
            latest("agentic", "type"): "AgenticUserAuthorization",
            latest("agentic", "scopes"): "User.Read  Mail.Read",
        }

        options = load_authorization_options(environ=environ)["agentic"]

        assert options.type == HandlerTypes.AGENTIC
        assert options.scopes == ["User.Read", "Mail.Read"]

    def test_blank_values_ignored(self):
        """Test blank environment values do not override defaults."""
        environ = {
            latest("graph", "azureBotOAuthConnectionName"): "GraphConnection",
            latest("graph", "title"): "   ",
        }

        assert load_authorization_options(environ=environ)["graph"].title == DEFAULT_TITLE

    def test_invalid_retry_max_falls_back(self):
        """Test a non-numeric retry max uses the default."""
        environ = {
            latest("graph", "azureBotOAuthConnectionName"): "GraphConnection",
            latest("graph", "invalidSignInRetryMax"): "many",
        }

        assert load_authorization_options(environ=environ)["graph"].max_attempts == 2

    def test_no_configuration(self):
        """Test an empty environment yields no handlers."""
        assert load_authorization_options(environ={}) == {}


class TestLegacyFormat:
    """Tests for the deprecated <id>_<prop> format."""

    def test_reads_legacy_names(self, caplog):
        """Test legacy names are applied and reported as deprecated."""
        environ = {
            "graph_connectionName": "LegacyConnection",
            "graph_connectionTitle": "Legacy title",
            "graph_maxAttempts": "4",
            "graph_messages_invalidCode": "Legacy bad code",
            "graph_obo_scopes": "api://legacy/.default",
        }

        with caplog.at_level(logging.WARNING):
            options = load_authorization_options({"graph": {}}, environ=environ)["graph"]

        assert options.azure_bot_oauth_connection_name == "LegacyConnection"
        assert options.title == "Legacy title"
        assert options.max_attempts == 4
        assert options.messages.invalid_code == "Legacy bad code"
        assert options.obo_scopes == ["api://legacy/.default"]
        assert "azureBotOAuthConnectionName" in caplog.text

    def test_legacy_requires_runtime_id(self):
        """Test legacy variables are read only for handlers declared at runtime."""
        environ = {"graph_connectionName": "LegacyConnection"}

        assert load_authorization_options(environ=environ) == {}

    def test_latest_overrides_legacy(self):
        """Test the latest format wins over legacy for the same setting."""
        environ = {
            "graph_connectionName": "LegacyConnection",
            latest("graph", "azureBotOAuthConnectionName"): "LatestConnection",
        }

        options = load_authorization_options({"graph": {}}, environ=environ)["graph"]

        assert options.azure_bot_oauth_connection_name == "LatestConnection"


class TestRuntimeOptions:
    """Tests for options passed in code."""

    def test_runtime_overrides_environment(self, caplog):
        """Test runtime settings win per setting and a warning is logged."""
        environ = {
            latest("graph", "azureBotOAuthConnectionName"): "EnvConnection",
            latest("graph", "title"): "Env title",
        }

        with caplog.at_level(logging.WARNING):
            options = load_authorization_options(
                {"graph": {"azureBotOAuthConnectionName": "RuntimeConnection"}}, environ=environ
            )["graph"]

        assert options.azure_bot_oauth_connection_name == "RuntimeConnection"
        assert options.title == "Env title"
        assert "Runtime configuration takes precedence" in caplog.text

    def test_nested_and_snake_case_keys(self):
        """Test nested messages and obo settings are flattened."""
        options = load_authorization_options(
            {
                "graph": {
                    "azure_bot_oauth_connection_name": "GraphConnection",
                    "messages": {"invalidCodeFormat": "Six digits please"},
                    "obo": {"connection": "OboConnection", "scopes": ["api://a/.default"]},
                    "enable_sso": False,
                }
            },
            environ={},
        )["graph"]

        assert options.azure_bot_oauth_connection_name == "GraphConnection"
        assert options.messages.invalid_code_format == "Six digits please"
        assert options.obo_connection_name == "OboConnection"
        assert options.obo_scopes == ["api://a/.default"]
        assert options.enable_sso is False

    def test_runtime_handler_ids_match_environment_ignoring_case(self):
        """Test runtime and environment ids are merged case-insensitively."""
        environ = {latest("GRAPH", "title"): "Env title"}

        options = load_authorization_options({"graph": {"connectionName": "Conn"}}, environ=environ)

        assert list(options) == ["graph"]
        assert options["graph"].title == "Env title"


class TestHandlerType:
    """Tests for handler type normalization."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("azurebotuserauthorization", HandlerTypes.AZURE_BOT),
            ("AgenticUserAuthorization", HandlerTypes.AGENTIC),
            ("agentic", HandlerTypes.AGENTIC),
            ("connectoruserauthorization", HandlerTypes.CONNECTOR_USER),
        ],
    )
    def test_type_spellings(self, raw, expected):
        """Test accepted type spellings normalize to the canonical name."""
        options = load_authorization_options({"h1": {"type": raw, "scopes": "s"}}, environ={})

        assert options["h1"].type == expected

    def test_deprecated_agentic_warns(self, caplog):
        """Test the short agentic type is flagged as deprecated."""
        with caplog.at_level(logging.WARNING):
            load_authorization_options({"h1": {"type": "agentic"}}, environ={})

        assert "deprecated" in caplog.text

    def test_unsupported_type_raises(self):
        """Test an unknown type names the supported ones."""
        with pytest.raises(AuthorizationConfigurationError, match="Unsupported authorization handler type"):
            load_authorization_options({"h1": {"type": "Custom"}}, environ={})


class TestHostSettings:
    """Tests for sample host settings."""

    def test_reads_environment(self, monkeypatch, tmp_path):
        """Test log level and handler ids are read from the environment."""
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("AUTH_HANDLER_IDS", "graph, github ,")
        env_file = tmp_path / ".env"
        env_file.write_text("")

        settings = load_host_settings(str(env_file))

        assert settings.log_level == "DEBUG"
        assert settings.auth_handler_ids == ["graph", "github"]
        assert isinstance(settings.agents_sdk_config, dict)
