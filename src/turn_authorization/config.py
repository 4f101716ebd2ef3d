"""
Configuration loader for authorization handlers.

Merges runtime options with the two environment variable formats into one
AuthorizationHandlerOptions per handler:

    latest:  AgentApplication__UserAuthorization__Handlers__<id>__Settings__<prop>
    legacy:  <id>_<prop>   (only for handler ids present in the runtime options)

Priority per setting is runtime > latest > legacy.
"""

import logging
import os
import re
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv
from microsoft_agents.activity import load_configuration_from_env

from .constants import HandlerTypes
from .errors import AuthorizationConfigurationError
from .models.configuration import (
    DEFAULT_TEXT,
    DEFAULT_TITLE,
    AuthorizationHandlerOptions,
    AuthorizationMessages,
    HostSettings,
)

logger = logging.getLogger(__name__)

LATEST_PREFIX = "AgentApplication__UserAuthorization__Handlers__"
LATEST_SEPARATOR = "__Settings__"
LEGACY_SEPARATOR = "_"

# Normalized property name (lowercase, no separators) -> option field.
_FIELD_ALIASES = {
    "type": "type",
    "azurebotoauthconnectionname": "azure_bot_oauth_connection_name",
    "connectionname": "azure_bot_oauth_connection_name",
    "name": "azure_bot_oauth_connection_name",
    "title": "title",
    "connectiontitle": "title",
    "text": "text",
    "connectiontext": "text",
    "invalidsigninretrymax": "invalid_sign_in_retry_max",
    "maxattempts": "invalid_sign_in_retry_max",
    "invalidsigninretrymessage": "invalid_code",
    "messagesinvalidcode": "invalid_code",
    "invalidcode": "invalid_code",
    "invalidsigninretrymessageformat": "invalid_code_format",
    "messagesinvalidcodeformat": "invalid_code_format",
    "invalidcodeformat": "invalid_code_format",
    "invalidsigninretrymaxexceededmessage": "max_attempts_exceeded",
    "messagesmaxattemptsexceeded": "max_attempts_exceeded",
    "maxattemptsexceeded": "max_attempts_exceeded",
    "oboconnectionname": "obo_connection_name",
    "oboconnection": "obo_connection_name",
    "oboscopes": "obo_scopes",
    "enablesso": "enable_sso",
    "scopes": "scopes",
    "altblueprintconnectionname": "alt_blueprint_connection_name",
}

# Option field -> property name in the latest environment format.
_LATEST_NAMES = {
    "type": "type",
    "azure_bot_oauth_connection_name": "azureBotOAuthConnectionName",
    "title": "title",
    "text": "text",
    "invalid_sign_in_retry_max": "invalidSignInRetryMax",
    "invalid_code": "invalidSignInRetryMessage",
    "invalid_code_format": "invalidSignInRetryMessageFormat",
    "max_attempts_exceeded": "invalidSignInRetryMaxExceededMessage",
    "obo_connection_name": "oboConnectionName",
    "obo_scopes": "oboScopes",
    "enable_sso": "enableSso",
    "scopes": "scopes",
    "alt_blueprint_connection_name": "altBlueprintConnectionName",
}

_MESSAGE_FIELDS = ("invalid_code", "invalid_code_format", "max_attempts_exceeded")


def load_authorization_options(
    options: Optional[Mapping[str, Mapping[str, Any]]] = None,
    environ: Optional[Mapping[str, str]] = None,
    env_file: Optional[str] = None
) -> Dict[str, AuthorizationHandlerOptions]:
    """
    Load normalized handler options from runtime options and the environment.

    Args:
        options: Runtime handler options keyed by handler id. Keys may be
            camelCase, snake_case or nested (``messages``, ``obo``).
        environ: Environment to read. If None, a .env file is loaded and
            os.environ is used.
        env_file: Optional path to the .env file loaded when environ is None.

    Returns:
        Normalized options keyed by handler id, in configuration order.

    Raises:
        AuthorizationConfigurationError: If a handler type is unsupported.
    """
    if environ is None:
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()
        environ = os.environ

    runtime = {handler_id: _normalize_settings(settings or {}) for handler_id, settings in (options or {}).items()}
    latest = _read_latest(environ)
    legacy = _read_legacy(environ, list(runtime))

    handler_ids: List[str] = list(runtime)
    for handler_id in latest:
        if _find(handler_ids, handler_id) is None:
            handler_ids.append(handler_id)

    result: Dict[str, AuthorizationHandlerOptions] = {}
    for handler_id in handler_ids:
        runtime_settings = runtime.get(handler_id, {})
        latest_settings = latest.get(_find(latest, handler_id), {})
        legacy_settings = legacy.get(_find(legacy, handler_id), {})

        if runtime_settings and latest_settings:
            logger.warning(
                f"[handler:{handler_id}] Both runtime and environment configurations detected. "
                "Runtime configuration takes precedence."
            )

        merged = {**legacy_settings, **latest_settings, **runtime_settings}
        result[handler_id] = _build_options(handler_id, merged)

    return result


def _build_options(handler_id: str, settings: Dict[str, Any]) -> AuthorizationHandlerOptions:
    """Create the options dataclass from merged, parsed settings."""
    messages = AuthorizationMessages()
    for field in _MESSAGE_FIELDS:
        if settings.get(field):
            setattr(messages, field, settings[field])

    enable_sso = settings.get("enable_sso")

    return AuthorizationHandlerOptions(
        id=handler_id,
        type=_normalize_type(handler_id, settings.get("type")),
        azure_bot_oauth_connection_name=settings.get("azure_bot_oauth_connection_name"),
        title=settings.get("title") or DEFAULT_TITLE,
        text=settings.get("text") or DEFAULT_TEXT,
        invalid_sign_in_retry_max=settings.get("invalid_sign_in_retry_max"),
        messages=messages,
        obo_connection_name=settings.get("obo_connection_name"),
        obo_scopes=settings.get("obo_scopes") or [],
        enable_sso=enable_sso is not False,
        scopes=settings.get("scopes") or [],
        alt_blueprint_connection_name=settings.get("alt_blueprint_connection_name"),
    )


def _normalize_type(handler_id: str, value: Optional[str]) -> str:
    """Map accepted type spellings to the canonical handler type."""
    if value is None or not str(value).strip():
        return HandlerTypes.AZURE_BOT

    lowered = str(value).strip().lower()
    if lowered == "agentic":
        logger.warning(
            f"[handler:{handler_id}] The 'agentic' type is deprecated. "
            f"Please use '{HandlerTypes.AGENTIC}' instead."
        )
        return HandlerTypes.AGENTIC

    for handler_type in (HandlerTypes.AZURE_BOT, HandlerTypes.AGENTIC, HandlerTypes.CONNECTOR_USER):
        if lowered == handler_type.lower():
            return handler_type

    raise AuthorizationConfigurationError(
        f"[handler:{handler_id}] Unsupported authorization handler type: '{value}'. "
        f"Supported types are '{HandlerTypes.AGENTIC}', '{HandlerTypes.CONNECTOR_USER}' "
        f"and default ('{HandlerTypes.AZURE_BOT}')."
    )


def _read_latest(environ: Mapping[str, str]) -> Dict[str, Dict[str, Any]]:
    """Collect settings from the latest environment format."""
    prefix = LATEST_PREFIX.upper()
    separator = LATEST_SEPARATOR.upper()
    result: Dict[str, Dict[str, Any]] = {}

    for key, value in environ.items():
        if not value or not value.strip():
            continue

        upper_key = key.upper()
        if not upper_key.startswith(prefix):
            continue

        end = upper_key.find(separator, len(prefix))
        if end == -1:
            continue

        handler_id = key[len(prefix):end]
        prop = key[end + len(separator):]
        field = _FIELD_ALIASES.get(_normalize_key(prop))
        if not handler_id or field is None:
            continue

        stored_id = _find(result, handler_id) or handler_id
        result.setdefault(stored_id, {})[field] = _parse_value(field, value)

    return result


def _read_legacy(environ: Mapping[str, str], runtime_ids: List[str]) -> Dict[str, Dict[str, Any]]:
    """Collect settings from the legacy ``<id>_<prop>`` format."""
    prefix = LATEST_PREFIX.upper()
    result: Dict[str, Dict[str, Any]] = {}
    deprecated: List[str] = []

    for key, value in environ.items():
        if not value or not value.strip():
            continue

        upper_key = key.upper()
        if upper_key.startswith(prefix):
            continue

        handler_id = next(
            (
                runtime_id
                for runtime_id in runtime_ids
                if upper_key.startswith(f"{runtime_id.upper()}{LEGACY_SEPARATOR}")
            ),
            None,
        )
        if handler_id is None:
            continue

        prop = key[len(handler_id) + len(LEGACY_SEPARATOR):]
        field = _FIELD_ALIASES.get(_normalize_key(prop))
        if field is None:
            continue

        result.setdefault(handler_id, {})[field] = _parse_value(field, value)
        deprecated.append(
            f"  {key}= # Use {LATEST_PREFIX}{handler_id}{LATEST_SEPARATOR}{_LATEST_NAMES[field]} instead."
        )

    if deprecated:
        logger.warning(
            "Deprecated environment variables detected, update to the latest format (case-insensitive):\n"
            + "\n".join(deprecated)
        )

    return result


def _normalize_settings(settings: Mapping[str, Any]) -> Dict[str, Any]:
    """Flatten and parse a runtime settings mapping."""
    result: Dict[str, Any] = {}
    for key, value in _flatten(settings).items():
        field = _FIELD_ALIASES.get(_normalize_key(key))
        if field is None:
            logger.debug(f"Ignoring unknown authorization setting '{key}'")
            continue
        parsed = _parse_value(field, value)
        if parsed is not None:
            result[field] = parsed
    return result


def _flatten(settings: Mapping[str, Any], parent: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in settings.items():
        name = f"{parent}_{key}" if parent else str(key)
        if isinstance(value, Mapping):
            flat.update(_flatten(value, name))
        else:
            flat[name] = value
    return flat


def _normalize_key(key: str) -> str:
    return re.sub(r"[_\-.]", "", key).lower()


def _parse_value(field: str, value: Any) -> Any:
    """Convert a raw setting to the type of its option field."""
    if value is None:
        return None
    if field in ("scopes", "obo_scopes"):
        return _parse_scopes(value)
    if field == "invalid_sign_in_retry_max":
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid sign-in retry max '{value}'")
            return None
    if field == "enable_sso":
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() != "false"
    return value if isinstance(value, str) else str(value)


def _parse_scopes(value: Any) -> List[str]:
    """Split scopes on commas when present, otherwise on whitespace."""
    if isinstance(value, (list, tuple)):
        return [str(scope).strip() for scope in value if str(scope).strip()]

    text = str(value)
    if "," in text:
        return [scope.strip() for scope in text.split(",") if scope.strip()]
    return text.split()


def _find(keys, handler_id: str) -> Optional[str]:
    """Find a key matching handler_id case-insensitively."""
    lowered = handler_id.lower()
    return next((key for key in keys if key.lower() == lowered), None)


def load_host_settings(env_file: Optional[str] = None) -> HostSettings:
    """
    Load sample host settings from environment variables.

    Args:
        env_file: Optional path to .env file. If None, loads .env from the current directory.

    Returns:
        Host settings, including the Agents SDK connection configuration.
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    handler_ids = os.getenv("AUTH_HANDLER_IDS", "")

    return HostSettings(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        auth_handler_ids=[handler_id.strip() for handler_id in handler_ids.split(",") if handler_id.strip()],
        agents_sdk_config=load_configuration_from_env(os.environ)
    )
