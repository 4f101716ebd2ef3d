"""
Name constants shared by the authorization handlers.
"""


class HandlerTypes:
    """Canonical handler type discriminators used in configuration."""

    AZURE_BOT = "AzureBotUserAuthorization"
    AGENTIC = "AgenticUserAuthorization"
    CONNECTOR_USER = "ConnectorUserAuthorization"


class InvokeNames:
    """Invoke activity names raised by channels during sign-in."""

    TOKEN_EXCHANGE = "signin/tokenExchange"
    VERIFY_STATE = "signin/verifyState"
    FAILURE = "signin/failure"


class SessionCategories:
    """Category recorded on a persisted sign-in session."""

    SIGN_IN = "signin"
    TOKEN_EXCHANGE = "tokenExchange"
    MAGIC_CODE = "magicCode"


CANCELLED_BY_USER = "CancelledByUser"
OBO_AUDIENCE_PREFIX = "api://"
MAX_REVALIDATIONS = 3
