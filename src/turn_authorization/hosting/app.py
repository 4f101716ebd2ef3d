"""
FastAPI host for the sign-in sample agent.

Uses the M365 Agents SDK pattern with AgentApplication, CloudAdapter,
and start_agent_process for Activity Protocol support.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from microsoft_agents.hosting.core import AgentApplication, TurnState
from microsoft_agents.hosting.fastapi import (
    CloudAdapter,
    start_agent_process,
    JwtAuthorizationMiddleware,
)
from microsoft_agents.authentication.msal import MsalConnectionManager

from ..config import load_host_settings
from ..models.configuration import HostSettings
from .agent import create_sign_in_agent

logger = logging.getLogger(__name__)

AGENT_APP: AgentApplication[TurnState] = None
ADAPTER: CloudAdapter = None
HOSTSETTINGS: HostSettings = load_host_settings()
CONNECTION_MANAGER: MsalConnectionManager = MsalConnectionManager(**HOSTSETTINGS.agents_sdk_config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup and shutdown.

    Args:
        app: FastAPI application instance.
    """
    global AGENT_APP, ADAPTER
    logger.info("Starting sign-in agent...")

    try:
        AGENT_APP = create_sign_in_agent(settings=HOSTSETTINGS, connection_manager=CONNECTION_MANAGER)
        ADAPTER = AGENT_APP.adapter
        logger.info("Sign-in agent initialized with M365 Agents SDK")
        logger.info(f"  - Auth handlers: {HOSTSETTINGS.auth_handler_ids or 'all configured'}")
        logger.info(f"  - Log level: {HOSTSETTINGS.log_level}")
    except Exception as e:
        logger.error(f"Failed to initialize sign-in agent: {e}")
        raise

    yield

    logger.info("Shutting down sign-in agent...")


app = FastAPI(
    title="Turn Authorization Sample",
    description="Agent that signs users in with the turn authorization engine",
    version="1.0.0",
    lifespan=lifespan
)
app.state.agent_configuration = (
    CONNECTION_MANAGER.get_default_connection_configuration()
)

app.add_middleware(JwtAuthorizationMiddleware)


@app.get("/api/messages")
async def health_check():
    """
    Health check endpoint.

    Returns:
        Status information.
    """
    return {
        "status": "healthy",
        "service": "Turn Authorization Sample",
        "sdk": "Microsoft Agents SDK for Python"
    }


@app.post("/api/messages")
async def messages_handler(request: Request):
    """
    Process incoming activities using the Activity Protocol.

    Args:
        request: FastAPI request object containing an Activity Protocol message.

    Returns:
        Activity Protocol response.
    """
    return await start_agent_process(
        request,
        AGENT_APP,
        ADAPTER,
    )
