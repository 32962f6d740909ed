"""FastAPI application factory."""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Union

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from opencode_bridge import __version__
from opencode_bridge.adapters.base import ChatAdapter
from opencode_bridge.adapters.telegram import TelegramAdapter
from opencode_bridge.agent.base import AgentClient
from opencode_bridge.agent.client import OpenCodeClient
from opencode_bridge.config import BridgeConfig, load_config_from_env
from opencode_bridge.errors import BridgeError
from opencode_bridge.server.middleware.logging import RequestLoggingMiddleware
from opencode_bridge.server.models.responses import ErrorDetail, ErrorResponse
from opencode_bridge.server.routes.health import create_health_router
from opencode_bridge.server.routes.sessions import create_sessions_router
from opencode_bridge.sessions.manager import SessionManager
from opencode_bridge.state.database import DatabaseManager

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[BridgeConfig] = None,
    agent_client: Optional[AgentClient] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    When called without arguments (e.g. via uvicorn --factory), loads
    configuration from environment variables.  If a Telegram bot token is
    configured the bot polls inside the same process and shares the
    session registry with the HTTP routes.
    """
    if config is None:
        config = load_config_from_env()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    db_manager = DatabaseManager(config.db_path)
    client = agent_client or OpenCodeClient(
        config.agent.base_url, timeout=config.agent.request_timeout,
    )
    manager = SessionManager(client, db_manager, config.sessions)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await db_manager.initialize()
        logger.info("Database initialized at %s", config.db_path)
        manager.start_reaper()

        bot: Optional[ChatAdapter] = None
        if config.telegram.bot_token:
            bot = TelegramAdapter(config, manager)
            await bot.start()
            logger.info("Telegram bot polling")
        else:
            logger.info("Telegram bot disabled (no TELEGRAM_BOT_TOKEN)")
        app.state.bot = bot

        yield

        if bot is not None:
            await bot.stop()
        await manager.shutdown()
        if agent_client is None:
            await client.aclose()
        await db_manager.close()

    app = FastAPI(
        title="OpenCode Chat Bridge",
        description="Relays chat conversations to OpenCode agent sessions",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.manager = manager
    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(BridgeError, _bridge_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(ValidationError, _validation_error_handler)
    app.include_router(create_health_router(config, manager))
    app.include_router(create_sessions_router(manager, config.sessions.projects_dir))
    return app


async def _bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    response = ErrorResponse(error=ErrorDetail(code=exc.error_code, message=exc.message, details=exc.details))
    return JSONResponse(status_code=exc.status_code, content=response.model_dump())


async def _validation_error_handler(
    request: Request, exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    response = ErrorResponse(error=ErrorDetail(code="INVALID_FORMAT", message="Request validation failed", details={"validation_errors": errors}))
    return JSONResponse(status_code=400, content=response.model_dump())
