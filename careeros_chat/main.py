from contextlib import asynccontextmanager
from functools import partial
from typing import Optional
import logging

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from careeros_chat.config import Settings, settings as default_settings
from careeros_chat.logging_config import setup_logging
from careeros_chat.api.v1.router import api_router
from careeros_chat.services.message_store import create_message_store
from careeros_chat.utils.exceptions import APIException, api_exception_handler, generic_exception_handler
from careeros_chat.utils.security import verify_ws_token
from careeros_chat.websocket.handler import websocket_endpoint
from careeros_chat.websocket.relay import ChatRelay

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create FastAPI application"""
    settings = settings or default_settings
    setup_logging(settings.log_level, settings.log_file)

    relay = ChatRelay(
        send_queue_size=settings.send_queue_size,
        overflow_policy=settings.send_queue_overflow,
        token_verifier=partial(verify_ws_token, settings=settings) if settings.ws_require_token else None,
    )
    message_store = create_message_store(
        settings.message_store_backend,
        settings.redis_url,
        settings.message_history_limit,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        logger.info("Starting %s (store=%s)...", settings.app_name, settings.message_store_backend)
        await message_store.connect()

        yield

        logger.info("Shutting down...")
        await relay.close_all()
        await message_store.close()

    app = FastAPI(
        title=settings.app_name,
        description="CareerOS expert network chat relay",
        version="1.0.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # Store debug setting for exception handlers
    app.debug = settings.debug
    app.state.settings = settings
    app.state.relay = relay
    app.state.message_store = message_store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "app": settings.app_name,
            "connections": relay.connection_count,
            "rooms": relay.room_count,
        }

    @app.websocket(settings.ws_path)
    async def ws_expert_chat(websocket: WebSocket):
        """WebSocket endpoint for expert chat rooms"""
        await websocket_endpoint(
            websocket,
            relay,
            idle_timeout=settings.idle_timeout_seconds,
            pong_timeout=settings.pong_timeout_seconds,
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "careeros_chat.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
        ws_ping_interval=default_settings.ws_ping_interval,
        ws_ping_timeout=default_settings.ws_ping_timeout,
    )
