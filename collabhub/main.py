"""FastAPI application entry point."""

import asyncio
import json
import logging
import traceback

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import TimeoutError as SQLAlchemyTimeoutError

from . import __version__
from .config import settings

# Configure logging to show errors
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from contextlib import asynccontextmanager

from .database import async_session_maker, check_connection
from .exceptions import ValidationError
from .routers import chat_router
from .websocket import ChatService, MessageType, create_chat_service

# Seconds to wait for any frame after a server ping before dropping the socket
PING_REPLY_TIMEOUT = 10


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""
    # Startup
    logger.info("Creating chat service...")
    app.state.chat_service = create_chat_service(async_session_maker)
    logger.info("Chat service ready")

    yield

    # Shutdown
    logger.info("Stopping chat service...")
    await app.state.chat_service.shutdown()
    logger.info("Chat service stopped")


# Create FastAPI application
app = FastAPI(
    title="Collabhub API",
    description="Project collaboration backend with real-time project chat",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Database pool exhaustion handler - return 503 so clients can retry
@app.exception_handler(SQLAlchemyTimeoutError)
async def db_pool_exhausted_handler(request: Request, exc: SQLAlchemyTimeoutError):
    """Handle database connection pool exhaustion with 503 Service Unavailable."""
    logger.warning(
        f"Database pool exhausted on {request.method} {request.url}: {exc}"
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "detail": "Service temporarily unavailable. Please retry.",
            "retry_after": 5,
        },
        headers={"Retry-After": "5"},
    )


# Chat endpoints report malformed bodies like any other ValidationError (400)
@app.exception_handler(RequestValidationError)
async def chat_validation_handler(request: Request, exc: RequestValidationError):
    """Return 400 for invalid chat request bodies and parameters."""
    if not request.url.path.startswith(chat_router.prefix):
        return await request_validation_exception_handler(request, exc)

    fields = ", ".join(
        ".".join(str(part) for part in err["loc"][1:]) or str(err["loc"][0])
        for err in exc.errors()
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": f"Invalid or missing fields: {fields}"},
    )


# Global exception handler to log errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log all unhandled exceptions with full traceback."""
    logger.error(f"Unhandled exception on {request.method} {request.url}:")
    logger.error(f"Exception type: {type(exc).__name__}")
    logger.error(f"Exception message: {str(exc)}")
    logger.error(f"Traceback:\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Include API routers
app.include_router(chat_router)


@app.get("/")
async def root():
    """Root endpoint - health check."""
    return {
        "status": "healthy",
        "service": "Collabhub API",
        "version": __version__,
    }


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint for monitoring."""
    chat: ChatService = request.app.state.chat_service
    database_ok = await check_connection()
    return {
        "status": "healthy" if database_ok else "degraded",
        "database": "connected" if database_ok else "unavailable",
        "websocket": {
            "connections": chat.manager.total_connections,
            "rooms": chat.manager.total_rooms,
            "typing": chat.typing.active_count,
        },
    }


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for project chat.

    Frames are JSON objects ``{"type": <event>, "data": {...}}``. A client
    joins a room with ``join-project-chat`` and then sends chat events.
    Frames are handled one at a time, in arrival order.

    Usage:
        ws://localhost:8000/ws
    """
    chat: ChatService = websocket.app.state.chat_service
    connection = await chat.manager.connect(websocket)

    try:
        while True:
            # Receive with timeout to detect stale connections
            try:
                raw_message = await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=settings.ws_receive_timeout,
                )
            except asyncio.TimeoutError:
                # No message received within timeout - send ping to verify
                try:
                    await websocket.send_json({"type": MessageType.PING.value, "data": {}})
                    raw_message = await asyncio.wait_for(
                        websocket.receive_text(),
                        timeout=PING_REPLY_TIMEOUT,
                    )
                except (asyncio.TimeoutError, WebSocketDisconnect):
                    logger.info(f"Connection timeout for user: {connection.user_id}")
                    break

            # Validate message size
            if len(raw_message) > settings.ws_max_message_size:
                logger.warning(
                    f"Message too large from user {connection.user_id}: "
                    f"{len(raw_message)} bytes (max: {settings.ws_max_message_size})"
                )
                await chat.send_error(
                    connection,
                    ValidationError(
                        f"Message exceeds maximum size of {settings.ws_max_message_size} bytes"
                    ),
                )
                continue

            # Parse JSON
            try:
                data = json.loads(raw_message)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from user {connection.user_id}")
                await chat.send_error(connection, ValidationError("Invalid JSON format"))
                continue

            await chat.route_incoming_message(connection, data)

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnect for user: {connection.user_id}")
    except Exception as e:
        logger.error(f"WebSocket exception for user {connection.user_id}: {e}")
    finally:
        await chat.disconnect(websocket)
