"""FastAPI application entry point."""

import asyncio
import json
import logging
import traceback
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import TimeoutError as SQLAlchemyTimeoutError

from .config import settings
from .database import check_database
from .routers import (
    activity_router,
    auth_router,
    comments_router,
    documents_router,
    notes_router,
    notifications_router,
    project_members_router,
    projects_router,
    search_router,
    tasks_router,
    time_entries_router,
    users_router,
)
from .services.auth_service import decode_access_token
from .services.redis_service import redis_service
from .websocket import check_room_access, handle_presence_disconnect, manager, route_incoming_message

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# WebSocket connection tuning
RECEIVE_TIMEOUT = 45  # seconds without a client message before probing
SERVER_PING_INTERVAL = 30
TOKEN_REVALIDATION_INTERVAL = 1800
RATE_LIMIT_MESSAGES = 100  # per RATE_LIMIT_WINDOW seconds
RATE_LIMIT_WINDOW = 10


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect Redis for cross-worker fan-out; run single-worker without it."""
    logger.info("Connecting to Redis...")
    try:
        await redis_service.connect()
        await manager.initialize_redis()
        await redis_service.start_listening()
        logger.info("Redis pub/sub listener started")
    except Exception as e:
        if settings.redis_required:
            logger.error(f"Redis connection failed and REDIS_REQUIRED=true: {e}")
            raise RuntimeError(
                f"Redis is required for multi-worker deployment but connection failed: {e}"
            )
        logger.warning(f"Redis connection failed, running in single-worker mode: {e}")

    yield

    logger.info("Disconnecting from Redis...")
    await redis_service.disconnect()


app = FastAPI(
    title="Ascend API",
    description="Projects, tasks, notes and time tracking with a realtime change feed",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Database pool exhaustion: 503 so clients retry
@app.exception_handler(SQLAlchemyTimeoutError)
async def db_pool_exhausted_handler(request: Request, exc: SQLAlchemyTimeoutError):
    logger.warning(f"Database pool exhausted on {request.method} {request.url}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "detail": "Service temporarily unavailable. Please retry.",
            "retry_after": 5,
        },
        headers={"Retry-After": "5"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log unhandled exceptions with full traceback."""
    logger.error(
        f"Unhandled exception on {request.method} {request.url}: "
        f"{type(exc).__name__}: {exc}\n{traceback.format_exc()}"
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


app.include_router(auth_router)
app.include_router(users_router)
app.include_router(projects_router)
app.include_router(project_members_router)
app.include_router(tasks_router)
app.include_router(notes_router)
app.include_router(documents_router)
app.include_router(comments_router)
app.include_router(notifications_router)
app.include_router(time_entries_router)
app.include_router(activity_router)
app.include_router(search_router)


@app.get("/")
async def root():
    return {
        "status": "healthy",
        "service": "Ascend API",
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    database_ok = await check_database()
    return {
        "status": "healthy" if database_ok else "degraded",
        "database": "healthy" if database_ok else "unavailable",
        "redis": await redis_service.health_check(),
        "websocket": {
            "connections": manager.total_connections,
            "rooms": manager.total_rooms,
        },
    }


def _user_id_from_token(token: str | None) -> UUID | None:
    if not token:
        return None
    token_data = decode_access_token(token)
    if token_data is None or token_data.user_id is None:
        return None
    try:
        return UUID(token_data.user_id)
    except ValueError:
        return None


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str | None = None):
    """
    Realtime change feed.

    Authenticate with ``?token=<jwt>`` (browsers cannot set headers on the
    handshake). The connection starts in its ``user:<id>`` room; send
    ``{"type": "join_room", "data": {"room_id": "project:<id>"}}`` to
    follow a project. Send ``{"type": "presence", "data": {"room_id": ...}}``
    every 15 seconds while viewing a project or task to appear in its
    viewer list.
    """
    user_id = _user_id_from_token(token)
    if user_id is None:
        logger.debug("WebSocket connection with missing or invalid token")
        await websocket.close(code=4001, reason="Authentication required")
        return

    connection = await manager.connect(websocket, user_id)
    if connection is None:
        return

    message_timestamps: list[float] = []
    token_valid = True
    loop = asyncio.get_running_loop()
    last_token_check = loop.time()

    async def server_ping_task():
        """Periodic pings; closes the socket once the token expires."""
        nonlocal token_valid, last_token_check
        try:
            while True:
                await asyncio.sleep(SERVER_PING_INTERVAL)
                try:
                    await websocket.send_json({"type": "ping", "data": {}})

                    now = loop.time()
                    if now - last_token_check > TOKEN_REVALIDATION_INTERVAL:
                        if _user_id_from_token(token) is None:
                            logger.warning(f"Token expired for user {user_id}, closing connection")
                            token_valid = False
                            await websocket.send_json({
                                "type": "error",
                                "data": {"error": "TOKEN_EXPIRED", "message": "Session expired, please re-authenticate"},
                            })
                            await websocket.close(code=4001, reason="Token expired")
                            break
                        last_token_check = now
                except Exception:
                    break
        except asyncio.CancelledError:
            pass

    ping_task = asyncio.create_task(server_ping_task())

    try:
        while token_valid:
            try:
                raw_message = await asyncio.wait_for(websocket.receive_text(), timeout=RECEIVE_TIMEOUT)
            except asyncio.TimeoutError:
                try:
                    await websocket.send_json({"type": "ping", "data": {}})
                    raw_message = await asyncio.wait_for(websocket.receive_text(), timeout=10)
                except (asyncio.TimeoutError, Exception):
                    logger.info(f"Connection timeout for user: {user_id}")
                    break

            now = loop.time()
            message_timestamps[:] = [t for t in message_timestamps if now - t < RATE_LIMIT_WINDOW]
            if len(message_timestamps) >= RATE_LIMIT_MESSAGES:
                logger.warning(f"Rate limit exceeded for user {user_id}")
                await websocket.send_json({
                    "type": "error",
                    "data": {"error": "RATE_LIMIT", "message": "Too many messages, slow down"},
                })
                continue
            message_timestamps.append(now)

            if len(raw_message) > settings.ws_max_message_size:
                await websocket.send_json({
                    "type": "error",
                    "data": {
                        "error": "MESSAGE_TOO_LARGE",
                        "message": f"Message exceeds maximum size of {settings.ws_max_message_size} bytes",
                    },
                })
                continue

            try:
                data = json.loads(raw_message)
            except json.JSONDecodeError:
                await websocket.send_json({
                    "type": "error",
                    "data": {"error": "INVALID_JSON", "message": "Invalid JSON format"},
                })
                continue

            await route_incoming_message(connection, data, room_authorizer=check_room_access)

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnect for user: {user_id}")
    except Exception as e:
        logger.error(f"WebSocket exception for user {user_id}: {e}")
    finally:
        ping_task.cancel()
        try:
            await ping_task
        except asyncio.CancelledError:
            pass
        await manager.disconnect(websocket)
        await handle_presence_disconnect(connection)
