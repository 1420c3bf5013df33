from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import uuid4

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from fastapi import WebSocket, WebSocketDisconnect

from erp_api.core.deps import resolve_user_from_token
from erp_api.core.errors import AuthError, ERPError, RateLimited
from erp_api.core.logging import configure_logging, request_context
from erp_api.core.ratelimit import SCOPE_GENERAL, rate_limit
from erp_api.core.settings import get_app_settings
from erp_api.db.run_migrations import main as run_alembic
from erp_api.db.seed import seed_all
from erp_api.db.session import dispose_engine, session_scope
from erp_api.schemas.common import ErrorResponse, MessageResponse
from erp_api.services.realtime import TOPICS, broadcast_manager

# Routers
from erp_api.api.routes.auth import router as auth_router
from erp_api.api.routes.users import router as users_router
from erp_api.api.routes.catalog import router as catalog_router
from erp_api.api.routes.inventory import router as inventory_router
from erp_api.api.routes.production import router as production_router

settings = get_app_settings()

# Logging is configured before any module logger emits
configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "Health", "description": "Liveness probe."},
    {"name": "Auth", "description": "Registration, login and token endpoints."},
    {"name": "Users", "description": "User administration endpoints."},
    {"name": "Catalog", "description": "Categories, products and bills of materials."},
    {"name": "Production", "description": "Production orders and their lifecycle."},
    {"name": "Inventory", "description": "Inventory items, stock transactions and valuation."},
    {"name": "WebSocket", "description": "Real-time event stream usage."},
]

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    openapi_tags=openapi_tags,
)

# Browsers reject credentialed requests to a wildcard origin
cors_allow_credentials = settings.CORS_ALLOW_CREDENTIALS
if settings.CORS_ORIGINS == ["*"] and cors_allow_credentials:
    logger.warning("CORS_ALLOW_CREDENTIALS=True with '*' origins is not permitted; disabling credentials.")
    cors_allow_credentials = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """
    Enrich request context with a correlation id for logging and error responses.
    Adds 'X-Correlation-ID' to every response and logs the request duration.
    """
    corr = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid4())
    request.state.correlation_id = corr

    with request_context(corr):
        started = time.perf_counter()
        logger.info("Incoming request %s %s", request.method, request.url.path)
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Completed %s %s status=%d duration=%.1fms",
            request.method, request.url.path, response.status_code, duration_ms,
        )
    response.headers["X-Correlation-ID"] = corr
    return response


def _build_error_response(
    request: Request,
    status_code: int,
    error_type: str,
    message: str,
    details: Any | None = None,
    headers: Dict[str, str] | None = None,
) -> JSONResponse:
    """Serialize an ErrorResponse, echoing the correlation id as a header."""
    err = ErrorResponse(
        error=message,
        type=error_type,
        details=jsonable_encoder(details) if details is not None else None,
        correlation_id=getattr(request.state, "correlation_id", None),
        path=request.url.path,
        method=request.method,
        timestamp=datetime.now(tz=timezone.utc),
    )
    response = JSONResponse(status_code=status_code, content=err.model_dump(mode="json"), headers=headers)
    if err.correlation_id:
        response.headers["X-Correlation-ID"] = err.correlation_id
    return response


@app.exception_handler(ERPError)
async def erp_error_handler(request: Request, exc: ERPError):
    """
    Map domain errors to the error envelope with their own status code.
    """
    if exc.status_code >= 500:
        logger.error("Domain error %s: %s", exc.error_type, exc.message)
    headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimited) else None
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type=exc.error_type,
        message=exc.message,
        details=exc.details,
        headers=headers,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Framework HTTP errors (unknown route, wrong method) in the same envelope as domain errors.
    """
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP Error"
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type="http_error",
        message=str(detail),
        details=None if isinstance(exc.detail, str) else exc.detail,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Request body/query validation errors are client errors: 400 with the field issues.
    """
    details = [
        {
            "field": ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return _build_error_response(
        request=request,
        status_code=400,
        error_type="validation_error",
        message="Validation failed",
        details=details,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Anything unexpected becomes a 500 envelope; the traceback goes to the log only.
    """
    logger.exception("Unhandled error processing request")
    return _build_error_response(
        request=request,
        status_code=500,
        error_type="internal_error",
        message="An unexpected error occurred",
        details=None,
    )


@app.on_event("startup")
async def on_startup() -> None:
    """
    Bring the schema to head and optionally seed demo data.

    Both steps are controlled by RUN_MIGRATIONS_ON_STARTUP and AUTO_SEED; a failure is logged and the app still starts.
    """
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            logger.info("Running Alembic migrations: upgrade head")
            # Alembic's env.py drives its own event loop, so it runs off the server loop.
            await asyncio.to_thread(run_alembic, ["upgrade", "head"])
            logger.info("Migrations completed.")
        except Exception as exc:
            logger.exception("Migration step failed: %s", exc)
            # a database that is not up yet must not keep the API down

    if settings.AUTO_SEED:
        try:
            logger.info("Running database seeding...")
            await seed_all()
            logger.info("Seeding completed.")
        except Exception as exc:
            logger.exception("Seeding step failed: %s", exc)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    """Release pooled database connections."""
    await dispose_engine()


# Every REST route lives under /api and counts against the general rate limit
api = APIRouter(prefix="/api", dependencies=[Depends(rate_limit(SCOPE_GENERAL))])


# PUBLIC_INTERFACE
@api.get(
    "/health",
    response_model=MessageResponse,
    summary="Health Check",
    tags=["Health"],
)
def health_check() -> MessageResponse:
    """
    Liveness probe; does not touch the database.

    Returns:
        MessageResponse with "Healthy".
    """
    return MessageResponse(message="Healthy")


# PUBLIC_INTERFACE
@api.get(
    "/websocket-info",
    response_model=Dict[str, Any],
    summary="WebSocket Usage Information",
    description="Connection details for the real-time event stream, which is not part of the OpenAPI schema.",
    tags=["WebSocket"],
)
def websocket_info() -> Dict[str, Any]:
    """Describe how to connect to the WebSocket endpoint in this service."""
    return {
        "path": "/ws/events",
        "query": {"token": "access JWT", "topics": f"comma separated subset of {', '.join(TOPICS)} (default: all)"},
        "messages": {
            "server_to_client": [
                "production_order.created",
                "production_order.updated",
                "production_order.status_changed",
                "production_order.deleted",
                "inventory.transaction",
                "inventory.low_stock",
            ],
            "client_to_server": ["ping"],
        },
        "format": "{ type: string, payload: object, at: ISO-8601, user_id?: string }",
    }


api.include_router(auth_router)
api.include_router(users_router)
api.include_router(catalog_router)
api.include_router(production_router)
api.include_router(inventory_router)

app.include_router(api)


# PUBLIC_INTERFACE
@app.websocket("/ws/events")
async def ws_events(websocket: WebSocket):
    """
    WebSocket endpoint pushing production and inventory events.

    Security:
      - Query param 'token' must be a valid access JWT of an active user.
    Query Parameters:
      - topics: optional comma separated subset of 'production,inventory'
    Messages:
      - Server -> Client: WsEnvelope JSON objects
      - Client -> Server: 'ping' answered with 'pong'; other messages ignored.
    """
    await websocket.accept()
    try:
        async with session_scope() as session:
            await resolve_user_from_token(session, websocket.query_params.get("token"))
    except AuthError as exc:
        logger.info("WebSocket rejected: %s", exc.message)
        await websocket.close(code=4401)
        return

    requested = websocket.query_params.get("topics")
    topics = [t for t in (requested.split(",") if requested else TOPICS) if t in TOPICS] or list(TOPICS)
    await broadcast_manager.connect(topics, websocket)

    try:
        while True:
            msg = await websocket.receive_text()
            if msg and msg.lower() == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        await broadcast_manager.disconnect(topics, websocket)
    except Exception:
        logger.exception("Error on ws_events connection")
        await broadcast_manager.disconnect(topics, websocket)
        await websocket.close()
