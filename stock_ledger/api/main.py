from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import APIRouter, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stock_ledger.api.routes.production import router as production_router
from stock_ledger.api.routes.reports import router as reports_router
from stock_ledger.api.routes.stock import router as stock_router
from stock_ledger.core.errors import ConcurrencyError, StockLedgerError
from stock_ledger.core.logging import configure_logging, correlation_id_var
from stock_ledger.core.settings import get_app_settings
from stock_ledger.db.run_migrations import main as run_alembic
from stock_ledger.db.seed import seed_all
from stock_ledger.db.session import dispose_engine
from stock_ledger.schemas.common import ErrorInfo, ErrorResponse, MessageResponse
from stock_ledger.services.realtime import broadcast_manager, stock_events

settings = get_app_settings()

configure_logging(settings.LOG_LEVEL.upper())
logger = logging.getLogger(__name__)

CORRELATION_HEADERS = ("X-Correlation-ID", "X-Request-ID")

openapi_tags = [
    {"name": "Health", "description": "Liveness check."},
    {"name": "Stock", "description": "Balances, manual store-in, stock documents and the ledger."},
    {"name": "Production", "description": "Production runs: consume material, receive output."},
    {"name": "Reports", "description": "Inventory valuation."},
    {"name": "WebSocket", "description": "Real-time balance change notifications."},
]

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    openapi_tags=openapi_tags,
)

# Browsers reject credentials with a wildcard origin
allow_credentials = settings.CORS_ALLOW_CREDENTIALS and settings.CORS_ORIGINS != ["*"]
if settings.CORS_ALLOW_CREDENTIALS and not allow_credentials:
    logger.warning("CORS credentials disabled: CORS_ORIGINS is '*'.")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=allow_credentials,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)

stock_events.subscribe(broadcast_manager.publish_balance_changes)


@app.middleware("http")
async def correlation_middleware(request: Request, call_next):
    """
    Tag the request with a correlation id: the caller's X-Correlation-ID or
    X-Request-ID, else a fresh uuid4. It appears in every log line written while
    handling the request, in error bodies, and in the X-Correlation-ID response header.
    """
    corr = next((request.headers[h] for h in CORRELATION_HEADERS if request.headers.get(h)), None) or str(uuid4())
    request.state.correlation_id = corr
    token = correlation_id_var.set(corr)
    logger.info("%s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token)
    response.headers["X-Correlation-ID"] = corr
    return response


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    corr = getattr(request.state, "correlation_id", None)
    body = ErrorResponse(
        status=status_code,
        error=ErrorInfo(type=code, message=message, details=details),
        correlation_id=corr,
        path=request.url.path,
        method=request.method,
        timestamp=datetime.now(tz=timezone.utc),
    )
    response = JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)
    if corr:
        response.headers["X-Correlation-ID"] = corr
    return response


@app.exception_handler(StockLedgerError)
async def stock_ledger_error_handler(request: Request, exc: StockLedgerError):
    """Domain errors map to their own status and code; ConcurrencyError adds Retry-After."""
    headers = {"Retry-After": "1"} if isinstance(exc, ConcurrencyError) else None
    if exc.http_status >= 500:
        logger.error("%s: %s", exc.code, exc.message)
    else:
        logger.info("Rejected: %s %s", exc.code, exc.message)
    return _error_response(request, exc.http_status, exc.code, exc.message, exc.details or None, headers)


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    if isinstance(exc.detail, str):
        return _error_response(request, exc.status_code, "http_error", exc.detail)
    return _error_response(request, exc.status_code, "http_error", "HTTP Error", exc.detail)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies or query parameters (wrong types, negative quantities): 422."""
    return _error_response(request, 422, "validation_error", "Request validation failed", exc.errors())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(request, 500, "internal_error", "An unexpected error occurred")


@app.on_event("startup")
async def on_startup() -> None:
    """Bring the schema to head, then seed sample masters when AUTO_SEED is on."""
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            # env.py runs its own event loop
            await asyncio.to_thread(run_alembic, ["upgrade", "head"])
            logger.info("Schema migrated to head")
        except Exception:
            logger.exception("Schema migration failed")

    if settings.AUTO_SEED:
        try:
            await seed_all()
        except Exception:
            logger.exception("Seeding failed")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await dispose_engine()


api_v1 = APIRouter(prefix="/api/v1")


# PUBLIC_INTERFACE
@api_v1.get("/health", response_model=MessageResponse, summary="Health Check", tags=["Health"])
def health_check() -> MessageResponse:
    """Liveness only; does not touch the database."""
    return MessageResponse(message="Healthy")


# PUBLIC_INTERFACE
@api_v1.get(
    "/websocket-info",
    response_model=Dict[str, Any],
    summary="Stock WebSocket usage",
    description="Connection details for /ws/stock, which OpenAPI cannot describe.",
    tags=["WebSocket"],
)
def websocket_info() -> Dict[str, Any]:
    return {
        "endpoints": [
            {
                "path": "/ws/stock",
                "summary": "Balance changes pushed after every committed stock write.",
                "query": ["store?"],
                "messages": {
                    "client_to_server": ["ping"],
                    "server_to_client": ["stock.balance_changed"],
                },
            }
        ],
        "message_format": "{ type: string, payload: object, at: ISO-8601, channel?: string }",
        "notes": "Without 'store' every change is delivered; with it only that store's changes.",
    }


for router in (stock_router, production_router, reports_router):
    api_v1.include_router(router)

app.include_router(api_v1)


# PUBLIC_INTERFACE
@app.websocket("/ws/stock")
async def ws_stock(websocket: WebSocket):
    """
    Stream `stock.balance_changed` messages, one per key touched by a committed write.

    `?store=<id>` narrows the stream to one store. The client may send "ping"
    and gets "pong" back; anything else is ignored.
    """
    await websocket.accept()
    topic = broadcast_manager.stock_topic(websocket.query_params.get("store"))
    await broadcast_manager.connect(topic, websocket)
    try:
        while True:
            if (await websocket.receive_text()).strip().lower() == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Stock WebSocket failed")
        await websocket.close()
    finally:
        await broadcast_manager.disconnect(topic, websocket)
