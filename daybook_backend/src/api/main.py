from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import get_basic_auth_dependency
from .config import AppConfig, get_config
from .errors import NotFoundError, StorageUnavailableError
from .evaluator import ReminderEvaluator
from .notifications import NotificationPort, OutboxNotificationPort
from .periodic import start_periodic_task, stop_periodic_tasks
from .repositories import EntityStore, build_store
from .routers import expenses as expenses_router
from .routers import notes as notes_router
from .routers import notifications as notifications_router
from .routers import reminders as reminders_router
from .routers import settings as settings_router

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "notes", "description": "Plain, checklist and reminder notes."},
    {"name": "expenses", "description": "Expense tracking with date-range queries and totals."},
    {"name": "reminders", "description": "Scheduled reminders and the due-reminder check."},
    {"name": "settings", "description": "The single user settings record."},
    {"name": "notifications", "description": "Notifications queued for the browser to display."},
]


def _jsonable_errors(exc: RequestValidationError) -> List[Any]:
    # pydantic error contexts may hold exception instances
    return jsonable_encoder(exc.errors(), custom_encoder={Exception: str})


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


# PUBLIC_INTERFACE
def create_app(
    config: Optional[AppConfig] = None,
    store: Optional[EntityStore] = None,
    notifier: Optional[NotificationPort] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    The store, notification port and reminder evaluator are created here once
    and shared by every request through app.state. When reminder checks are
    enabled, the lifespan runs the evaluator every
    config.reminder_check_interval_seconds and cancels it on shutdown.
    """
    cfg = config or get_config()
    configure_logging(cfg.log_level)

    store = store or build_store(cfg)
    notifier = notifier or OutboxNotificationPort(maxsize=cfg.notification_outbox_size)
    evaluator = ReminderEvaluator(store, notifier)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if cfg.reminder_check_enabled:
            start_periodic_task(
                app,
                name="reminder-check",
                interval_seconds=cfg.reminder_check_interval_seconds,
                wait_first=True,
                func=evaluator.run_tick,
            )
        try:
            yield
        finally:
            await stop_periodic_tasks(app)

    app = FastAPI(
        title="Daybook Backend",
        description="Notes, expenses, reminders and settings for a personal productivity app.",
        version="0.1.0",
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.store = store
    app.state.notifier = notifier
    app.state.evaluator = evaluator

    # Configure CORS (CORS_ALLOW_ORIGINS), with '*' fallback
    allow_all = (cfg.cors_allow_origins == ["*"]) or (len(cfg.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else cfg.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """
        Return a consistent JSON structure for request validation errors.

        Response format:
            {
                "error": "ValidationError",
                "detail": [... pydantic/fastapi error details ...],
                "message": "Request validation failed"
            }
        """
        return JSONResponse(
            status_code=422,
            content={
                "error": "ValidationError",
                "message": "Request validation failed",
                "detail": _jsonable_errors(exc),
            },
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(StorageUnavailableError)
    async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError) -> JSONResponse:
        logger.error("storage unavailable on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=503,
            content={"error": "StorageUnavailable", "detail": "Storage is temporarily unavailable"},
        )

    # PUBLIC_INTERFACE
    @app.get("/", summary="Health Check", tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health and the storage backend in use.
        """
        return {"message": "Healthy", "backend": store.backend}

    auth_dep = get_basic_auth_dependency(cfg)
    for module in (notes_router, expenses_router, reminders_router, settings_router, notifications_router):
        app.include_router(module.router, dependencies=[Depends(auth_dep)])

    return app


app = create_app()
