import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from assistline.apps.api.routers import assistant_requests, system
from assistline.core.error_handler import GracefulShutdown, setup_global_exception_handler
from assistline.core.logging import configure_logging
from assistline.core.settings import get_settings
from assistline.domain.assignment_service import AssignmentStateMachine
from assistline.domain.errors import (
    AssistantRequestError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from assistline.domain.interfaces import (
    AppointmentSnapshotSource,
    AvailabilityProvider,
    LocationDirectory,
    NotificationDispatcher,
)
from assistline.domain.manual_assignment import ManualAssignmentResolver
from assistline.services.background_tasks import periodic_expired_assignment_sweep
from assistline.services.notifications import OutboxNotificationDispatcher

logger = logging.getLogger(__name__)
request_logger = logging.getLogger("assistline.http")

_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
)


async def _handle_domain_error(request: Request, exc: AssistantRequestError) -> JSONResponse:
    status_code = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 400)
    body = {"detail": exc.message, "error": exc.code}
    if isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field
    if isinstance(exc, ConflictError) and exc.current_status:
        body["current_status"] = exc.current_status
    return JSONResponse(body, status_code=status_code)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_global_exception_handler()
    logger.info("Starting assistline API...")

    # NOTE: migrations run separately: python scripts/run_migrations.py

    settings = get_settings()
    shutdown_manager = GracefulShutdown(timeout=15.0)
    app.state.background = shutdown_manager

    if settings.auto_escalation_enabled:
        task = asyncio.create_task(
            periodic_expired_assignment_sweep(
                app.state.assignment_machine,
                interval_seconds=settings.escalation_interval_seconds,
            ),
            name="expired_assignment_sweeper",
        )
        shutdown_manager.add_task(task)
        logger.info("Expired assignment sweeper started")
    else:
        logger.info("Automatic escalation disabled; overdue requests wait for an admin")

    try:
        yield
    finally:
        logger.info("Shutting down application...")
        await shutdown_manager.shutdown()
        logger.info("Application shut down complete")


def create_app(
    *,
    dispatcher: Optional[NotificationDispatcher] = None,
    appointments: Optional[AppointmentSnapshotSource] = None,
    availability: Optional[AvailabilityProvider] = None,
    locations: Optional[LocationDirectory] = None,
) -> FastAPI:
    settings = get_settings()
    configure_logging(settings)
    docs_url = "/docs" if settings.api_docs_enabled else None
    openapi_url = "/openapi.json" if settings.api_docs_enabled else None

    app = FastAPI(
        title="Assistline",
        lifespan=lifespan,
        docs_url=docs_url,
        redoc_url=None,
        openapi_url=openapi_url,
    )

    machine = AssignmentStateMachine(
        dispatcher=dispatcher if dispatcher is not None else OutboxNotificationDispatcher(),
        locations=locations,
        availability=availability,
        settings=settings,
    )
    app.state.assignment_machine = machine
    app.state.manual_resolver = ManualAssignmentResolver(
        machine,
        appointments=appointments,
        availability=availability,
    )
    app.state.appointment_source = appointments

    app.add_exception_handler(AssistantRequestError, _handle_domain_error)
    app.include_router(system.router)
    app.include_router(assistant_requests.router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration = (time.perf_counter() - start) * 1000
            request_logger.exception("HTTP %s %s failed (%.1f ms)", request.method, request.url.path, duration)
            raise
        duration = (time.perf_counter() - start) * 1000
        request_logger.info(
            "HTTP %s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            duration,
        )
        return response

    return app


__all__ = ["create_app", "lifespan"]
