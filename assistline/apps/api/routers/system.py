import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from assistline.core.db import async_session

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", include_in_schema=False)
async def health_check(request: Request) -> JSONResponse:
    checks = {"database": "ok"}
    background = getattr(request.app.state, "background", None)
    running = background.running if background is not None else []
    checks["expiry_sweeper"] = "running" if "expired_assignment_sweeper" in running else "disabled"

    try:
        async with async_session() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("Health check database query failed: %s", exc)
        checks["database"] = "error"
        return JSONResponse({"status": "error", "checks": checks}, status_code=503)

    return JSONResponse({"status": "ok", "checks": checks})
