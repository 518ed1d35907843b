import logging

from fastapi import APIRouter, Request

from goal_engine.infrastructure.db.database import ping

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    db_status = "connected"
    db_error = None
    try:
        if not await ping(getattr(request.app.state, "db_engine", None)):
            db_status = "not_initialized"
    except Exception as exc:
        logger.warning("Database ping failed: %s", exc)
        db_status = "error"
        db_error = str(exc)

    writer = getattr(request.app.state, "writer", None)
    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "services": {
            "api": "running",
            "database": db_status,
            "writer": "running" if writer is not None and writer.running else "stopped",
        },
        "database_error": db_error,
    }
