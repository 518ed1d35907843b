"""
FastAPI Main Application
Goal allocation engine: goals, allocations, versions and progress
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from goal_engine.config import settings
from goal_engine.core.logging import setup_logging
from goal_engine.domain.services.goal_service import GoalService
from goal_engine.infrastructure.db import database
from goal_engine.infrastructure.db.repositories.goal_repository import SqlGoalStore
from goal_engine.infrastructure.db.writer import WriteHandle

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager
    Starts the single writer and wires the goal service over the SQL store
    """
    setup_logging(settings.LOG_LEVEL)

    # ===================
    # STARTUP
    # ===================
    logger.info("=" * 60)
    logger.info("Starting Goal Allocation Engine (env=%s)", settings.APP_ENV)
    logger.info("=" * 60)

    await database.init_db()
    logger.info("Database initialized")

    writer = WriteHandle(database.async_session_factory, maxsize=settings.WRITER_QUEUE_SIZE)
    writer.start()

    store = SqlGoalStore(database.async_session_factory, writer)
    app.state.db_engine = database.engine
    app.state.writer = writer
    app.state.goal_service = GoalService(store)

    logger.info("API Server: http://%s:%s", settings.API_HOST, settings.API_PORT)
    logger.info("API Docs: http://%s:%s/docs", settings.API_HOST, settings.API_PORT)

    yield

    # ===================
    # SHUTDOWN
    # ===================
    logger.info("Shutting down Goal Allocation Engine...")
    await writer.stop()
    await database.close_db()
    logger.info("Database connections closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Goal Allocation Engine",
        description="Earmark investment-account value toward savings goals",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from goal_engine.api.routes import accounts, allocations, goals, health

    app.include_router(health.router, tags=["Health"])
    app.include_router(goals.router, prefix="/api/v1/goals", tags=["Goals"])
    app.include_router(allocations.router, prefix="/api/v1/allocations", tags=["Allocations"])
    app.include_router(accounts.router, prefix="/api/v1/accounts", tags=["Accounts"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("goal_engine.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)
