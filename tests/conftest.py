from typing import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from goal_engine.api.routes import accounts, allocations, goals, health
from goal_engine.domain.services.goal_service import GoalService
from goal_engine.infrastructure.db import models  # noqa: F401
from goal_engine.infrastructure.db.database import Base
from goal_engine.infrastructure.db.repositories.goal_repository import SqlGoalStore
from goal_engine.infrastructure.db.writer import WriteHandle
from goal_engine.infrastructure.memory_store import InMemoryGoalStore


@pytest.fixture()
def memory_store() -> InMemoryGoalStore:
    return InMemoryGoalStore()


@pytest.fixture()
def service(memory_store) -> GoalService:
    return GoalService(memory_store)


@pytest.fixture()
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    db_path = tmp_path / "test.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def writer(session_factory) -> AsyncGenerator[WriteHandle, None]:
    handle = WriteHandle(session_factory)
    handle.start()
    yield handle
    await handle.stop()


@pytest.fixture()
def sql_store(session_factory, writer) -> SqlGoalStore:
    return SqlGoalStore(session_factory, writer)


@pytest.fixture()
def app(sql_store, db_engine, writer) -> FastAPI:
    app = FastAPI()
    app.include_router(health.router, tags=["Health"])
    app.include_router(goals.router, prefix="/api/v1/goals", tags=["Goals"])
    app.include_router(allocations.router, prefix="/api/v1/allocations", tags=["Allocations"])
    app.include_router(accounts.router, prefix="/api/v1/accounts", tags=["Accounts"])

    app.state.db_engine = db_engine
    app.state.writer = writer
    app.state.goal_service = GoalService(sql_store)
    return app


@pytest.fixture()
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
