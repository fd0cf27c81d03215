"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from podium.db.base import Base
from podium.db.models import Bet, BetPick, BettingWeek, BettorRanking, Competitor, User
from podium.dependencies import get_db
from podium.main import create_app
from podium.progression.seed import seed_catalog


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's implicit transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def redis_client() -> AsyncMock:
    """Stand-in Redis client; published events are inspected via ``publish.await_args_list``."""
    return AsyncMock()


@pytest_asyncio.fixture
async def catalog(db_session: AsyncSession) -> AsyncSession:
    """Session with the achievement catalog and level rewards seeded."""
    await seed_catalog(db_session)
    return db_session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, bound to the in-memory database."""
    app = create_app()

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession):
    async def _make(display_name: str = "player", **kwargs) -> User:
        user = User(display_name=display_name, **kwargs)
        db_session.add(user)
        await db_session.flush()
        return user

    return _make


@pytest_asyncio.fixture
async def make_competitor(db_session: AsyncSession):
    async def _make(name: str = "driver", **kwargs) -> Competitor:
        competitor = Competitor(name=name, **kwargs)
        db_session.add(competitor)
        await db_session.flush()
        return competitor

    return _make


@pytest_asyncio.fixture
async def make_week(db_session: AsyncSession):
    async def _make(start: date) -> BettingWeek:
        week = BettingWeek(start_date=start, end_date=start + timedelta(days=6))
        db_session.add(week)
        await db_session.flush()
        return week

    return _make


@pytest_asyncio.fixture
async def make_bet(db_session: AsyncSession, make_week):
    """Create a bet with its picks. A betting week is created when none is given."""

    async def _make(
        user: User,
        picks: list[dict] | None = None,
        points: float | None = 0.0,
        created_at: datetime | None = None,
        week: BettingWeek | None = None,
        finalized: bool = True,
    ) -> Bet:
        if created_at is None:
            created_at = datetime.now(timezone.utc)
        if week is None:
            week = await make_week(created_at.date())
        bet = Bet(
            user_id=user.id,
            betting_week_id=week.id,
            placed_at=created_at,
            created_at=created_at,
            is_finalized=finalized,
            points_earned=points,
            picks=[BetPick(competitor_id=i + 1, **p) for i, p in enumerate(picks or [])],
        )
        db_session.add(bet)
        await db_session.flush()
        return bet

    return _make


@pytest_asyncio.fixture
async def make_ranking(db_session: AsyncSession):
    async def _make(user: User, month: int, year: int, rank: int | None, points: float = 0.0) -> BettorRanking:
        ranking = BettorRanking(user_id=user.id, month=month, year=year, rank=rank, total_points=points)
        db_session.add(ranking)
        await db_session.flush()
        return ranking

    return _make
