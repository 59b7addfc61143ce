import os
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Iterable, Optional, Tuple
from unittest.mock import MagicMock

import pytest

# Point the application at the test database before any app module builds its engine.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from rvu_tracker.src.api.auth import issue_token
from rvu_tracker.src.api.dependencies import get_analytics_aggregator, get_reference_code_cache
from rvu_tracker.src.core.cache.reference_code_cache import ReferenceCodeCache
from rvu_tracker.src.core.database.db_session import Base, get_db_session
from rvu_tracker.src.core.database.models import RVUCodeModel, VisitModel, VisitProcedureModel
from rvu_tracker.src.core.monitoring.app_metrics import MetricsCollector
from rvu_tracker.src.main import app
from rvu_tracker.src.processing.analytics_service import AnalyticsAggregator
from rvu_tracker.src.processing.rvu_code_repository import RVUCodeRepository

TEST_USER_ID = "test-user-123"
TEST_USER_EMAIL = "test@example.com"


def _test_engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # One shared connection so every session sees the same in-memory database.
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {}


@pytest.fixture()
async def test_engine():
    """
    Creates all tables for a single test and drops them afterwards.
    """
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, **_test_engine_kwargs(TEST_DATABASE_URL))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
def session_factory(test_engine):
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_metrics_collector() -> MagicMock:
    mmc = MagicMock(spec=MetricsCollector)
    # Mock the time_db_query context manager
    mock_timer = MagicMock()
    mock_timer.__enter__ = MagicMock(return_value=None)
    mock_timer.__exit__ = MagicMock(return_value=False) # Never swallow exceptions
    mmc.time_db_query.return_value = mock_timer
    return mmc


@pytest.fixture()
def reference_code_cache(session_factory) -> ReferenceCodeCache:
    metrics_collector = MetricsCollector()
    repository = RVUCodeRepository(session_factory=session_factory, metrics_collector=metrics_collector)
    return ReferenceCodeCache(loader=repository.fetch_all, metrics_collector=metrics_collector)


@pytest.fixture()
async def client(session_factory, reference_code_cache) -> AsyncGenerator[AsyncClient, None]:
    """
    AsyncClient bound to the app, with the database and the RVU cache pointed at the test engine.
    """
    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_reference_code_cache] = lambda: reference_code_cache
    app.dependency_overrides[get_analytics_aggregator] = lambda: AnalyticsAggregator(metrics_collector=MetricsCollector())

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    # Clean up overrides after test to prevent leakage between tests
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": f"Bearer {issue_token(TEST_USER_ID, TEST_USER_EMAIL)}"}


@pytest.fixture
def other_user_headers() -> dict:
    return {"Authorization": f"Bearer {issue_token('other-user-456', 'other@example.com')}"}


@pytest.fixture
def seed_rvu_codes(session_factory):
    async def _seed(codes: Iterable[Tuple[str, str, str, str]]):
        async with session_factory() as session:
            session.add_all([
                RVUCodeModel(hcpcs=hcpcs, description=description, status_code=status_code, work_rvu=Decimal(work_rvu))
                for hcpcs, description, status_code, work_rvu in codes
            ])
            await session.commit()
    return _seed


@pytest.fixture
def seed_visit(session_factory):
    """
    Inserts one visit. `procedures` items are (hcpcs, work_rvu, quantity) or
    (hcpcs, work_rvu, quantity, description).
    """
    async def _seed(visit_date: date, procedures: Iterable[tuple] = (), is_no_show: bool = False,
                    user_id: str = TEST_USER_ID, status_code: str = "A") -> int:
        procedure_models = []
        for procedure in procedures:
            hcpcs, work_rvu, quantity = procedure[:3]
            description: Optional[str] = procedure[3] if len(procedure) > 3 else f"Procedure {hcpcs}"
            procedure_models.append(VisitProcedureModel(
                hcpcs=hcpcs, description=description, status_code=status_code,
                work_rvu=Decimal(work_rvu), quantity=quantity,
            ))
        async with session_factory() as session:
            visit = VisitModel(user_id=user_id, date=visit_date, is_no_show=is_no_show, procedures=procedure_models)
            session.add(visit)
            await session.commit()
            return visit.id
    return _seed
