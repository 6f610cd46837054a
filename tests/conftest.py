"""Test fixtures and configuration."""

import logging
import os
import sys

# In-memory SQLite keeps the suite free of an external database server
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["ENVIRONMENT"] = "testing"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
import structlog  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from debt_tracker import database  # noqa: E402
from debt_tracker.database import Base  # noqa: E402
from debt_tracker.logger import get_logger  # noqa: E402
from debt_tracker.services.rule_evaluator import compile_pattern  # noqa: E402

logger = get_logger(__name__)

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# --- Structlog Configuration for Tests ---
@pytest.fixture(autouse=True, scope="session")
def configure_structlog_for_tests():
    """Configure structlog for proper capsys capture in tests."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(),
        foreign_pre_chain=processors[:-1],
    )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG)

    yield

    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def clear_pattern_cache():
    """Invalid-pattern warnings are emitted once per cache lifetime."""
    compile_pattern.cache_clear()
    yield
    compile_pattern.cache_clear()


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Fresh in-memory database per test.

    StaticPool keeps every session on the one connection that holds the database.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(db_engine):
    """Override the global session maker so services and handlers use the test engine."""
    maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    previous = database.set_test_session_maker(maker)
    yield maker
    database.set_test_session_maker(previous)


@pytest_asyncio.fixture(scope="function")
async def db(session_maker):
    """Session for arranging and asserting test data.

    Commit before handing data to code that opens its own sessions.
    """
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_maker):
    """Async test client wired to the test database.

    ASGITransport does not run the lifespan, so the scheduler is installed here. The
    long debounce keeps automatic passes out of request assertions.
    """
    from debt_tracker.main import app
    from debt_tracker.services.ingestion import DebtMatchingScheduler

    scheduler = DebtMatchingScheduler(session_maker, debounce_seconds=60)
    app.state.scheduler = scheduler
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client_instance:
        yield client_instance
    await scheduler.shutdown()
