# ============================================================================
# Test Configuration & Fixtures
# ============================================================================
import os

# Point the application engine at SQLite before anything reads the settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_quizstats.db")

import pytest
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.pool import NullPool
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from quizstats.main import app
from quizstats.config import get_settings
from quizstats.core.database import Base, get_db
from quizstats.api.deps import build_stats_service, get_stats_service
from quizstats.models import Question, User
from quizstats.repositories.memory import (
    InMemoryQuestionLookup,
    InMemorySessionRepository,
    InMemoryStatisticsRepository,
    InMemoryUserDirectory,
)
from quizstats.schemas.question import Difficulty, QuestionInfo
from quizstats.services.stats_service import AnswerStatsService

# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test_quizstats.db"

# Create test engine
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    poolclass=NullPool,  # fresh connection per event loop
)

# pysqlite defers BEGIN, which breaks SAVEPOINT; emit it ourselves
@event.listens_for(test_engine.sync_engine, "connect")
def _disable_driver_transactions(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None

@event.listens_for(test_engine.sync_engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")

test_session_maker = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

START = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

class FakeClock:
    """Clock that only moves when a test tells it to"""

    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current

# ============================================================================
# Domain fixtures
# ============================================================================
@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()

@pytest.fixture
def settings():
    return get_settings()

@pytest.fixture
def sample_questions():
    """Questions shared by the in-memory and SQL fixtures"""
    return [
        QuestionInfo(question_id=10, difficulty=Difficulty.EASY, primary_topic="Álgebra",
                     correct_answer="B", explanation="2x = 4 so x = 2"),
        QuestionInfo(question_id=11, difficulty=Difficulty.MEDIUM, primary_topic="Geometry",
                     correct_answer="A", explanation="Angles in a triangle add to 180"),
        QuestionInfo(question_id=12, difficulty=Difficulty.HARD, primary_topic="algebra ",
                     correct_answer="C"),
        QuestionInfo(question_id=13, difficulty=Difficulty.HARD, primary_topic=None,
                     correct_answer="D"),
    ]

@pytest.fixture
def user_directory() -> InMemoryUserDirectory:
    return InMemoryUserDirectory([1, 2, 3, 4])

@pytest.fixture
def question_lookup(sample_questions) -> InMemoryQuestionLookup:
    return InMemoryQuestionLookup(sample_questions)

@pytest.fixture
def session_repo() -> InMemorySessionRepository:
    return InMemorySessionRepository()

@pytest.fixture
def stats_repo() -> InMemoryStatisticsRepository:
    return InMemoryStatisticsRepository()

@pytest.fixture
def service(session_repo, stats_repo, question_lookup, user_directory, clock, settings) -> AnswerStatsService:
    """Statistics service over in-memory repositories and a fake clock"""
    return AnswerStatsService(
        sessions=session_repo,
        statistics=stats_repo,
        questions=question_lookup,
        users=user_directory,
        clock=clock,
        settings=settings,
    )

@pytest.fixture
def answer(service, clock):
    """Start a session, let ``seconds`` pass, then complete it"""
    async def _answer(user_id: int, question_id: int, selected: str, seconds: float):
        session = await service.start_session(user_id, question_id)
        clock.advance(seconds=seconds)
        return await service.complete_session(session.id, selected)
    return _answer

# ============================================================================
# Database fixtures
# ============================================================================
@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test"""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with test_session_maker() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

@pytest.fixture
def session_maker():
    """Session factory bound to the test database, for code that opens its own sessions"""
    return test_session_maker

@pytest.fixture
async def seeded_db(db_session: AsyncSession, sample_questions) -> AsyncSession:
    """Database with users 1-4 and the sample questions"""
    for user_id in (1, 2, 3, 4):
        db_session.add(User(id=user_id, username=f"user{user_id}"))
    for q in sample_questions:
        db_session.add(Question(
            id=q.question_id,
            question_text=f"Question {q.question_id}",
            options=["A", "B", "C", "D"],
            correct_answer=q.correct_answer,
            explanation=q.explanation,
            difficulty=q.difficulty.value,
            primary_topic=q.primary_topic,
        ))
    await db_session.commit()
    return db_session

@pytest.fixture(scope="function")
async def client(seeded_db: AsyncSession, clock: FakeClock) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden database and clock"""
    async def override_get_db():
        yield seeded_db

    async def override_get_stats_service():
        return build_stats_service(seeded_db, clock=clock)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stats_service] = override_get_stats_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
