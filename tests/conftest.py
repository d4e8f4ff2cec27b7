import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from typing import AsyncGenerator, Callable, Dict, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from schoolerp.api.v1.teachers.service import TeacherDirectory
from schoolerp.api.v1.timetables.locks import ScheduleLocks
from schoolerp.api.v1.timetables.service import TimetableService
from schoolerp.api.v1.timetables.store import TimetableStore
from schoolerp.auth.models import User
from schoolerp.auth.security import create_access_token, token_claims_for
from schoolerp.core.models import School, Teacher
from schoolerp.db.session import Base, build_sessionmaker, get_db
from schoolerp.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite://"
# SQLite has no schemas: render core/auth/school tables unqualified
SCHEMA_TRANSLATE_MAP = {"core": None, "auth": None, "school": None}


@pytest.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test. StaticPool keeps the single connection alive."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        execution_options={"schema_translate_map": SCHEMA_TRANSLATE_MAP},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async with build_sessionmaker(engine)() as session:
        yield session


@pytest.fixture()
def locks() -> ScheduleLocks:
    return ScheduleLocks()


@pytest.fixture()
def service(db_session: AsyncSession, locks: ScheduleLocks) -> TimetableService:
    return TimetableService(TimetableStore(db_session), TeacherDirectory(db_session), locks)


@pytest.fixture()
def store(db_session: AsyncSession) -> TimetableStore:
    return TimetableStore(db_session)


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, sharing the test session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.state.schedule_locks = ScheduleLocks()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ----- Factories -----


@pytest.fixture()
def make_school(db_session: AsyncSession) -> Callable:
    async def _make(name: str = "Green Valley School", code: Optional[str] = None) -> School:
        school = School(name=name, code=code or name[:3].upper() + "-" + str(len(name)).zfill(4))
        db_session.add(school)
        await db_session.commit()
        return school

    return _make


@pytest.fixture()
async def school(make_school) -> School:
    return await make_school("Green Valley School", "SCH-GV01")


@pytest.fixture()
async def other_school(make_school) -> School:
    return await make_school("Hill Top Academy", "SCH-HT02")


@pytest.fixture()
def make_teacher(db_session: AsyncSession) -> Callable:
    async def _make(school: School, full_name: str = "Anita Sharma", status: str = "active", **kwargs) -> Teacher:
        teacher = Teacher(school_id=school.id, full_name=full_name, status=status, **kwargs)
        db_session.add(teacher)
        await db_session.commit()
        return teacher

    return _make


@pytest.fixture()
def make_user(db_session: AsyncSession) -> Callable:
    async def _make(role: str, school: Optional[School] = None, email: Optional[str] = None) -> User:
        user = User(
            school_id=school.id if school is not None else None,
            full_name=f"{role.title()} User",
            email=email or f"{role.lower()}@{school.code.lower() if school else 'platform'}.example",
            role=role,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture()
def auth_headers() -> Callable[[User], Dict[str, str]]:
    def _headers(user: User) -> Dict[str, str]:
        token = create_access_token(subject=token_claims_for(user.id, user.role, user.school_id))
        return {"Authorization": f"Bearer {token}"}

    return _headers
