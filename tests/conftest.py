import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./opsdesk-test.db"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["CACHE_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "warning"

from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

from opsdesk.core.database import build_engine, build_session_factory, get_db, get_session_factory
from opsdesk.core.rate_limiter import rate_limiter
from opsdesk.core.security import create_access_token
from opsdesk.main import app
from opsdesk.models import Base, User, UserRole
from opsdesk.services.chat.presence import presence_hub


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db):
    async def _make(role=UserRole.EMPLOYEE, name=None, is_active=True):
        suffix = uuid4().hex[:8]
        user = User(
            id=uuid4(),
            name=name or f"{role.value.title()} {suffix}",
            email=f"{role.value.lower()}-{suffix}@opsdesk.test",
            role=role,
            is_active=is_active,
        )
        db.add(user)
        await db.commit()
        return user

    return _make


@pytest_asyncio.fixture
async def employee(make_user):
    return await make_user(UserRole.EMPLOYEE, name="Erin Employee")


@pytest_asyncio.fixture
async def other_employee(make_user):
    return await make_user(UserRole.EMPLOYEE, name="Evan Employee")


@pytest_asyncio.fixture
async def manager(make_user):
    return await make_user(UserRole.MANAGER, name="Morgan Manager")


@pytest_asyncio.fixture
async def admin(make_user):
    return await make_user(UserRole.SUPER_ADMIN, name="Avery Admin")


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}

    return _headers


@pytest_asyncio.fixture
async def client(session_factory):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_shared_state():
    rate_limiter.reset()
    presence_hub.active_connections.clear()
    yield
    rate_limiter.reset()
    presence_hub.active_connections.clear()
