"""Shared fixtures: in-memory SQLite database, fake object storage, app client."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("PUBLIC_BASE_URL", "https://buildfolio.test")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import buildfolio.models  # noqa: F401
from buildfolio.api.middleware.rate_limit import reset_rate_limits
from buildfolio.database.connection import Base, SchemaCapabilities, get_db
from buildfolio.main import create_application
from buildfolio.services.errors import UploadError
from buildfolio.services.storage import StoredObject, check_bucket, get_storage
from buildfolio.utils.security import create_access_token


class FakeStorage:
    """Records uploads in memory. Paths containing fail_on raise like a storage outage."""

    def __init__(self, fail_on: str | None = None):
        self.fail_on = fail_on
        self.uploads: list[tuple[str, str, bytes, str | None]] = []

    async def upload(self, bucket, path, content, content_type):
        check_bucket(bucket)
        if self.fail_on and self.fail_on in path:
            raise UploadError("Failed to upload file", status_code=500)
        self.uploads.append((bucket, path, content, content_type))
        return StoredObject(url=f"https://cdn.test/{bucket}/{path}", path=path)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def capabilities():
    return SchemaCapabilities(experiences=True)


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture(autouse=True)
def _clear_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
def app(session_factory, storage, capabilities):
    app = create_application()

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.state.capabilities = capabilities
    return app


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


def auth_headers(email: str, user_id: str = "3f0c8a52-8d2e-4a0e-9a51-6a7f1f0b2c11") -> dict[str, str]:
    token = create_access_token(user_id, email=email)
    return {"Authorization": f"Bearer {token}"}


def portfolio_payload(**overrides) -> dict:
    payload = {
        "username": "alex-rivera",
        "full_name": "Alex Rivera",
        "tagline": "I build reliable backends",
        "job_title": "Backend Engineer",
        "location": "Lisbon",
        "bio": "Engineer who likes small, well-tested services.",
        "email": "alex@example.com",
        "linkedin_url": "https://www.linkedin.com/in/alex",
        "github_username": "alexr",
        "availability_status": "open_fulltime",
        "open_to_work": True,
        "skills": [
            {"name": "Python", "category": "Languages"},
            {"name": "PostgreSQL", "category": "Tools"},
        ],
        "template": "minimal",
        "is_public": True,
        "experiences": [
            {"company": "", "role": "", "description": ""},
            {"company": "Acme", "role": "Eng", "description": "Built things"},
        ],
        "projects": [
            {
                "name": "Ledger",
                "description": "Double-entry bookkeeping API",
                "tech_stack": ["Python", "FastAPI"],
                "github_url": "https://github.com/alexr/ledger",
                "is_featured": True,
            },
            {"name": "", "description": "", "github_url": "", "demo_url": ""},
        ],
    }
    payload.update(overrides)
    return payload
