import sys
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from eventlog.database import Base  # noqa: E402
import eventlog.models  # noqa: E402,F401 (imported for side effects)
from eventlog.models.user import User  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    db_file = tmp_path / "events.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_file}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    factory = sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )
    async with factory() as session:
        yield session


@pytest.fixture
def user_factory(session):
    async def _make(username="ada", time_zone="UTC") -> User:
        user = User(username=username, email=f"{username}@example.com", time_zone=time_zone)
        session.add(user)
        await session.flush()
        return user

    return _make


@pytest.fixture
async def user(user_factory):
    return await user_factory()
