import os
import tempfile

# Settings are read at import time, so point them at a throwaway SQLite file first
_db_dir = tempfile.mkdtemp(prefix="shortener-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_db_dir}/test.db"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("REDIS_URL", None)

import pytest
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

from shortener.main import app
from shortener.database import AsyncSessionLocal, Base, engine
from shortener.redis import redis_client
from shortener.services.clicks import click_dispatcher


class InMemoryCache:
    """Stands in for a redis.asyncio client; only the calls RedisClient makes."""

    def __init__(self):
        self.data: dict[str, str] = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value

    async def delete(self, key):
        self.data.pop(key, None)


@pytest.fixture
async def database() -> AsyncGenerator[None, None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await click_dispatcher.drain()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Pooled connections are bound to this test's event loop
    await engine.dispose()


@pytest.fixture
async def db(database) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
async def client(database) -> AsyncGenerator[AsyncClient, None]:
    # ASGITransport does not run the lifespan; `database` creates the tables instead
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def cache():
    fake = InMemoryCache()
    redis_client.client = fake
    yield fake
    redis_client.client = None
