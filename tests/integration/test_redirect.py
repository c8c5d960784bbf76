import asyncio
import time
import logging

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from shortener import crud
from shortener.config import settings
from shortener.database import AsyncSessionLocal
from shortener.redis import link_cache_key, redis_client
from shortener.services.clicks import click_dispatcher

from conftest import InMemoryCache

async def create(client: AsyncClient, code: str, target_url: str = "https://example.com/page"):
    response = await client.post("/api/links", json={"targetUrl": target_url, "code": code})
    assert response.status_code == 201
    return response.json()

@pytest.mark.asyncio
async def test_redirect_and_click_count(client: AsyncClient):
    await create(client, "abc123")

    response = await client.get("/abc123")
    assert response.status_code == 302
    assert response.headers["location"] == "https://example.com/page"

    await click_dispatcher.drain()
    data = (await client.get("/api/links/abc123")).json()
    assert data["totalClicks"] == 1
    assert data["lastClicked"] is not None

@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["abcdef", "ABC123x", "Zz09Zz09", "000000"])
async def test_redirect_for_valid_codes(client: AsyncClient, code):
    target = f"https://example.com/{code}?q=1"
    await create(client, code, target)

    response = await client.get(f"/{code}")
    assert response.status_code == 302
    assert response.headers["location"] == target

@pytest.mark.asyncio
async def test_codes_are_case_sensitive(client: AsyncClient):
    await create(client, "CaseUp", "https://upper.example")

    response = await client.get("/caseup")
    assert response.status_code == 404

@pytest.mark.asyncio
async def test_redirect_unknown_code(client: AsyncClient):
    response = await client.get("/missing1")
    assert response.status_code == 404
    assert response.json() == {"detail": "Link not found"}

    await click_dispatcher.drain()
    assert (await client.get("/api/links")).json() == []

@pytest.mark.asyncio
async def test_concurrent_redirects_lose_no_clicks(client: AsyncClient):
    await create(client, "hot001")
    n = 20

    responses = await asyncio.gather(*(client.get("/hot001") for _ in range(n)))
    assert all(r.status_code == 302 for r in responses)

    await click_dispatcher.drain()
    assert (await client.get("/api/links/hot001")).json()["totalClicks"] == n

@pytest.mark.asyncio
async def test_click_failure_does_not_affect_redirect(client: AsyncClient, monkeypatch, caplog):
    await create(client, "flaky1")

    async def broken_record_click(db, code):
        raise OperationalError("UPDATE links", {}, Exception("disk I/O error"))

    monkeypatch.setattr(crud, "record_click", broken_record_click)

    with caplog.at_level(logging.ERROR, logger="shortener.services.clicks"):
        response = await client.get("/flaky1")
        await click_dispatcher.drain()

    assert response.status_code == 302
    assert response.headers["location"] == "https://example.com/page"
    assert "Error updating click count for flaky1" in caplog.text

    monkeypatch.undo()
    assert (await client.get("/api/links/flaky1")).json()["totalClicks"] == 0

@pytest.mark.asyncio
async def test_lookup_timeout_surfaces_as_server_error(client: AsyncClient, monkeypatch):
    await create(client, "slow01")

    async def slow_lookup(db, code):
        await asyncio.sleep(5)

    monkeypatch.setattr(settings, "LOOKUP_TIMEOUT_SECONDS", 0.05)
    monkeypatch.setattr(crud, "get_link_by_code", slow_lookup)

    response = await client.get("/slow01")
    assert response.status_code == 500
    assert response.json() == {"detail": "Link store unavailable"}

@pytest.mark.asyncio
async def test_lookup_store_error_surfaces_as_server_error(client: AsyncClient, monkeypatch):
    async def failing_lookup(db, code):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    monkeypatch.setattr(crud, "get_link_by_code", failing_lookup)

    response = await client.get("/any001")
    assert response.status_code == 500
    assert click_dispatcher.pending == 0

@pytest.mark.asyncio
async def test_redirect_served_from_cache(client: AsyncClient, cache, monkeypatch):
    await create(client, "cache1", "https://cached.example")

    response = await client.get("/cache1")
    assert response.status_code == 302
    assert cache.data[link_cache_key("cache1")] == "https://cached.example"

    async def unreachable(db, code):
        raise AssertionError("cache hit must not query the database")

    monkeypatch.setattr(crud, "get_link_by_code", unreachable)
    response = await client.get("/cache1")
    assert response.status_code == 302
    assert response.headers["location"] == "https://cached.example"

    monkeypatch.undo()
    await click_dispatcher.drain()
    assert (await client.get("/api/links/cache1")).json()["totalClicks"] == 2

@pytest.mark.asyncio
async def test_delete_invalidates_cache(client: AsyncClient, cache):
    await create(client, "stale1", "https://old.example")
    await client.get("/stale1")
    assert link_cache_key("stale1") in cache.data

    await client.delete("/api/links/stale1")
    assert link_cache_key("stale1") not in cache.data
    assert (await client.get("/stale1")).status_code == 404

    await create(client, "stale1", "https://new.example")
    response = await client.get("/stale1")
    assert response.headers["location"] == "https://new.example"

class HangingCache(InMemoryCache):
    async def get(self, key):
        await asyncio.sleep(3)

    async def set(self, key, value, ex=None):
        await asyncio.sleep(3)

@pytest.mark.asyncio
async def test_hanging_cache_counts_as_miss(client: AsyncClient, monkeypatch):
    await create(client, "hung01", "https://db.example")
    monkeypatch.setattr(settings, "LOOKUP_TIMEOUT_SECONDS", 0.5)
    monkeypatch.setattr(redis_client, "client", HangingCache())

    started = time.perf_counter()
    response = await client.get("/hung01")
    elapsed = time.perf_counter() - started

    assert response.status_code == 302
    assert response.headers["location"] == "https://db.example"
    assert elapsed < 1.0

@pytest.mark.asyncio
async def test_delete_during_lookup_does_not_leave_cache_entry(client: AsyncClient, cache, monkeypatch):
    await create(client, "racy01", "https://old.example")
    real_lookup = crud.get_link_by_code
    calls = []

    async def lookup_then_concurrent_delete(db, code):
        link = await real_lookup(db, code)
        if not calls:
            # Another request deletes the link and invalidates the cache
            # after this one has read the row
            async with AsyncSessionLocal() as other:
                await crud.delete_link(other, code)
            cache.data.pop(link_cache_key(code), None)
        calls.append(code)
        return link

    monkeypatch.setattr(crud, "get_link_by_code", lookup_then_concurrent_delete)

    response = await client.get("/racy01")
    assert response.status_code == 302
    assert link_cache_key("racy01") not in cache.data

    monkeypatch.undo()
    await click_dispatcher.drain()
    assert (await client.get("/racy01")).status_code == 404
