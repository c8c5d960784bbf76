import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud
from ..config import settings
from ..errors import LinkNotFound, StoreUnavailable
from ..models import Link
from ..observability import CACHE_HITS, CACHE_MISSES
from ..redis import redis_client, link_cache_key

logger = logging.getLogger(__name__)


def _cache_timeout() -> float:
    # A slow cache counts as a miss well within the lookup budget
    return min(settings.CACHE_TIMEOUT_SECONDS, settings.LOOKUP_TIMEOUT_SECONDS)


async def _lookup(db: AsyncSession, code: str):
    try:
        return await asyncio.wait_for(
            crud.get_link_by_code(db, code),
            timeout=settings.LOOKUP_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.error(f"Lookup for {code} exceeded {settings.LOOKUP_TIMEOUT_SECONDS}s")
        raise StoreUnavailable()
    except SQLAlchemyError as e:
        logger.error(f"Lookup for {code} failed: {e}")
        raise StoreUnavailable()


async def _populate_cache(db: AsyncSession, link: Link):
    key = link_cache_key(link.code)
    await redis_client.set(key, link.target_url, ex=settings.CACHE_TTL_SECONDS, timeout=_cache_timeout())

    # A delete or re-create that ran after our read has already invalidated
    # the key; re-reading after the write drops an entry it would miss.
    try:
        current = await _lookup(db, link.code)
    except StoreUnavailable:
        current = None
    if current is None or current.id != link.id:
        logger.info(f"Link {link.code} changed during lookup, dropping cache entry")
        await redis_client.delete(key, timeout=_cache_timeout())


async def resolve_target(db: AsyncSession, code: str) -> str:
    # 1. Check Redis (hot path)
    target_url = await redis_client.get(link_cache_key(code), timeout=_cache_timeout())
    if target_url:
        CACHE_HITS.inc()
        return target_url
    CACHE_MISSES.inc()

    # 2. DB lookup within the time budget; no retries
    link = await _lookup(db, code)
    if link is None:
        raise LinkNotFound()

    # 3. Populate Redis
    if redis_client.enabled:
        await _populate_cache(db, link)
    return link.target_url
