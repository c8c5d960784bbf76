import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud
from ..errors import AllocationExhausted, CodeTaken, DuplicateCode, InvalidCode
from ..models import Link
from ..observability import ALLOCATION_EXHAUSTED_TOTAL
from ..redis import redis_client, link_cache_key
from ..utils import generate_random_code, is_valid_code

logger = logging.getLogger(__name__)

MAX_ALLOCATION_ATTEMPTS = 10


async def allocate_link(db: AsyncSession, target_url: str, code: Optional[str] = None) -> Link:
    """Create a link under ``code``, or under a fresh random code when none is given.

    The existence checks here only avoid pointless inserts. Two allocators
    racing on one code are settled by the unique constraint in the store,
    which surfaces as ``DuplicateCode``.
    """
    if code is not None:
        link = await _create_with_code(db, target_url, code)
    else:
        link = await _create_with_random_code(db, target_url)

    # A previous link under the same code may still be cached
    await redis_client.delete(link_cache_key(link.code))
    logger.info(f"Created link {link.code} -> {link.target_url}")
    return link


async def _create_with_code(db: AsyncSession, target_url: str, code: str) -> Link:
    if not is_valid_code(code):
        raise InvalidCode()

    if await crud.get_link_by_code(db, code):
        raise CodeTaken()

    try:
        return await crud.create_link(db, code, target_url)
    except DuplicateCode:
        raise CodeTaken()


async def _create_with_random_code(db: AsyncSession, target_url: str) -> Link:
    for attempt in range(1, MAX_ALLOCATION_ATTEMPTS + 1):
        code = generate_random_code()
        if await crud.get_link_by_code(db, code):
            logger.debug(f"Generated code {code} already in use (attempt {attempt})")
            continue
        try:
            return await crud.create_link(db, code, target_url)
        except DuplicateCode:
            logger.debug(f"Lost insert race for generated code {code} (attempt {attempt})")

    ALLOCATION_EXHAUSTED_TOTAL.inc()
    logger.error(
        f"Could not allocate a unique code after {MAX_ALLOCATION_ATTEMPTS} attempts; "
        "code space near saturation or store misbehaving"
    )
    raise AllocationExhausted()
