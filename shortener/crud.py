from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError
from typing import Optional, List

from .errors import DuplicateCode
from .models import Link, utcnow

# Link CRUD
async def create_link(db: AsyncSession, code: str, target_url: str) -> Link:
    link = Link(code=code, target_url=target_url, total_clicks=0, last_clicked=None)
    db.add(link)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateCode(f"Code '{code}' already exists")
    await db.refresh(link)
    return link

async def get_link_by_code(db: AsyncSession, code: str) -> Optional[Link]:
    result = await db.execute(select(Link).where(Link.code == code))
    return result.scalar_one_or_none()

async def record_click(db: AsyncSession, code: str) -> bool:
    # Single UPDATE so concurrent increments are serialized by the row lock
    now = utcnow()
    result = await db.execute(
        update(Link)
        .where(Link.code == code)
        .values(total_clicks=Link.total_clicks + 1, last_clicked=now, updated_at=now)
    )
    await db.commit()
    return result.rowcount > 0

async def list_links(db: AsyncSession) -> List[Link]:
    result = await db.execute(select(Link).order_by(Link.created_at.desc()))
    return list(result.scalars().all())

async def delete_link(db: AsyncSession, code: str) -> bool:
    result = await db.execute(delete(Link).where(Link.code == code))
    await db.commit()
    return result.rowcount > 0
