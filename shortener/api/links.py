from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from ..database import get_db
from ..schemas import LinkCreate, LinkResponse
from ..models import Link
from ..crud import get_link_by_code, list_links, delete_link
from ..errors import LinkNotFound
from ..services.allocator import allocate_link
from ..redis import redis_client, link_cache_key
from ..config import settings

router = APIRouter()

def to_response(link: Link) -> LinkResponse:
    return LinkResponse(
        id=link.id,
        code=link.code,
        short_url=f"{settings.BASE_URL.rstrip('/')}/{link.code}",
        target_url=link.target_url,
        total_clicks=link.total_clicks,
        last_clicked=link.last_clicked,
        created_at=link.created_at,
        updated_at=link.updated_at,
    )

@router.get("/links", response_model=List[LinkResponse])
async def get_links(db: AsyncSession = Depends(get_db)):
    return [to_response(link) for link in await list_links(db)]

@router.post("/links", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def create_link(
    link_in: LinkCreate,
    db: AsyncSession = Depends(get_db)
):
    link = await allocate_link(db, link_in.target_url, link_in.code)
    return to_response(link)

@router.get("/links/{code}", response_model=LinkResponse)
async def get_link(
    code: str,
    db: AsyncSession = Depends(get_db)
):
    link = await get_link_by_code(db, code)
    if not link:
        raise LinkNotFound()
    return to_response(link)

@router.delete("/links/{code}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_link(
    code: str,
    db: AsyncSession = Depends(get_db)
):
    # Idempotent: deleting an unknown code is not an error
    await delete_link(db, code)
    await redis_client.delete(link_cache_key(code))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
