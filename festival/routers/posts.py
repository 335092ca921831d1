from __future__ import annotations
import uuid
from fastapi import APIRouter, Depends, File, Form, Header, Query, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, get_current_user, get_session_payload, require_booth_manager, require_student
from ..models import User
from ..schemas import FeedPage, PostFeedItem, ToggleHeartResult
from ..services.hearts import toggle_heart
from ..services.posts import create_post, delete_post, fetch_feed_page
from ..core.errors import FestivalError

router = APIRouter(prefix="/posts", tags=["posts"])

async def _viewer_id(request: Request, authorization: str | None = Header(default=None)) -> uuid.UUID | None:
    # the feed is public; a valid session only adds viewerHasHeart
    try:
        payload = await get_session_payload(request, authorization)
    except FestivalError:
        return None
    return payload.user_id

@router.get("", response_model=FeedPage)
async def feed(
    cursor: uuid.UUID | None = Query(default=None),
    limit: int | None = Query(default=None),
    viewer_id: uuid.UUID | None = Depends(_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    return await fetch_feed_page(db, viewer_id=viewer_id, limit=limit, cursor=cursor)

@router.post("", response_model=PostFeedItem, status_code=201)
async def create(
    body: str = Form(...),
    image: UploadFile | None = File(default=None),
    user: User = Depends(require_booth_manager),
    db: AsyncSession = Depends(get_db),
):
    data, content_type = None, None
    if image is not None and image.filename:
        data, content_type = await image.read(), image.content_type
    return await create_post(db, author=user, body=body, image=data, content_type=content_type)

@router.delete("/{post_id}", status_code=204)
async def remove(post_id: uuid.UUID, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await delete_post(db, post_id=post_id, requester=user)

@router.post("/{post_id}/heart", response_model=ToggleHeartResult)
async def heart(post_id: uuid.UUID, user: User = Depends(require_student), db: AsyncSession = Depends(get_db)):
    return await toggle_heart(db, post_id=post_id, user_id=user.id)
