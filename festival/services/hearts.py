from __future__ import annotations
import uuid
import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import transaction
from ..models import Heart, Post
from ..core.errors import PostNotFound
from ..schemas import ToggleHeartResult

logger = structlog.get_logger(__name__)

async def count_hearts(db: AsyncSession, post_id: uuid.UUID) -> int:
    return (await db.execute(select(func.count(Heart.id)).where(Heart.post_id == post_id))).scalar_one()

async def toggle_heart(db: AsyncSession, *, post_id: uuid.UUID, user_id: uuid.UUID) -> ToggleHeartResult:
    try:
        async with transaction(db):
            post = await db.get(Post, post_id)
            if post is None:
                raise PostNotFound()
            existing = (await db.execute(
                select(Heart).where(Heart.post_id == post_id, Heart.user_id == user_id)
            )).scalar_one_or_none()
            if existing is not None:
                await db.delete(existing)
                hearted = False
            else:
                db.add(Heart(post_id=post_id, user_id=user_id))
                hearted = True
            await db.flush()
            total = await count_hearts(db, post_id)
    except IntegrityError:
        # a concurrent toggle created the same heart first; the end state is "hearted"
        logger.info("heart.duplicate_create", post_id=str(post_id), user_id=str(user_id))
        return ToggleHeartResult(hearted=True, total_hearts=await count_hearts(db, post_id))
    return ToggleHeartResult(hearted=hearted, total_hearts=total)
