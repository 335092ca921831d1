from __future__ import annotations
import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_current_user, get_db, require_booth_manager
from ..models import User
from ..schemas import BoothProfileEnvelope, BoothProfileUpdateRequest, BoothPublicPage, BoothReviewPage
from ..services.booths import (
    booth_profile, fetch_booth_public_page, fetch_booth_review_page, find_owned_booth, update_booth_profile
)

router = APIRouter(tags=["booths"])

# --- public booth page
@router.get("/booths/{booth_id}", response_model=BoothPublicPage)
async def public_page(booth_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await fetch_booth_public_page(db, booth_id)

@router.get("/booths/{booth_id}/reviews", response_model=BoothReviewPage)
async def reviews(
    booth_id: uuid.UUID,
    cursor: uuid.UUID | None = Query(default=None),
    limit: int | None = Query(default=None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await fetch_booth_review_page(db, booth_id=booth_id, cursor=cursor, limit=limit)

# --- manager's own booth
@router.get("/booth/profile", response_model=BoothProfileEnvelope)
async def read_profile(user: User = Depends(require_booth_manager), db: AsyncSession = Depends(get_db)):
    return BoothProfileEnvelope(booth=booth_profile(await find_owned_booth(db, user.id)))

@router.put("/booth/profile", response_model=BoothProfileEnvelope)
async def write_profile(
    payload: BoothProfileUpdateRequest, user: User = Depends(require_booth_manager), db: AsyncSession = Depends(get_db)
):
    profile = await update_booth_profile(
        db, owner_id=user.id, name=payload.name, location=payload.location, description=payload.description
    )
    return BoothProfileEnvelope(booth=profile, message="부스 정보를 업데이트했습니다.")
