from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, require_student
from ..models import User
from ..schemas import RatingEnvelope, RatingRequest
from ..services.ratings import rate_booth, update_booth_rating

router = APIRouter(prefix="/ratings", tags=["ratings"])

@router.post("", response_model=RatingEnvelope, status_code=201)
async def create(payload: RatingRequest, user: User = Depends(require_student), db: AsyncSession = Depends(get_db)):
    rating = await rate_booth(
        db, booth_id=payload.booth_id, student_id=user.id, score=payload.score, review=payload.review
    )
    return RatingEnvelope(rating=rating)

@router.patch("", response_model=RatingEnvelope)
async def update(payload: RatingRequest, user: User = Depends(require_student), db: AsyncSession = Depends(get_db)):
    rating = await update_booth_rating(
        db, booth_id=payload.booth_id, student_id=user.id, score=payload.score, review=payload.review
    )
    return RatingEnvelope(rating=rating)
