from __future__ import annotations
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable
import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import transaction
from ..models import Booth, BoothRating, BoothVisit
from ..core.clock import as_utc, utcnow
from ..core.config import get_settings
from ..core.errors import (
    BoothNotFound, InvalidInput, MissingVisitHistory, RatingConflict, RatingEditWindowExpired, RatingNotFound
)
from ..schemas import BoothRatingRead

settings = get_settings()
logger = structlog.get_logger(__name__)

@dataclass
class RatingAggregate:
    average: float
    count: int

def round_half_up(value: float, digits: int = 0) -> float:
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale

def normalize_score(score: float) -> int:
    try:
        rounded = int(round_half_up(float(score)))
    except (TypeError, ValueError, OverflowError):
        raise InvalidInput("평점은 숫자여야 합니다.") from None
    if rounded < 1 or rounded > 5:
        raise InvalidInput("평점은 1부터 5 사이여야 합니다.")
    return rounded

def _normalize_review(review: str | None) -> str | None:
    if review is None:
        return None
    text = review.strip()
    return text or None

def _read(rating: BoothRating) -> BoothRatingRead:
    return BoothRatingRead(
        id=rating.id,
        booth_id=rating.booth_id,
        student_id=rating.student_id,
        score=rating.score,
        review=rating.review,
        created_at=as_utc(rating.created_at),
        updated_at=as_utc(rating.updated_at) if rating.updated_at else None,
    )

async def _require_booth(db: AsyncSession, booth_id: uuid.UUID) -> None:
    if (await db.execute(select(Booth.id).where(Booth.id == booth_id))).first() is None:
        raise BoothNotFound()

async def _visit_time(db: AsyncSession, booth_id: uuid.UUID, student_id: uuid.UUID) -> datetime:
    visited_at = (await db.execute(
        select(func.min(BoothVisit.visited_at)).where(BoothVisit.booth_id == booth_id, BoothVisit.student_id == student_id)
    )).scalar()
    if visited_at is None:
        raise MissingVisitHistory()
    return as_utc(visited_at)

async def rate_booth(
    db: AsyncSession,
    *,
    booth_id: uuid.UUID,
    student_id: uuid.UUID,
    score: float,
    review: str | None = None,
) -> BoothRatingRead:
    value = normalize_score(score)
    try:
        async with transaction(db):
            await _require_booth(db, booth_id)
            await _visit_time(db, booth_id, student_id)
            existing = (await db.execute(
                select(BoothRating.id).where(BoothRating.booth_id == booth_id, BoothRating.student_id == student_id)
            )).first()
            if existing is not None:
                raise RatingConflict()
            now = utcnow()
            rating = BoothRating(
                booth_id=booth_id, student_id=student_id, score=value,
                review=_normalize_review(review), created_at=now, updated_at=now,
            )
            db.add(rating)
            await db.flush()
            result = _read(rating)
    except IntegrityError:
        raise RatingConflict() from None
    logger.info("rating.created", booth_id=str(booth_id), score=value)
    return result

async def update_booth_rating(
    db: AsyncSession,
    *,
    booth_id: uuid.UUID,
    student_id: uuid.UUID,
    score: float,
    review: str | None = None,
    now: datetime | None = None,
) -> BoothRatingRead:
    """Ratings stay editable for a fixed window counted from the visit."""
    value = normalize_score(score)
    current = as_utc(now or utcnow())
    async with transaction(db):
        await _require_booth(db, booth_id)
        visited_at = await _visit_time(db, booth_id, student_id)
        rating = (await db.execute(
            select(BoothRating).where(BoothRating.booth_id == booth_id, BoothRating.student_id == student_id)
        )).scalar_one_or_none()
        if rating is None:
            raise RatingNotFound()
        if current > visited_at + timedelta(minutes=settings.rating_edit_window_minutes):
            raise RatingEditWindowExpired()
        rating.score = value
        if review is not None:
            rating.review = _normalize_review(review)
        rating.updated_at = current
        await db.flush()
        result = _read(rating)
    return result

async def fetch_booth_rating_stats(
    db: AsyncSession,
    booth_ids: Iterable[uuid.UUID] | None = None,
    *,
    since: datetime | None = None,
) -> Dict[uuid.UUID, RatingAggregate]:
    ids = list(booth_ids) if booth_ids is not None else None
    if ids is not None and not ids:
        return {}
    stmt = select(BoothRating.booth_id, func.avg(BoothRating.score), func.count(BoothRating.id)).group_by(BoothRating.booth_id)
    if ids is not None:
        stmt = stmt.where(BoothRating.booth_id.in_(ids))
    if since is not None:
        stmt = stmt.where(BoothRating.created_at >= since)
    rows = (await db.execute(stmt)).all()
    return {booth_id: RatingAggregate(average=float(avg or 0), count=count) for booth_id, avg, count in rows}
