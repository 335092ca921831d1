from __future__ import annotations
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Booth, BoothVisit
from ..core.clock import as_utc, utcnow
from ..core.config import get_settings
from ..schemas import TrendingBoothEntry, TrendingBoothResult
from .ratings import RatingAggregate, fetch_booth_rating_stats, round_half_up

settings = get_settings()

NEUTRAL_RATING = 3.0

@dataclass
class TrendingCandidate:
    id: uuid.UUID
    name: str
    location: str | None
    recent_visits: int
    total_visits: int
    score: float
    rating_average: float | None
    rating_count: int
    rating_scope: str

def clamp_positive_int(value, default: int = 1) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    integer = math.floor(number)
    return default if integer <= 0 else integer

def smooth_average(recent_average: float, recent_count: int, global_average: float, weight: float) -> float:
    w = max(0.0, weight)
    return (recent_average * recent_count + global_average * w) / (recent_count + w)

def normalize_rating(score: float) -> float:
    return min(max((score - NEUTRAL_RATING) / 2, -1.0), 1.0)

def trending_score(recent_visits: int, rating: float, rating_weight: float) -> float:
    return recent_visits * (1 + rating_weight * normalize_rating(rating))

def build_candidate(
    *,
    booth_id: uuid.UUID,
    name: str,
    location: str | None,
    recent_visits: int,
    total_visits: int,
    recent_rating: RatingAggregate | None,
    global_rating: RatingAggregate | None,
    rating_weight: float,
    smoothing_weight: float,
) -> TrendingCandidate:
    global_average = global_rating.average if global_rating else NEUTRAL_RATING
    global_count = global_rating.count if global_rating else 0
    recent_count = recent_rating.count if recent_rating else 0

    if recent_count > 0:
        adjusted = smooth_average(recent_rating.average, recent_count, global_average, smoothing_weight)
        rating_for_score, display, display_count, scope = adjusted, adjusted, recent_count, "recent"
    else:
        display = global_rating.average if global_count > 0 else None
        rating_for_score, display_count, scope = global_average, global_count, "all"

    return TrendingCandidate(
        id=booth_id,
        name=name,
        location=location,
        recent_visits=recent_visits,
        total_visits=total_visits,
        score=trending_score(recent_visits, rating_for_score, rating_weight),
        rating_average=round_half_up(display, 1) if display is not None else None,
        rating_count=display_count,
        rating_scope=scope,
    )

def rank_candidates(candidates: List[TrendingCandidate], limit: int) -> List[TrendingBoothEntry]:
    ordered = sorted(
        candidates,
        key=lambda c: (-c.score, -c.recent_visits, -c.total_visits, c.name.casefold()),
    )
    return [
        TrendingBoothEntry(
            id=c.id,
            rank=index + 1,
            booth_name=c.name,
            location=c.location,
            recent_visit_count=c.recent_visits,
            rating_average=c.rating_average,
            rating_count=c.rating_count,
            rating_scope=c.rating_scope,
        )
        for index, c in enumerate(ordered[:limit])
    ]

async def _visit_counts(db: AsyncSession, since: datetime | None = None) -> Dict[uuid.UUID, int]:
    stmt = select(BoothVisit.booth_id, func.count(BoothVisit.id)).group_by(BoothVisit.booth_id)
    if since is not None:
        stmt = stmt.where(BoothVisit.visited_at >= since)
    return {booth_id: count for booth_id, count in (await db.execute(stmt)).all()}

async def fetch_trending_booths(
    db: AsyncSession,
    *,
    window_minutes: int | None = None,
    limit: int | None = None,
    rating_weight: float | None = None,
    smoothing_weight: float | None = None,
    now: datetime | None = None,
) -> TrendingBoothResult:
    """Top booths by recent visits, nudged by rating. Falls back to all-time visits when the window is quiet."""
    current = as_utc(now or utcnow())
    window = clamp_positive_int(settings.trending_window_minutes if window_minutes is None else window_minutes)
    top = clamp_positive_int(settings.trending_max_entries if limit is None else limit)
    weight = settings.trending_rating_weight if rating_weight is None else rating_weight
    smoothing = settings.trending_rating_smoothing_weight if smoothing_weight is None else smoothing_weight
    cutoff: datetime | None = current - timedelta(minutes=window)

    visit_counts = await _visit_counts(db, since=cutoff)
    source = "recent"
    if not visit_counts:
        visit_counts = await _visit_counts(db)
        if not visit_counts:
            return TrendingBoothResult(generated_at=current, window_minutes=window, entries=[], source="recent")
        source, cutoff = "history", None

    booth_ids = list(visit_counts)
    booths = (await db.execute(select(Booth.id, Booth.name, Booth.location).where(Booth.id.in_(booth_ids)))).all()
    totals = await _visit_counts(db) if source == "recent" else visit_counts
    recent_ratings = await fetch_booth_rating_stats(db, booth_ids, since=cutoff) if cutoff is not None else {}
    global_ratings = await fetch_booth_rating_stats(db, booth_ids)

    candidates = [
        build_candidate(
            booth_id=bid,
            name=name,
            location=location,
            recent_visits=visit_counts.get(bid, 0),
            total_visits=totals.get(bid, 0),
            recent_rating=recent_ratings.get(bid),
            global_rating=global_ratings.get(bid),
            rating_weight=weight,
            smoothing_weight=smoothing,
        )
        for bid, name, location in booths
        if visit_counts.get(bid, 0) > 0
    ]
    return TrendingBoothResult(
        generated_at=current, window_minutes=window, entries=rank_candidates(candidates, top), source=source,
    )
