from __future__ import annotations
import uuid
from dataclasses import dataclass
from typing import Dict, List
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Booth, BoothVisit, User
from ..core.clock import utcnow
from ..schemas import BoothLeaderboardEntry, BoothLeaderboardResult
from .ratings import RatingAggregate, fetch_booth_rating_stats, round_half_up

@dataclass
class BoothVisitTotals:
    id: uuid.UUID
    name: str
    location: str | None
    owner_nickname: str | None
    total_visits: int

def sort_leaderboard_rows(rows: List[BoothVisitTotals], ratings: Dict[uuid.UUID, RatingAggregate]) -> List[BoothVisitTotals]:
    # visits desc, then average rating desc (unrated last), then name
    def key(row: BoothVisitTotals):
        stats = ratings.get(row.id)
        return (-row.total_visits, -(stats.average if stats else -1), row.name.casefold())
    return sorted(rows, key=key)

def rank_leaderboard_rows(rows: List[BoothVisitTotals], ratings: Dict[uuid.UUID, RatingAggregate]) -> List[BoothLeaderboardEntry]:
    """Dense rank on visit count: ties share a rank and the next count gets rank + 1."""
    entries: List[BoothLeaderboardEntry] = []
    rank = 0
    previous: int | None = None
    for row in sort_leaderboard_rows(rows, ratings):
        if previous is None or row.total_visits != previous:
            rank += 1
            previous = row.total_visits
        stats = ratings.get(row.id)
        entries.append(BoothLeaderboardEntry(
            id=row.id,
            rank=rank,
            booth_name=row.name,
            total_visits=row.total_visits,
            location=row.location,
            owner_nickname=row.owner_nickname,
            average_rating=round_half_up(stats.average, 1) if stats else None,
            rating_count=stats.count if stats else 0,
        ))
    return entries

async def fetch_booth_leaderboard(db: AsyncSession) -> BoothLeaderboardResult:
    visits = func.count(BoothVisit.id)
    result = await db.execute(
        select(Booth.id, Booth.name, Booth.location, User.nickname, visits)
        .join(User, User.id == Booth.owner_id)
        .outerjoin(BoothVisit, BoothVisit.booth_id == Booth.id)
        .group_by(Booth.id, Booth.name, Booth.location, User.nickname)
    )
    rows = [
        BoothVisitTotals(id=bid, name=name, location=location, owner_nickname=nickname, total_visits=count or 0)
        for bid, name, location, nickname, count in result.all()
    ]
    ratings = await fetch_booth_rating_stats(db, [r.id for r in rows])
    entries = rank_leaderboard_rows(rows, ratings)
    return BoothLeaderboardResult(generated_at=utcnow(), total_booths=len(entries), entries=entries)
