from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db
from ..schemas import BoothLeaderboardResult, TrendingBoothResult
from ..services.leaderboard import fetch_booth_leaderboard
from ..services.trending import fetch_trending_booths

router = APIRouter(prefix="/leaderboard", tags=["leaderboard"])

@router.get("/booths", response_model=BoothLeaderboardResult)
async def booths(db: AsyncSession = Depends(get_db)):
    return await fetch_booth_leaderboard(db)

# recomputed per request, nothing cached
@router.get("/trending", response_model=TrendingBoothResult)
async def trending(db: AsyncSession = Depends(get_db)):
    return await fetch_trending_booths(db)
