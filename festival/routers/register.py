from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, rate_limit
from ..schemas import BoothRegistrationRequest, BoothRegistrationResult
from ..services.booths import register_booth

router = APIRouter(prefix="/register", tags=["register"])

@router.post(
    "/booth",
    response_model=BoothRegistrationResult,
    status_code=201,
    dependencies=[Depends(rate_limit("register-booth", "rl_register_booth_max", "rl_register_booth_window_ms"))],
)
async def register(payload: BoothRegistrationRequest, db: AsyncSession = Depends(get_db)):
    return await register_booth(
        db, booth_name=payload.booth_name, location=payload.location, description=payload.description
    )
