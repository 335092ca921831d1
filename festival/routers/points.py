from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, get_owned_booth, rate_limit
from ..models import Booth
from ..schemas import AwardPointsRequest, BoothPointLogItem, BoothPointsDashboard
from ..services.points import award_points, fetch_booth_points_dashboard
from ..core.nats import publish_points_awarded

router = APIRouter(prefix="/points", tags=["points"])

@router.post(
    "/award",
    response_model=BoothPointLogItem,
    status_code=201,
    dependencies=[Depends(rate_limit("award", "rl_award_max", "rl_award_window_ms"))],
)
async def award(payload: AwardPointsRequest, booth: Booth = Depends(get_owned_booth), db: AsyncSession = Depends(get_db)):
    booth_id = booth.id
    log = await award_points(db, booth_id=booth_id, qr_token=payload.qr_token)
    await publish_points_awarded({
        "point_log_id": str(log.id),
        "booth_id": str(booth_id),
        "student_id": str(log.student_id),
        "points": log.points,
        "awarded_at": log.awarded_at.isoformat(),
        "idempotency_key": str(log.id),
    })
    return log

@router.get("/dashboard", response_model=BoothPointsDashboard)
async def dashboard(booth: Booth = Depends(get_owned_booth), db: AsyncSession = Depends(get_db)):
    return await fetch_booth_points_dashboard(db, booth)
