from __future__ import annotations
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, get_owned_booth, rate_limit, require_booth_manager, require_student
from ..models import Booth, User
from ..schemas import BoothQR, BoothVisitsDashboard, RecordVisitRequest, RecordVisitResult
from ..services.booths import find_owned_booth, rotate_booth_qr
from ..services.visits import fetch_booth_visits_dashboard, record_visit
from ..core.config import get_settings
from ..core.nats import publish_visit_recorded
from ..core.qr import create_booth_visit_url, extract_booth_token, render_qr_png

settings = get_settings()
router = APIRouter(prefix="/visits", tags=["visits"])

# --- 1) Student scans a booth QR (raw token, URL or path)
@router.post(
    "/record",
    response_model=RecordVisitResult,
    status_code=201,
    dependencies=[Depends(rate_limit("visit", "rl_visit_max", "rl_visit_window_ms"))],
)
async def record(payload: RecordVisitRequest, user: User = Depends(require_student), db: AsyncSession = Depends(get_db)):
    result = await record_visit(db, student_id=user.id, booth_token=extract_booth_token(payload.booth_token))
    await publish_visit_recorded({
        "visit_id": str(result.visit.id),
        "booth_id": str(result.visit.booth_id),
        "student_id": str(result.visit.student_id),
        "visited_at": result.visit.visited_at.isoformat(),
        "idempotency_key": f"{result.visit.booth_id}:{result.visit.student_id}",
    })
    return result

# --- 2) Booth dashboard
@router.get("/dashboard", response_model=BoothVisitsDashboard)
async def dashboard(booth: Booth = Depends(get_owned_booth), db: AsyncSession = Depends(get_db)):
    return await fetch_booth_visits_dashboard(db, booth)

# --- 3) Booth QR (what students scan)
@router.get("/qr", response_model=BoothQR)
async def booth_qr(booth: Booth = Depends(get_owned_booth)):
    return BoothQR(qr_token=booth.qr_token, visit_url=create_booth_visit_url(settings.public_origin, booth.qr_token))

@router.get("/qr.png")
async def booth_qr_png(booth: Booth = Depends(get_owned_booth)):
    png = render_qr_png(create_booth_visit_url(settings.public_origin, booth.qr_token))
    return Response(content=png, media_type="image/png", headers={"Cache-Control": "no-store"})

@router.post("/qr/rotate", response_model=BoothQR)
async def rotate_qr(user: User = Depends(require_booth_manager), db: AsyncSession = Depends(get_db)):
    booth = await find_owned_booth(db, user.id)
    token = await rotate_booth_qr(db, booth.id)
    return BoothQR(qr_token=token, visit_url=create_booth_visit_url(settings.public_origin, token))
