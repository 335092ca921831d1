from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, require_admin
from ..models import User
from ..schemas import AdminDashboard, FeatureToggleRequest, FeatureToggleResult, StudentBatchRequest, StudentBatchResult
from ..services.accounts import create_student_batch
from ..services.admin import fetch_admin_dashboard
from ..services.booths import BOOTH_REGISTRATION_FLAG, is_booth_registration_open, set_booth_registration_open

router = APIRouter(prefix="/admin", tags=["admin"])

@router.post("/accounts/students", response_model=StudentBatchResult, status_code=201)
async def create_students(
    payload: StudentBatchRequest, user: User = Depends(require_admin), db: AsyncSession = Depends(get_db)
):
    return await create_student_batch(db, creator_id=user.id, params=payload)

@router.get("/dashboard", response_model=AdminDashboard)
async def dashboard(user: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await fetch_admin_dashboard(db)

@router.get("/features/booth-registration", response_model=FeatureToggleResult)
async def registration_state(user: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return FeatureToggleResult(key=BOOTH_REGISTRATION_FLAG, enabled=await is_booth_registration_open(db))

@router.put("/features/booth-registration", response_model=FeatureToggleResult)
async def toggle_registration(
    payload: FeatureToggleRequest, user: User = Depends(require_admin), db: AsyncSession = Depends(get_db)
):
    return FeatureToggleResult(key=BOOTH_REGISTRATION_FLAG, enabled=await set_booth_registration_open(db, payload.enabled))
