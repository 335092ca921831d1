from __future__ import annotations
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, require_student
from ..models import User
from ..schemas import NicknameSuggestions, NicknameUpdateRequest, NicknameUpdateResult, StudentDashboard, StudentQR
from ..services.students import (
    fetch_student_dashboard, nickname_suggestions, rotate_student_qr, update_student_nickname
)
from ..core.qr import render_qr_png

router = APIRouter(prefix="/students", tags=["students"])

@router.get("/me", response_model=StudentDashboard)
async def me(user: User = Depends(require_student), db: AsyncSession = Depends(get_db)):
    return await fetch_student_dashboard(db, user.id)

@router.post("/qr", response_model=StudentQR)
async def rotate_qr(user: User = Depends(require_student), db: AsyncSession = Depends(get_db)):
    return StudentQR(qr_token=await rotate_student_qr(db, user.id))

# booth staff scan this to award points
@router.get("/qr.png")
async def qr_png(user: User = Depends(require_student)):
    return Response(content=render_qr_png(user.qr_token), media_type="image/png", headers={"Cache-Control": "no-store"})

@router.patch("/nickname", response_model=NicknameUpdateResult)
async def update_nickname(
    payload: NicknameUpdateRequest, user: User = Depends(require_student), db: AsyncSession = Depends(get_db)
):
    return await update_student_nickname(db, user_id=user.id, nickname=payload.nickname, lock=payload.lock)

@router.get("/nickname/suggestions", response_model=NicknameSuggestions)
async def suggestions(count: int = Query(3), user: User = Depends(require_student)):
    return NicknameSuggestions(suggestions=nickname_suggestions(count))
