from __future__ import annotations
from fastapi import APIRouter, Depends, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_current_user, get_db, rate_limit
from ..models import User
from ..schemas import CodeLoginRequest, LoginResponse, SessionUser
from ..core.config import get_settings
from ..core.errors import Unauthenticated
from ..core.labels import display_name
from ..core.security import create_session_token

settings = get_settings()
router = APIRouter(prefix="/auth", tags=["auth"])

def _session_user(user: User) -> SessionUser:
    return SessionUser(
        id=user.id, role=user.role.value, nickname=user.nickname,
        display_name=display_name(user), points=user.points,
    )

@router.post(
    "/code-login",
    response_model=LoginResponse,
    dependencies=[Depends(rate_limit("code-login", "rl_code_login_max", "rl_code_login_window_ms"))],
)
async def code_login(payload: CodeLoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    user = (await db.execute(select(User).where(User.code == payload.code))).scalar_one_or_none()
    if user is None:
        raise Unauthenticated("일치하는 계정을 찾을 수 없습니다.")
    token = create_session_token(user_id=user.id, role=user.role.value)
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.session_max_age_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
        path="/",
    )
    return LoginResponse(user=_session_user(user))

@router.delete("/session")
async def logout(response: Response):
    response.delete_cookie(settings.session_cookie_name, path="/")
    return {"message": "세션이 만료되었습니다."}

@router.get("/me", response_model=SessionUser)
async def me(user: User = Depends(get_current_user)):
    return _session_user(user)
