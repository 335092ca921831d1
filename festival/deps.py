from __future__ import annotations
from typing import AsyncGenerator, Callable
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_session
from .models import Booth, User, UserRole
from .core.config import get_settings
from .core.errors import RateLimited, RoleForbidden, Unauthenticated
from .core.rate_limit import client_address
from .core.security import SessionPayload, verify_session_token
from .services.booths import find_owned_booth

settings = get_settings()

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for s in get_session():
        yield s

def _session_token(request: Request, authorization: str | None) -> str | None:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip()
    return request.cookies.get(settings.session_cookie_name)

async def get_session_payload(request: Request, authorization: str | None = Header(default=None)) -> SessionPayload:
    payload = verify_session_token(_session_token(request, authorization) or "")
    if payload is None:
        raise Unauthenticated()
    return payload

async def get_current_user(
    payload: SessionPayload = Depends(get_session_payload),
    db: AsyncSession = Depends(get_db),
) -> User:
    user = await db.get(User, payload.user_id)
    if user is None or user.role.value != payload.role:
        raise Unauthenticated()
    return user

def require_roles(*roles: UserRole) -> Callable:
    async def _dep(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise RoleForbidden()
        return user
    return _dep

require_student = require_roles(UserRole.STUDENT)
require_booth_staff = require_roles(UserRole.BOOTH_MANAGER, UserRole.ADMIN)
require_booth_manager = require_roles(UserRole.BOOTH_MANAGER)
require_admin = require_roles(UserRole.ADMIN)

async def get_owned_booth(user: User = Depends(require_booth_staff), db: AsyncSession = Depends(get_db)) -> Booth:
    return await find_owned_booth(db, user.id)

def rate_limit(action: str, limit_setting: str, window_setting: str) -> Callable:
    """Fixed-window guard keyed by ``action:client``; limits are read from settings per call."""
    async def _dep(request: Request) -> None:
        limiter = request.app.state.rate_limiter
        result = await limiter.check(
            f"{action}:{client_address(request)}",
            limit=getattr(settings, limit_setting),
            window_ms=getattr(settings, window_setting),
        )
        if not result.allowed:
            raise RateLimited(result.retry_after_seconds)
    return _dep
