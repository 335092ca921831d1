from __future__ import annotations
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from .config import get_settings

settings = get_settings()

SESSION_ALG = "HS256"


@dataclass(frozen=True)
class SessionPayload:
    user_id: uuid.UUID
    role: str
    exp: int


def create_session_token(*, user_id: uuid.UUID, role: str, max_age_seconds: int | None = None, now: datetime | None = None) -> str:
    issued = now or datetime.now(timezone.utc)
    exp = issued + timedelta(seconds=max_age_seconds or settings.session_max_age_seconds)
    payload: Dict[str, Any] = {
        "userId": str(user_id),
        "role": role,
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, settings.session_secret, algorithm=SESSION_ALG)


def verify_session_token(token: str) -> SessionPayload | None:
    """HMAC-checked (constant time) and expiry-checked; any failure is just ``None``."""
    if not token:
        return None
    try:
        payload = jwt.decode(
            token,
            settings.session_secret,
            algorithms=[SESSION_ALG],
            options={"require": ["exp"]},
        )
        return SessionPayload(user_id=uuid.UUID(payload["userId"]), role=str(payload["role"]), exp=int(payload["exp"]))
    except (jwt.InvalidTokenError, KeyError, ValueError, TypeError):
        return None
