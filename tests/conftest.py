from __future__ import annotations

import os
import tempfile

# settings are read at import time, so the environment has to be ready first
_TMP = tempfile.mkdtemp(prefix="festival-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP}/unused.db")
os.environ.setdefault("SESSION_SECRET", "test-session-secret-0123456789abcdef")
os.environ.setdefault("UPLOAD_DIR", os.path.join(_TMP, "uploads"))
os.environ.setdefault("ENABLE_NATS_EVENTS", "false")

import uuid

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from festival.deps import get_db
from festival.main import app
from festival.models import Base, Booth, User, UserRole
from festival.core.codes import generate_qr_token
from festival.core.rate_limit import FixedWindowRateLimiter
from festival.core.security import create_session_token


@pytest.fixture()
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'festival.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture()
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture(autouse=True)
def rate_limiter():
    limiter = FixedWindowRateLimiter()
    app.state.rate_limiter = limiter
    yield limiter


@pytest.fixture()
async def client(session_maker):
    async def _get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()


class Factory:
    """Commits each row so the app's own sessions can see it."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._n = 0

    def _code(self) -> str:
        self._n += 1
        return f"T{self._n:04d}"

    async def student(self, *, grade=1, class_number=2, student_number=7, nickname=None, qr_token=None) -> User:
        user = User(
            role=UserRole.STUDENT,
            code=self._code(),
            nickname=nickname,
            grade=grade,
            class_number=class_number,
            student_number=student_number,
            qr_token=qr_token or generate_qr_token(),
        )
        self.db.add(user)
        await self.db.commit()
        return user

    async def admin(self) -> User:
        user = User(role=UserRole.ADMIN, code=self._code(), nickname="운영본부", qr_token=generate_qr_token())
        self.db.add(user)
        await self.db.commit()
        return user

    async def booth(self, name: str = "게임존", *, location: str | None = "본관 1층", qr_token=None) -> Booth:
        manager = User(
            role=UserRole.BOOTH_MANAGER,
            code=self._code(),
            nickname=f"{name} 운영팀",
            nickname_locked=True,
            qr_token=generate_qr_token(),
        )
        self.db.add(manager)
        await self.db.flush()
        booth = Booth(owner_id=manager.id, name=name, location=location, qr_token=qr_token or generate_qr_token())
        self.db.add(booth)
        await self.db.commit()
        return booth

    async def manager_of(self, booth: Booth) -> User:
        return await self.db.get(User, booth.owner_id)


@pytest.fixture()
def factory(db):
    return Factory(db)


def auth(user_id: uuid.UUID, role: UserRole | str) -> dict[str, str]:
    role_value = role.value if isinstance(role, UserRole) else role
    return {"Authorization": f"Bearer {create_session_token(user_id=user_id, role=role_value)}"}


@pytest.fixture()
def auth_headers():
    return auth
