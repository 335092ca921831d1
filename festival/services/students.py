from __future__ import annotations
import math
import re
import secrets
import uuid
from typing import List
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import transaction
from ..models import Booth, PointLog, User, UserRole
from ..core.clock import as_utc
from ..core.codes import unique_qr_token
from ..core.config import get_settings
from ..core.errors import InvalidInput, NicknameLocked, StudentAccessDenied
from ..core.labels import describe_student_id, format_booth_name, format_student_label
from ..schemas import NicknameUpdateResult, StudentDashboard, StudentPointLogItem

settings = get_settings()
logger = structlog.get_logger(__name__)

NICKNAME_MIN_LENGTH = 2
NICKNAME_MAX_LENGTH = 20
MAX_NICKNAME_SUGGESTIONS = 5
DEFAULT_NICKNAME_SUGGESTIONS = 3

ADJECTIVES = (
    "반짝이는", "용감한", "느긋한", "명랑한", "씩씩한", "수줍은", "재빠른", "다정한",
    "엉뚱한", "똑똑한", "포근한", "신나는", "조용한", "힘찬", "상냥한", "졸린",
    "배고픈", "당당한", "궁금한", "행복한",
)
ANIMALS = (
    "호랑이", "토끼", "고양이", "강아지", "판다", "수달", "다람쥐", "펭귄",
    "여우", "고래", "부엉이", "햄스터", "코알라", "돌고래", "사자", "거북이",
    "너구리", "알파카", "기린", "참새",
)

_WHITESPACE = re.compile(r"\s+")

async def _load_student(db: AsyncSession, user_id: uuid.UUID) -> User:
    student = await db.get(User, user_id)
    if student is None or student.role != UserRole.STUDENT:
        raise StudentAccessDenied()
    return student

async def fetch_student_dashboard(db: AsyncSession, user_id: uuid.UUID) -> StudentDashboard:
    student = await _load_student(db, user_id)
    rows = (await db.execute(
        select(PointLog, Booth.name)
        .outerjoin(Booth, Booth.id == PointLog.booth_id)
        .where(PointLog.student_id == student.id)
        .order_by(PointLog.awarded_at.desc(), PointLog.id.desc())
        .limit(settings.student_recent_log_limit)
    )).all()
    return StudentDashboard(
        id=student.id,
        nickname=student.nickname,
        nickname_locked=student.nickname_locked,
        student_identifier=describe_student_id(student.grade, student.class_number, student.student_number),
        student_label=format_student_label(student.grade, student.class_number, student.student_number),
        grade=student.grade,
        class_number=student.class_number,
        student_number=student.student_number,
        points=student.points,
        visit_count=student.visit_count,
        qr_token=student.qr_token,
        recent_logs=[
            StudentPointLogItem(
                id=log.id, booth_name=format_booth_name(name), points=log.points, awarded_at=as_utc(log.awarded_at),
            )
            for log, name in rows
        ],
    )

async def rotate_student_qr(db: AsyncSession, user_id: uuid.UUID) -> str:
    async with transaction(db):
        student = await _load_student(db, user_id)
        student.qr_token = await unique_qr_token(db, User)
        token = student.qr_token
    logger.info("student.qr_rotated", student_id=str(user_id))
    return token

def normalize_nickname(value: str) -> str:
    return _WHITESPACE.sub(" ", value or "").strip()

def validate_nickname(value: str) -> str:
    nickname = normalize_nickname(value)
    if not nickname:
        raise InvalidInput("닉네임을 입력해주세요.")
    if len(nickname) < NICKNAME_MIN_LENGTH:
        raise InvalidInput(f"닉네임은 최소 {NICKNAME_MIN_LENGTH}자 이상 입력해주세요.")
    if len(nickname) > NICKNAME_MAX_LENGTH:
        raise InvalidInput(f"닉네임은 최대 {NICKNAME_MAX_LENGTH}자까지 입력할 수 있습니다.")
    if not all(ch.isalnum() or ch == " " for ch in nickname):
        raise InvalidInput("닉네임은 한글, 영문, 숫자, 공백만 사용할 수 있습니다.")
    return nickname

async def update_student_nickname(
    db: AsyncSession, *, user_id: uuid.UUID, nickname: str, lock: bool = False
) -> NicknameUpdateResult:
    value = validate_nickname(nickname)
    async with transaction(db):
        student = await _load_student(db, user_id)
        if student.nickname_locked:
            raise NicknameLocked()
        student.nickname = value
        if lock:
            student.nickname_locked = True
        result = NicknameUpdateResult(nickname=student.nickname, nickname_locked=student.nickname_locked)
    return result

def generate_nickname() -> str:
    return f"{secrets.choice(ADJECTIVES)} {secrets.choice(ANIMALS)}"

def nickname_suggestions(count: float | None = DEFAULT_NICKNAME_SUGGESTIONS) -> List[str]:
    try:
        base = float(count) if count is not None else DEFAULT_NICKNAME_SUGGESTIONS
    except (TypeError, ValueError):
        base = DEFAULT_NICKNAME_SUGGESTIONS
    if not math.isfinite(base):
        base = DEFAULT_NICKNAME_SUGGESTIONS
    safe = min(max(math.floor(base), 1), MAX_NICKNAME_SUGGESTIONS)
    return [generate_nickname() for _ in range(safe)]
