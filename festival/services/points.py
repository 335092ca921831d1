from __future__ import annotations
import uuid
from datetime import datetime
import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import transaction
from ..models import Booth, PointLog, PointViolation, User, UserRole
from ..core.clock import as_utc, utcnow
from ..core.config import get_settings
from ..core.errors import DuplicateAward, StudentNotFound
from ..core.labels import format_student_label
from ..core.throttle import award_slot, check_award_throttle, compute_throttle_expiry
from ..schemas import BoothPointLogItem, BoothPointsDashboard, BoothSummary, PointStats
from .audit import record_violation

settings = get_settings()
logger = structlog.get_logger(__name__)

def map_point_log(log: PointLog, student: User) -> BoothPointLogItem:
    return BoothPointLogItem(
        id=log.id,
        points=log.points,
        awarded_at=as_utc(log.awarded_at),
        student_id=student.id,
        student_nickname=student.nickname,
        student_label=format_student_label(student.grade, student.class_number, student.student_number),
        grade=student.grade,
        class_number=student.class_number,
        student_number=student.student_number,
    )

async def _last_award_at(db: AsyncSession, booth_id: uuid.UUID, student_id: uuid.UUID) -> datetime | None:
    return (await db.execute(
        select(func.max(PointLog.awarded_at)).where(PointLog.booth_id == booth_id, PointLog.student_id == student_id)
    )).scalar()

async def award_points(
    db: AsyncSession,
    *,
    booth_id: uuid.UUID,
    qr_token: str,
    points: int | None = None,
    now: datetime | None = None,
    window_minutes: float | None = None,
) -> BoothPointLogItem:
    """Award points from ``booth_id`` to the student holding ``qr_token``.

    At most one award per (student, booth) per window. Every log row carries its
    window bucket so the unique (student, booth, slot) key backs up the check.
    """
    token = qr_token.strip() if isinstance(qr_token, str) else ""
    if not token:
        raise StudentNotFound()
    awarded_at = as_utc(now or utcnow())
    window = settings.point_award_window_minutes if window_minutes is None else window_minutes
    value = points if points is not None else settings.point_award_value

    student_id: uuid.UUID | None = None
    try:
        async with transaction(db):
            student = (await db.execute(
                select(User).where(User.qr_token == token).with_for_update().execution_options(populate_existing=True)
            )).scalar_one_or_none()
            if student is None or student.role != UserRole.STUDENT:
                raise StudentNotFound()
            student_id = student.id

            check_award_throttle(await _last_award_at(db, booth_id, student_id), awarded_at, window)

            student.points += value
            log = PointLog(
                student_id=student_id,
                booth_id=booth_id,
                points=value,
                awarded_at=awarded_at,
                award_slot=award_slot(awarded_at, window),
            )
            db.add(log)
            await db.flush()
            item = map_point_log(log, student)
    except DuplicateAward as exc:
        await record_violation(db, PointViolation(
            booth_id=booth_id, student_id=student_id, attempted_at=awarded_at, available_at=exc.available_at,
        ))
        raise
    except IntegrityError:
        if student_id is None:
            raise
        last = await _last_award_at(db, booth_id, student_id)
        if last is None:
            raise
        available_at = compute_throttle_expiry(last, window)
        await record_violation(db, PointViolation(
            booth_id=booth_id, student_id=student_id, attempted_at=awarded_at, available_at=available_at,
        ))
        raise DuplicateAward(available_at) from None

    logger.info("points.awarded", booth_id=str(booth_id), student_id=str(student_id), points=value)
    return item

async def fetch_booth_points_dashboard(db: AsyncSession, booth: Booth) -> BoothPointsDashboard:
    owner_nickname = (await db.execute(select(User.nickname).where(User.id == booth.owner_id))).scalar_one_or_none()

    total_awards, total_points = (await db.execute(
        select(func.count(PointLog.id), func.coalesce(func.sum(PointLog.points), 0))
        .where(PointLog.booth_id == booth.id)
    )).one()

    rows = (await db.execute(
        select(PointLog, User)
        .join(User, User.id == PointLog.student_id)
        .where(PointLog.booth_id == booth.id)
        .order_by(PointLog.awarded_at.desc(), PointLog.id.desc())
        .limit(settings.booth_recent_log_limit)
    )).all()

    return BoothPointsDashboard(
        booth=BoothSummary(
            id=booth.id, name=booth.name, location=booth.location,
            description=booth.description, owner_nickname=owner_nickname,
        ),
        stats=PointStats(total_awards=total_awards or 0, total_points=int(total_points or 0)),
        recent_logs=[map_point_log(log, student) for log, student in rows],
    )
