from __future__ import annotations
import uuid
from datetime import datetime
import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import transaction
from ..models import Booth, BoothRating, BoothVisit, User, UserRole, VisitViolation
from ..core.clock import as_utc, utcnow
from ..core.config import get_settings
from ..core.errors import BoothNotFound, DuplicateVisit, StudentAccessDenied
from ..core.labels import describe_student_id, format_booth_name, format_student_label
from ..core.throttle import check_visit_throttle
from ..schemas import (
    BoothRatingStatus, BoothSummary, BoothVisitLogItem, BoothVisitsDashboard, RecordVisitResult, VisitStats
)
from .audit import record_violation

settings = get_settings()
logger = structlog.get_logger(__name__)

def map_visit_log(visit: BoothVisit, booth_name: str | None, student: User) -> BoothVisitLogItem:
    return BoothVisitLogItem(
        id=visit.id,
        visited_at=as_utc(visit.visited_at),
        booth_id=visit.booth_id,
        booth_name=format_booth_name(booth_name),
        student_id=student.id,
        student_identifier=describe_student_id(student.grade, student.class_number, student.student_number),
        student_label=format_student_label(student.grade, student.class_number, student.student_number),
        grade=student.grade,
        class_number=student.class_number,
        student_number=student.student_number,
    )

async def _last_visit_at(db: AsyncSession, booth_id: uuid.UUID, student_id: uuid.UUID) -> datetime | None:
    return (await db.execute(
        select(func.max(BoothVisit.visited_at)).where(BoothVisit.booth_id == booth_id, BoothVisit.student_id == student_id)
    )).scalar()

async def record_visit(
    db: AsyncSession,
    *,
    student_id: uuid.UUID,
    booth_token: str,
    now: datetime | None = None,
) -> RecordVisitResult:
    """Record the one allowed visit of ``student_id`` to the booth behind ``booth_token``.

    Resolve, check and insert run in one transaction with the student row locked;
    the (booth, student) unique key settles any race that still slips through.
    """
    token = booth_token.strip() if isinstance(booth_token, str) else ""
    if not token:
        raise BoothNotFound()
    visited_at = as_utc(now or utcnow())

    booth_id: uuid.UUID | None = None
    try:
        async with transaction(db):
            booth = (await db.execute(select(Booth).where(Booth.qr_token == token))).scalar_one_or_none()
            if booth is None:
                raise BoothNotFound()
            booth_id = booth.id

            student = (await db.execute(
                select(User).where(User.id == student_id).with_for_update().execution_options(populate_existing=True)
            )).scalar_one_or_none()
            if student is None or student.role != UserRole.STUDENT:
                raise StudentAccessDenied()

            check_visit_throttle(await _last_visit_at(db, booth_id, student_id))

            visit = BoothVisit(booth_id=booth_id, student_id=student_id, visited_at=visited_at)
            db.add(visit)
            student.visit_count += 1
            await db.flush()

            rating = (await db.execute(
                select(BoothRating.score).where(BoothRating.booth_id == booth_id, BoothRating.student_id == student_id)
            )).scalar_one_or_none()

            result = RecordVisitResult(
                visit=map_visit_log(visit, booth.name, student),
                total_visit_count=student.visit_count,
                rating_status=BoothRatingStatus(booth_id=booth_id, has_rated=rating is not None, score=rating),
            )
    except DuplicateVisit as exc:
        await record_violation(db, VisitViolation(
            booth_id=booth_id, student_id=student_id, attempted_at=visited_at, last_visited_at=exc.last_visited_at,
        ))
        raise
    except IntegrityError:
        if booth_id is None:
            raise
        last = await _last_visit_at(db, booth_id, student_id)
        if last is None:
            raise
        await record_violation(db, VisitViolation(
            booth_id=booth_id, student_id=student_id, attempted_at=visited_at, last_visited_at=last,
        ))
        raise DuplicateVisit(as_utc(last)) from None

    logger.info("visit.recorded", booth_id=str(booth_id), student_id=str(student_id))
    return result

async def fetch_booth_visits_dashboard(db: AsyncSession, booth: Booth) -> BoothVisitsDashboard:
    owner_nickname = (await db.execute(select(User.nickname).where(User.id == booth.owner_id))).scalar_one_or_none()

    total, unique = (await db.execute(
        select(func.count(BoothVisit.id), func.count(func.distinct(BoothVisit.student_id)))
        .where(BoothVisit.booth_id == booth.id)
    )).one()

    rows = (await db.execute(
        select(BoothVisit, User)
        .join(User, User.id == BoothVisit.student_id)
        .where(BoothVisit.booth_id == booth.id)
        .order_by(BoothVisit.visited_at.desc(), BoothVisit.id.desc())
        .limit(settings.booth_recent_visit_limit)
    )).all()

    return BoothVisitsDashboard(
        booth=BoothSummary(
            id=booth.id, name=booth.name, location=booth.location,
            description=booth.description, owner_nickname=owner_nickname,
        ),
        qr_token=booth.qr_token,
        stats=VisitStats(total_visits=total or 0, unique_visitors=unique or 0),
        recent_logs=[map_visit_log(visit, booth.name, student) for visit, student in rows],
    )
