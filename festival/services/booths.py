from __future__ import annotations
import uuid
import structlog
from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import transaction
from ..models import Booth, BoothRating, FeatureFlag, User, UserRole
from ..core.clock import as_utc
from ..core.codes import create_unique_code_factory, unique_qr_token
from ..core.errors import BoothAccessDenied, BoothNameTaken, BoothNotFound, InvalidInput, RegistrationClosed
from ..core.labels import NO_STUDENT_ID_LABEL, format_student_id, format_student_label
from ..schemas import (
    BoothProfile, BoothPublicPage, BoothPublicProfile, BoothPublicRatingStats, BoothRegistrationResult,
    BoothReviewItem, BoothReviewPage,
)
from .ratings import round_half_up

logger = structlog.get_logger(__name__)

BOOTH_REGISTRATION_FLAG = "booth-registration"
BOOTH_REGISTRATION_DEFAULT = True
REVIEW_PAGE_DEFAULT_SIZE = 10
REVIEW_PAGE_MAX_SIZE = 30

async def find_owned_booth(db: AsyncSession, owner_id: uuid.UUID) -> Booth:
    booth = (await db.execute(select(Booth).where(Booth.owner_id == owner_id))).scalar_one_or_none()
    if booth is None:
        raise BoothAccessDenied()
    return booth

async def is_booth_registration_open(db: AsyncSession) -> bool:
    flag = await db.get(FeatureFlag, BOOTH_REGISTRATION_FLAG)
    return BOOTH_REGISTRATION_DEFAULT if flag is None else flag.enabled

async def set_booth_registration_open(db: AsyncSession, enabled: bool) -> bool:
    async with transaction(db):
        flag = await db.get(FeatureFlag, BOOTH_REGISTRATION_FLAG)
        if flag is None:
            db.add(FeatureFlag(key=BOOTH_REGISTRATION_FLAG, enabled=enabled))
        else:
            flag.enabled = enabled
    logger.info("feature.updated", key=BOOTH_REGISTRATION_FLAG, enabled=enabled)
    return enabled

async def _name_taken(db: AsyncSession, name: str, exclude_booth_id: uuid.UUID | None = None) -> bool:
    stmt = select(Booth.id).where(func.lower(Booth.name) == name.lower())
    if exclude_booth_id is not None:
        stmt = stmt.where(Booth.id != exclude_booth_id)
    found = (await db.execute(stmt)).first()
    return found is not None

async def register_booth(
    db: AsyncSession,
    *,
    booth_name: str,
    location: str | None = None,
    description: str | None = None,
) -> BoothRegistrationResult:
    """Self-service signup: one BOOTH_MANAGER account plus its booth, created together."""
    name = (booth_name or "").strip()
    if not name:
        raise InvalidInput("부스 이름을 입력해주세요.")
    if not await is_booth_registration_open(db):
        raise RegistrationClosed()
    if await _name_taken(db, name):
        raise BoothNameTaken()

    make_code = await create_unique_code_factory(db)
    try:
        async with transaction(db):
            manager = User(
                role=UserRole.BOOTH_MANAGER,
                code=make_code(),
                nickname=f"{name} 운영팀",
                nickname_locked=True,
                qr_token=await unique_qr_token(db, User),
            )
            db.add(manager)
            await db.flush()
            booth = Booth(
                owner_id=manager.id,
                name=name,
                location=location,
                description=description,
                qr_token=await unique_qr_token(db, Booth),
            )
            db.add(booth)
            await db.flush()
            result = BoothRegistrationResult(
                booth_id=booth.id, booth_name=booth.name, code=manager.code, qr_token=booth.qr_token
            )
    except IntegrityError:
        # lost a race on the booth name (codes and tokens were checked first)
        raise BoothNameTaken() from None
    logger.info("booth.registered", booth_id=str(result.booth_id))
    return result

async def rotate_booth_qr(db: AsyncSession, booth_id: uuid.UUID) -> str:
    async with transaction(db):
        booth = await db.get(Booth, booth_id)
        if booth is None:
            raise BoothAccessDenied()
        booth.qr_token = await unique_qr_token(db, Booth)
        token = booth.qr_token
    return token

def booth_profile(booth: Booth) -> BoothProfile:
    return BoothProfile(name=booth.name, location=booth.location, description=booth.description)

async def update_booth_profile(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    name: str,
    location: str | None = None,
    description: str | None = None,
) -> BoothProfile:
    """Rename/describe the caller's booth. A locked manager nickname follows the new name."""
    new_name = (name or "").strip()
    if not new_name:
        raise InvalidInput("부스 이름을 입력해주세요.")
    try:
        async with transaction(db):
            booth = await find_owned_booth(db, owner_id)
            if await _name_taken(db, new_name, exclude_booth_id=booth.id):
                raise BoothNameTaken()
            booth.name = new_name
            booth.location = location
            booth.description = description
            owner = await db.get(User, owner_id)
            if owner is not None and owner.nickname_locked:
                owner.nickname = f"{new_name} 운영팀"
            await db.flush()
            result = booth_profile(booth)
    except IntegrityError:
        raise BoothNameTaken() from None
    logger.info("booth.profile_updated", owner_id=str(owner_id))
    return result

def mask_student_id(grade, class_number, student_number) -> str:
    student_id = format_student_id(grade, class_number, student_number)
    return f"{student_id[:3]}**" if student_id else NO_STUDENT_ID_LABEL

def clamp_review_page_size(limit: int | None) -> int:
    if limit is None:
        return REVIEW_PAGE_DEFAULT_SIZE
    return min(REVIEW_PAGE_MAX_SIZE, max(1, int(limit)))

async def fetch_booth_public_page(db: AsyncSession, booth_id: uuid.UUID) -> BoothPublicPage:
    booth = await db.get(Booth, booth_id)
    if booth is None:
        raise BoothNotFound("부스를 찾을 수 없습니다.")
    average, count = (await db.execute(
        select(func.avg(BoothRating.score), func.count(BoothRating.id)).where(BoothRating.booth_id == booth_id)
    )).one()
    reviews = (await db.execute(
        select(func.count(BoothRating.id)).where(BoothRating.booth_id == booth_id, BoothRating.review.is_not(None))
    )).scalar_one()
    return BoothPublicPage(
        booth=BoothPublicProfile(id=booth.id, name=booth.name, location=booth.location, description=booth.description),
        stats=BoothPublicRatingStats(
            average_rating=round_half_up(float(average), 1) if average is not None else None,
            rating_count=count or 0,
            review_count=reviews or 0,
        ),
    )

async def fetch_booth_review_page(
    db: AsyncSession,
    *,
    booth_id: uuid.UUID,
    cursor: uuid.UUID | None = None,
    limit: int | None = None,
) -> BoothReviewPage:
    """Written reviews, most recently edited first; ``cursor`` is the last rating id of the previous page."""
    if (await db.execute(select(Booth.id).where(Booth.id == booth_id))).first() is None:
        raise BoothNotFound("부스를 찾을 수 없습니다.")
    size = clamp_review_page_size(limit)

    stmt = (
        select(BoothRating, User)
        .join(User, User.id == BoothRating.student_id)
        .where(BoothRating.booth_id == booth_id, BoothRating.review.is_not(None))
        .order_by(BoothRating.updated_at.desc(), BoothRating.id.desc())
        .limit(size + 1)
    )
    if cursor is not None:
        anchor = (await db.execute(
            select(BoothRating.updated_at, BoothRating.id)
            .where(BoothRating.id == cursor, BoothRating.booth_id == booth_id)
        )).first()
        if anchor is None:
            raise InvalidInput("잘못된 페이지 커서입니다.")
        stmt = stmt.where(or_(
            BoothRating.updated_at < anchor.updated_at,
            and_(BoothRating.updated_at == anchor.updated_at, BoothRating.id < anchor.id),
        ))

    rows = (await db.execute(stmt)).all()
    visible = rows[:size]
    items = [
        BoothReviewItem(
            id=rating.id,
            score=rating.score,
            review=rating.review.strip(),
            updated_at=as_utc(rating.updated_at),
            student_masked_id=mask_student_id(student.grade, student.class_number, student.student_number),
            student_label=format_student_label(student.grade, None, None),
        )
        for rating, student in visible
        if rating.review and rating.review.strip()
    ]
    next_cursor = visible[-1][0].id if len(rows) > size and visible else None
    return BoothReviewPage(items=items, next_cursor=next_cursor)
