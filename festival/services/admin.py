from __future__ import annotations
from datetime import datetime, timedelta
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Booth, PointLog, PointViolation, Post, User
from ..core.clock import as_utc, utcnow
from ..core.config import get_settings
from ..core.labels import display_name, format_booth_name, format_student_label
from ..schemas import AdminDashboard, AdminRecentPointLog, AdminRecentPost, AdminStats, AdminWarning

settings = get_settings()

PREVIEW_LENGTH = 80
DUPLICATE_AWARD = "DUPLICATE_AWARD"
DUPLICATE_AWARD_SUMMARY = "30분 이내 중복 지급 시도가 차단되었습니다."

def create_post_preview(body: str, length: int = PREVIEW_LENGTH) -> str:
    text = " ".join((body or "").split())
    if len(text) <= length:
        return text
    return text[: length - 1].rstrip() + "…"

async def fetch_admin_dashboard(db: AsyncSession, *, now: datetime | None = None) -> AdminDashboard:
    active_since = as_utc(now or utcnow()) - timedelta(hours=settings.admin_active_booth_window_hours)

    total_awards, total_points = (await db.execute(
        select(func.count(PointLog.id), func.coalesce(func.sum(PointLog.points), 0))
    )).one()
    active_booths = (await db.execute(
        select(func.count(func.distinct(PointLog.booth_id))).where(PointLog.awarded_at >= active_since)
    )).scalar_one()
    total_posts = (await db.execute(select(func.count(Post.id)))).scalar_one()

    posts = (await db.execute(
        select(Post, Booth.name, User)
        .join(User, User.id == Post.author_id)
        .outerjoin(Booth, Booth.id == Post.booth_id)
        .order_by(Post.created_at.desc())
        .limit(settings.admin_recent_post_limit)
    )).all()

    logs = (await db.execute(
        select(PointLog, Booth.name, User)
        .join(User, User.id == PointLog.student_id)
        .outerjoin(Booth, Booth.id == PointLog.booth_id)
        .order_by(PointLog.awarded_at.desc())
        .limit(settings.admin_recent_point_log_limit)
    )).all()

    violations = (await db.execute(
        select(PointViolation, Booth.name, User)
        .join(User, User.id == PointViolation.student_id)
        .outerjoin(Booth, Booth.id == PointViolation.booth_id)
        .order_by(PointViolation.attempted_at.desc())
        .limit(settings.admin_warning_limit)
    )).all()

    return AdminDashboard(
        stats=AdminStats(
            total_awards=total_awards or 0,
            total_points_awarded=int(total_points or 0),
            active_booths=active_booths or 0,
            total_posts=total_posts or 0,
        ),
        recent_posts=[
            AdminRecentPost(
                id=post.id,
                created_at=as_utc(post.created_at),
                booth_name=format_booth_name(booth_name),
                author_nickname=display_name(author),
                preview=create_post_preview(post.body),
            )
            for post, booth_name, author in posts
        ],
        recent_point_logs=[
            AdminRecentPointLog(
                id=log.id,
                awarded_at=as_utc(log.awarded_at),
                booth_name=format_booth_name(booth_name),
                student_nickname=student.nickname,
                student_label=format_student_label(student.grade, student.class_number, student.student_number),
                points=log.points,
            )
            for log, booth_name, student in logs
        ],
        warnings=[
            AdminWarning(
                id=v.id,
                type=DUPLICATE_AWARD,
                severity="warning",
                detected_at=as_utc(v.attempted_at),
                available_at=as_utc(v.available_at),
                booth_name=format_booth_name(booth_name),
                student_nickname=student.nickname,
                student_label=format_student_label(student.grade, student.class_number, student.student_number),
                summary=DUPLICATE_AWARD_SUMMARY,
            )
            for v, booth_name, student in violations
        ],
    )
