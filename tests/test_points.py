from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from festival.core.errors import DuplicateAward, StudentNotFound
from festival.models import PointLog, PointViolation, User
from festival.services import points as point_service
from festival.services.points import award_points, fetch_booth_points_dashboard

T0 = datetime(2024, 5, 12, 9, 0, tzinfo=timezone.utc)


async def _points_of(db, user_id) -> int:
    return (await db.execute(select(User.points).where(User.id == user_id))).scalar_one()


async def test_award_creates_log_and_credits_student(db, factory):
    booth = await factory.booth()
    student = await factory.student(nickname="은하토끼")

    item = await award_points(db, booth_id=booth.id, qr_token=f"  {student.qr_token} ", now=T0)

    assert item.points == 1
    assert item.student_id == student.id
    assert item.student_label == "1학년 2반 7번"
    assert item.awarded_at == T0
    assert await _points_of(db, student.id) == 1


async def test_second_award_in_window_reports_first_plus_window(db, factory):
    booth = await factory.booth()
    student = await factory.student()
    # a rejected award rolls the session back, which expires loaded rows
    booth_id, student_id, token = booth.id, student.id, student.qr_token
    first = await award_points(db, booth_id=booth_id, qr_token=token, now=T0)

    with pytest.raises(DuplicateAward) as info:
        await award_points(db, booth_id=booth_id, qr_token=token, now=T0 + timedelta(minutes=12))

    assert info.value.available_at == first.awarded_at + timedelta(minutes=30)
    assert (await db.execute(select(func.count(PointLog.id)))).scalar_one() == 1
    assert await _points_of(db, student_id) == 1

    violation = (await db.execute(select(PointViolation))).scalar_one()
    assert violation.student_id == student_id
    assert violation.booth_id == booth_id


async def test_award_allowed_again_after_window(db, factory):
    booth = await factory.booth()
    student = await factory.student()
    await award_points(db, booth_id=booth.id, qr_token=student.qr_token, now=T0)
    await award_points(db, booth_id=booth.id, qr_token=student.qr_token, now=T0 + timedelta(minutes=30))
    assert await _points_of(db, student.id) == 2


async def test_cooldown_is_scoped_to_the_booth(db, factory):
    one = await factory.booth("게임존")
    two = await factory.booth("포토존")
    student = await factory.student()
    await award_points(db, booth_id=one.id, qr_token=student.qr_token, now=T0)
    await award_points(db, booth_id=two.id, qr_token=student.qr_token, now=T0 + timedelta(minutes=1))
    assert await _points_of(db, student.id) == 2


async def test_unknown_or_non_student_token_is_student_not_found(db, factory):
    booth = await factory.booth()
    manager = await factory.manager_of(booth)
    booth_id, tokens = booth.id, ("", "   ", "missing-token", manager.qr_token)
    for token in tokens:
        with pytest.raises(StudentNotFound):
            await award_points(db, booth_id=booth_id, qr_token=token, now=T0)


async def test_points_dashboard_totals(db, factory):
    booth = await factory.booth()
    other = await factory.booth("포토존")
    a = await factory.student(student_number=1)
    b = await factory.student(student_number=2)
    await award_points(db, booth_id=booth.id, qr_token=a.qr_token, now=T0)
    await award_points(db, booth_id=booth.id, qr_token=b.qr_token, now=T0 + timedelta(minutes=1))
    await award_points(db, booth_id=booth.id, qr_token=a.qr_token, now=T0 + timedelta(minutes=40))
    await award_points(db, booth_id=other.id, qr_token=a.qr_token, now=T0)

    dash = await fetch_booth_points_dashboard(db, booth)
    assert dash.stats.total_awards == 3
    assert dash.stats.total_points == 3
    assert [log.awarded_at for log in dash.recent_logs] == [
        T0 + timedelta(minutes=40), T0 + timedelta(minutes=1), T0,
    ]
    assert dash.booth.owner_nickname == "게임존 운영팀"


async def test_empty_points_dashboard(db, factory):
    booth = await factory.booth()
    dash = await fetch_booth_points_dashboard(db, booth)
    assert dash.stats.total_awards == 0
    assert dash.stats.total_points == 0
    assert dash.recent_logs == []


async def test_slot_key_reports_duplicate_when_check_misses_the_race(db, factory, monkeypatch):
    booth = await factory.booth()
    student = await factory.student()
    booth_id, student_id, token = booth.id, student.id, student.qr_token
    first = await award_points(db, booth_id=booth_id, qr_token=token, now=T0)

    real_last_award_at = point_service._last_award_at
    calls = []

    async def stale_then_real(session, b_id, s_id):
        calls.append(b_id)
        if len(calls) == 1:
            return None
        return await real_last_award_at(session, b_id, s_id)

    monkeypatch.setattr(point_service, "_last_award_at", stale_then_real)

    with pytest.raises(DuplicateAward) as info:
        await award_points(db, booth_id=booth_id, qr_token=token, now=T0 + timedelta(minutes=5))

    assert len(calls) == 2
    assert info.value.available_at == first.awarded_at + timedelta(minutes=30)
    assert (await db.execute(select(func.count(PointLog.id)))).scalar_one() == 1
    assert await _points_of(db, student_id) == 1
    violation = (await db.execute(select(PointViolation))).scalar_one()
    assert violation.available_at.replace(tzinfo=timezone.utc) == T0 + timedelta(minutes=30)
