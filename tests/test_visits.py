from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from festival.core.errors import BoothNotFound, DuplicateVisit
from festival.models import BoothRating, BoothVisit, User, VisitViolation
from festival.services import visits as visit_service
from festival.services.visits import fetch_booth_visits_dashboard, record_visit

T0 = datetime(2024, 5, 12, 9, 0, tzinfo=timezone.utc)


async def test_record_visit_returns_labelled_log(db, factory):
    booth = await factory.booth("게임존")
    student = await factory.student(grade=1, class_number=2, student_number=7)

    result = await record_visit(db, student_id=student.id, booth_token=f" {booth.qr_token} ", now=T0)

    assert result.total_visit_count == 1
    assert result.visit.booth_name == "게임존"
    assert result.visit.student_identifier == "10207"
    assert result.visit.student_label == "1학년 2반 7번"
    assert result.visit.visited_at == T0
    assert result.rating_status.has_rated is False
    assert result.rating_status.score is None


async def test_visit_counter_accumulates_across_booths(db, factory):
    one = await factory.booth("게임존")
    two = await factory.booth("포토존")
    student = await factory.student()
    await record_visit(db, student_id=student.id, booth_token=one.qr_token, now=T0)
    second = await record_visit(db, student_id=student.id, booth_token=two.qr_token, now=T0 + timedelta(minutes=1))
    assert second.total_visit_count == 2


async def test_second_visit_to_same_booth_is_duplicate(db, factory):
    booth = await factory.booth()
    student = await factory.student()
    booth_id, student_id, token = booth.id, student.id, booth.qr_token
    await record_visit(db, student_id=student_id, booth_token=token, now=T0)

    with pytest.raises(DuplicateVisit) as info:
        await record_visit(db, student_id=student_id, booth_token=token, now=T0 + timedelta(days=1))

    assert info.value.last_visited_at == T0
    assert info.value.to_payload()["lastVisitedAt"] == "2024-05-12T09:00:00Z"
    assert (await db.execute(select(func.count(BoothVisit.id)))).scalar_one() == 1
    assert (await db.execute(select(User.visit_count).where(User.id == student_id))).scalar_one() == 1

    violation = (await db.execute(select(VisitViolation))).scalar_one()
    assert violation.booth_id == booth_id
    assert violation.student_id == student_id


@pytest.mark.parametrize("token", ["", "   ", "no-such-booth"])
async def test_unknown_booth_token(db, factory, token):
    student = await factory.student()
    with pytest.raises(BoothNotFound):
        await record_visit(db, student_id=student.id, booth_token=token, now=T0)


async def test_rating_status_reflects_existing_rating(db, factory):
    booth = await factory.booth()
    student = await factory.student()
    db.add(BoothRating(booth_id=booth.id, student_id=student.id, score=4))
    await db.commit()

    result = await record_visit(db, student_id=student.id, booth_token=booth.qr_token, now=T0)
    assert result.rating_status.has_rated is True
    assert result.rating_status.score == 4


async def test_visit_dashboard_counts_unique_visitors(db, factory):
    booth = await factory.booth("게임존")
    other = await factory.booth("포토존")
    a = await factory.student(student_number=1)
    b = await factory.student(student_number=2, grade=None, class_number=None)
    await record_visit(db, student_id=a.id, booth_token=booth.qr_token, now=T0)
    await record_visit(db, student_id=b.id, booth_token=booth.qr_token, now=T0 + timedelta(minutes=5))
    await record_visit(db, student_id=a.id, booth_token=other.qr_token, now=T0 + timedelta(minutes=6))

    dash = await fetch_booth_visits_dashboard(db, booth)

    assert dash.stats.total_visits == 2
    assert dash.stats.unique_visitors == 2
    assert dash.qr_token == booth.qr_token
    assert [log.student_id for log in dash.recent_logs] == [b.id, a.id]
    assert dash.recent_logs[0].student_label == "2번"
    assert dash.recent_logs[0].student_identifier == "학번 미지정"


async def test_unique_key_reports_duplicate_when_check_misses_the_race(db, factory, monkeypatch):
    booth = await factory.booth()
    student = await factory.student()
    booth_id, student_id, token = booth.id, student.id, booth.qr_token
    await record_visit(db, student_id=student_id, booth_token=token, now=T0)

    real_last_visit_at = visit_service._last_visit_at
    calls = []

    async def stale_then_real(session, b_id, s_id):
        calls.append(b_id)
        if len(calls) == 1:
            return None
        return await real_last_visit_at(session, b_id, s_id)

    monkeypatch.setattr(visit_service, "_last_visit_at", stale_then_real)

    with pytest.raises(DuplicateVisit) as info:
        await record_visit(db, student_id=student_id, booth_token=token, now=T0 + timedelta(minutes=1))

    assert len(calls) == 2
    assert info.value.last_visited_at == T0
    assert (await db.execute(select(func.count(BoothVisit.id)))).scalar_one() == 1
    assert (await db.execute(select(func.count(VisitViolation.id)))).scalar_one() == 1
    assert (await db.execute(select(User.visit_count).where(User.id == student_id))).scalar_one() == 1
