from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from festival.core.errors import DuplicateAward
from festival.models import Post
from festival.services.admin import DUPLICATE_AWARD, create_post_preview, fetch_admin_dashboard
from festival.services.points import award_points

T0 = datetime(2024, 5, 12, 9, 0, tzinfo=timezone.utc)


def test_short_preview_is_whitespace_collapsed():
    assert create_post_preview("  오늘\n\n공연   안내 ") == "오늘 공연 안내"


def test_long_preview_is_truncated_with_ellipsis():
    preview = create_post_preview("가" * 100)
    assert len(preview) == 80
    assert preview.endswith("…")
    assert create_post_preview("가" * 80) == "가" * 80


async def test_dashboard_on_empty_database(db):
    dash = await fetch_admin_dashboard(db, now=T0)
    assert dash.stats.total_awards == 0
    assert dash.stats.total_points_awarded == 0
    assert dash.stats.active_booths == 0
    assert dash.recent_posts == []
    assert dash.warnings == []


async def test_dashboard_stats_and_warnings(db, factory):
    busy = await factory.booth("게임존")
    stale = await factory.booth("포토존")
    student = await factory.student(nickname="은하토끼")
    busy_id, stale_id, token = busy.id, stale.id, student.qr_token
    db.add(Post(author_id=busy.owner_id, booth_id=busy_id, body="공연 " * 40, created_at=T0))
    await db.commit()

    await award_points(db, booth_id=stale_id, qr_token=token, now=T0 - timedelta(days=2))
    await award_points(db, booth_id=busy_id, qr_token=token, now=T0 - timedelta(minutes=20))
    with pytest.raises(DuplicateAward):
        await award_points(db, booth_id=busy_id, qr_token=token, now=T0 - timedelta(minutes=5))

    dash = await fetch_admin_dashboard(db, now=T0)

    assert dash.stats.total_awards == 2
    assert dash.stats.total_points_awarded == 2
    assert dash.stats.active_booths == 1
    assert dash.stats.total_posts == 1
    assert dash.recent_posts[0].booth_name == "게임존"
    assert dash.recent_posts[0].preview.endswith("…")
    assert [log.booth_name for log in dash.recent_point_logs] == ["게임존", "포토존"]

    (warning,) = dash.warnings
    assert warning.type == DUPLICATE_AWARD
    assert warning.severity == "warning"
    assert warning.booth_name == "게임존"
    assert warning.student_nickname == "은하토끼"
    assert warning.available_at == T0 + timedelta(minutes=10)
