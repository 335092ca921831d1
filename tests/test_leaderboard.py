from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from festival.services.leaderboard import BoothVisitTotals, fetch_booth_leaderboard, rank_leaderboard_rows
from festival.services.ratings import RatingAggregate
from festival.services.trending import (
    build_candidate, clamp_positive_int, fetch_trending_booths, normalize_rating, rank_candidates,
    smooth_average, trending_score,
)
from festival.services.visits import record_visit

T0 = datetime(2024, 5, 12, 9, 0, tzinfo=timezone.utc)


def _row(name: str, visits: int) -> BoothVisitTotals:
    return BoothVisitTotals(id=uuid.uuid4(), name=name, location=None, owner_nickname=None, total_visits=visits)


def test_dense_rank_with_ties():
    a, b, c, d = _row("다", 10), _row("가", 10), _row("나", 7), _row("라", 3)
    ratings = {a.id: RatingAggregate(average=4.0, count=2)}

    entries = rank_leaderboard_rows([d, c, b, a], ratings)

    assert [(e.booth_name, e.rank) for e in entries] == [("다", 1), ("가", 1), ("나", 2), ("라", 3)]
    assert entries[0].average_rating == 4.0
    assert entries[0].rating_count == 2
    assert entries[1].average_rating is None
    assert entries[1].rating_count == 0


def test_ties_without_ratings_sort_by_name():
    entries = rank_leaderboard_rows([_row("Beta", 1), _row("alpha", 1)], {})
    assert [e.booth_name for e in entries] == ["alpha", "Beta"]
    assert {e.rank for e in entries} == {1}


def test_average_is_rounded_half_up():
    row = _row("가", 1)
    (entry,) = rank_leaderboard_rows([row], {row.id: RatingAggregate(average=3.25, count=4)})
    assert entry.average_rating == 3.3


@pytest.mark.parametrize("raw, expected", [(5, 5), (2.9, 2), (0, 1), (-4, 1), ("x", 1), (float("nan"), 1), (None, 1)])
def test_clamp_positive_int(raw, expected):
    assert clamp_positive_int(raw) == expected


def test_rating_normalization_and_score():
    assert normalize_rating(3) == 0
    assert normalize_rating(5) == 1
    assert normalize_rating(1) == -1
    assert trending_score(10, 5, 0.3) == pytest.approx(13)
    assert trending_score(10, 1, 0.3) == pytest.approx(7)
    assert trending_score(10, 3, 0.3) == pytest.approx(10)


def test_smoothing_pulls_toward_global_average():
    assert smooth_average(5, 1, 3, 3) == pytest.approx(3.5)
    assert smooth_average(5, 1, 3, 0) == pytest.approx(5)
    assert smooth_average(5, 1, 3, -2) == pytest.approx(5)


def test_candidate_without_recent_ratings_uses_global():
    candidate = build_candidate(
        booth_id=uuid.uuid4(), name="게임존", location=None, recent_visits=4, total_visits=9,
        recent_rating=None, global_rating=RatingAggregate(average=5.0, count=2),
        rating_weight=0.3, smoothing_weight=3,
    )
    assert candidate.rating_scope == "all"
    assert candidate.rating_average == 5.0
    assert candidate.rating_count == 2
    assert candidate.score == pytest.approx(4 * 1.3)


def test_candidate_without_any_rating_is_neutral():
    candidate = build_candidate(
        booth_id=uuid.uuid4(), name="게임존", location=None, recent_visits=4, total_visits=4,
        recent_rating=None, global_rating=None, rating_weight=0.3, smoothing_weight=3,
    )
    assert candidate.rating_average is None
    assert candidate.score == pytest.approx(4)


def test_rank_candidates_breaks_ties_and_limits():
    def cand(name, recent, total):
        return build_candidate(
            booth_id=uuid.uuid4(), name=name, location=None, recent_visits=recent, total_visits=total,
            recent_rating=None, global_rating=None, rating_weight=0.3, smoothing_weight=3,
        )

    entries = rank_candidates([cand("다", 2, 2), cand("가", 2, 5), cand("나", 2, 5), cand("라", 9, 9)], limit=3)
    assert [e.booth_name for e in entries] == ["라", "가", "나"]
    assert [e.rank for e in entries] == [1, 2, 3]


async def test_booth_leaderboard_from_visits(db, factory):
    busy = await factory.booth("게임존")
    quiet = await factory.booth("포토존")
    empty = await factory.booth("만화방")
    for number in (1, 2):
        student = await factory.student(student_number=number)
        await record_visit(db, student_id=student.id, booth_token=busy.qr_token, now=T0)
    student = await factory.student(student_number=3)
    await record_visit(db, student_id=student.id, booth_token=quiet.qr_token, now=T0)

    result = await fetch_booth_leaderboard(db)

    assert result.total_booths == 3
    assert [(e.id, e.rank, e.total_visits) for e in result.entries] == [
        (busy.id, 1, 2), (quiet.id, 2, 1), (empty.id, 3, 0),
    ]
    assert result.entries[0].owner_nickname == "게임존 운영팀"


async def test_trending_counts_recent_window(db, factory):
    one = await factory.booth("게임존")
    two = await factory.booth("포토존")
    for number in (1, 2):
        student = await factory.student(student_number=number)
        await record_visit(db, student_id=student.id, booth_token=two.qr_token, now=T0 - timedelta(minutes=2))
    student = await factory.student(student_number=3)
    await record_visit(db, student_id=student.id, booth_token=one.qr_token, now=T0 - timedelta(hours=2))

    result = await fetch_trending_booths(db, window_minutes=10, limit=3, now=T0)

    assert result.source == "recent"
    assert result.window_minutes == 10
    assert [(e.id, e.recent_visit_count) for e in result.entries] == [(two.id, 2)]


async def test_trending_falls_back_to_history(db, factory):
    booth = await factory.booth()
    student = await factory.student()
    await record_visit(db, student_id=student.id, booth_token=booth.qr_token, now=T0)

    result = await fetch_trending_booths(db, window_minutes=10, now=T0 + timedelta(days=1))

    assert result.source == "history"
    assert [(e.id, e.recent_visit_count, e.rank) for e in result.entries] == [(booth.id, 1, 1)]


async def test_trending_empty(db):
    result = await fetch_trending_booths(db, now=T0)
    assert result.entries == []
    assert result.source == "recent"
