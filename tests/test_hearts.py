from __future__ import annotations

import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from festival.core.errors import PostNotFound
from festival.models import Heart, Post
from festival.schemas import ToggleHeartResult
from festival.services.hearts import toggle_heart


async def _post(db, factory) -> Post:
    booth = await factory.booth()
    post = Post(author_id=booth.owner_id, booth_id=booth.id, body="오늘 3시 공연!")
    db.add(post)
    await db.commit()
    return post


async def test_toggle_twice_restores_state(db, factory):
    post = await _post(db, factory)
    other = await factory.student(student_number=1)
    viewer = await factory.student(student_number=2)
    db.add(Heart(post_id=post.id, user_id=other.id))
    await db.commit()

    on = await toggle_heart(db, post_id=post.id, user_id=viewer.id)
    assert on.hearted is True
    assert on.total_hearts == 2

    off = await toggle_heart(db, post_id=post.id, user_id=viewer.id)
    assert off.hearted is False
    assert off.total_hearts == 1


async def test_toggle_starting_from_hearted(db, factory):
    post = await _post(db, factory)
    viewer = await factory.student()
    db.add(Heart(post_id=post.id, user_id=viewer.id))
    await db.commit()

    first = await toggle_heart(db, post_id=post.id, user_id=viewer.id)
    second = await toggle_heart(db, post_id=post.id, user_id=viewer.id)
    assert (first.hearted, first.total_hearts) == (False, 0)
    assert (second.hearted, second.total_hearts) == (True, 1)


async def test_missing_post(db, factory):
    viewer = await factory.student()
    with pytest.raises(PostNotFound):
        await toggle_heart(db, post_id=uuid.uuid4(), user_id=viewer.id)


async def test_concurrent_create_settles_as_hearted(db, factory, session_maker, monkeypatch):
    post = await _post(db, factory)
    viewer = await factory.student()
    post_id, viewer_id = post.id, viewer.id

    real_flush = AsyncSession.flush
    async with session_maker() as racer, session_maker() as loser:
        raced = []

        async def flush_after_racer(self, objects=None):
            # the other request commits its heart between our check and our insert
            if self is loser and not raced:
                raced.append(await toggle_heart(racer, post_id=post_id, user_id=viewer_id))
            return await real_flush(self, objects)

        monkeypatch.setattr(AsyncSession, "flush", flush_after_racer)
        result = await toggle_heart(loser, post_id=post_id, user_id=viewer_id)

    assert raced == [ToggleHeartResult(hearted=True, total_hearts=1)]
    assert result == ToggleHeartResult(hearted=True, total_hearts=1)
    assert (await db.execute(select(func.count(Heart.id)).where(Heart.post_id == post_id))).scalar_one() == 1
