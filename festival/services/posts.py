from __future__ import annotations
import shutil
import uuid
from pathlib import Path
import structlog
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import transaction
from ..models import Booth, Heart, Post, User, UserRole
from ..core.clock import as_utc, utcnow
from ..core.config import get_settings
from ..core.errors import InvalidInput, PostDeleteForbidden, PostNotFound
from ..core.labels import display_name, format_booth_name
from ..schemas import FeedPage, PostFeedItem
from .booths import find_owned_booth

settings = get_settings()
logger = structlog.get_logger(__name__)

UPLOAD_URL_PREFIX = "/uploads"
IMAGE_EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg", "image/webp": "webp"}

def clamp_page_size(limit: int | None) -> int:
    if not limit or limit <= 0:
        return settings.feed_page_default_size
    return min(int(limit), settings.feed_page_max_size)

def to_public_image_url(image_path: str | None) -> str | None:
    if not image_path:
        return None
    return f"{UPLOAD_URL_PREFIX}/{image_path.lstrip('/')}"

async def fetch_feed_page(
    db: AsyncSession,
    *,
    viewer_id: uuid.UUID | None = None,
    limit: int | None = None,
    cursor: uuid.UUID | None = None,
) -> FeedPage:
    """Newest first, keyed on (created_at, id); ``cursor`` is the last id of the previous page."""
    size = clamp_page_size(limit)
    heart_count = (
        select(func.count(Heart.id)).where(Heart.post_id == Post.id).correlate(Post).scalar_subquery()
    )
    columns = [Post, User, Booth.name, Booth.location, heart_count]
    if viewer_id is not None:
        columns.append(select(Heart.id).where(Heart.post_id == Post.id, Heart.user_id == viewer_id).exists())

    stmt = (
        select(*columns)
        .join(User, User.id == Post.author_id)
        .outerjoin(Booth, Booth.id == Post.booth_id)
        .order_by(Post.created_at.desc(), Post.id.desc())
        .limit(size + 1)
    )
    if cursor is not None:
        anchor = (await db.execute(select(Post.created_at, Post.id).where(Post.id == cursor))).first()
        if anchor is None:
            raise InvalidInput("잘못된 페이지 커서입니다.")
        stmt = stmt.where(or_(
            Post.created_at < anchor.created_at,
            and_(Post.created_at == anchor.created_at, Post.id < anchor.id),
        ))

    rows = (await db.execute(stmt)).all()
    has_more = len(rows) > size
    visible = rows[:size]
    items = [
        PostFeedItem(
            id=row[0].id,
            body=row[0].body,
            image_url=to_public_image_url(row[0].image_path),
            created_at=as_utc(row[0].created_at),
            author_id=row[1].id,
            booth_name=format_booth_name(row[2]),
            booth_location=row[3],
            author_nickname=display_name(row[1]),
            heart_count=row[4] or 0,
            viewer_has_heart=bool(row[5]) if viewer_id is not None else False,
        )
        for row in visible
    ]
    return FeedPage(items=items, next_cursor=items[-1].id if has_more and items else None)

def _validate_body(body: str) -> str:
    text = (body or "").strip()
    if not text:
        raise InvalidInput("게시글 내용을 입력해주세요.")
    if len(text) > settings.post_body_max_length:
        raise InvalidInput(f"게시글은 최대 {settings.post_body_max_length}자까지 작성할 수 있습니다.")
    return text

def _image_extension(content_type: str | None, size: int) -> str:
    ext = IMAGE_EXTENSIONS.get((content_type or "").lower())
    if ext is None:
        raise InvalidInput("PNG, JPG, WEBP 이미지만 업로드할 수 있습니다.")
    if size <= 0:
        raise InvalidInput("이미지 파일이 비어 있습니다.")
    if size > settings.post_image_max_bytes:
        raise InvalidInput("이미지는 최대 5MB까지 업로드할 수 있습니다.")
    return ext

def _upload_root() -> Path:
    return Path(settings.upload_dir).resolve()

def _write_image(relative: str, data: bytes) -> None:
    target = _upload_root() / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)

def _remove_post_dir(post_id: uuid.UUID) -> None:
    folder = _upload_root() / "posts" / str(post_id)
    if folder.exists():
        shutil.rmtree(folder)

async def remove_post_assets(post_id: uuid.UUID, image_path: str | None) -> None:
    """Best effort: a leftover directory is logged, never raised."""
    if not image_path:
        return
    try:
        await run_in_threadpool(_remove_post_dir, post_id)
    except OSError:
        logger.warning("post.asset_cleanup_failed", post_id=str(post_id), exc_info=True)

async def create_post(
    db: AsyncSession,
    *,
    author: User,
    body: str,
    image: bytes | None = None,
    content_type: str | None = None,
) -> PostFeedItem:
    text = _validate_body(body)
    booth = await find_owned_booth(db, author.id)
    ext = _image_extension(content_type, len(image)) if image is not None else None

    post_id = uuid.uuid4()
    image_path = f"posts/{post_id}/{uuid.uuid4().hex}.{ext}" if ext else None
    if image_path:
        await run_in_threadpool(_write_image, image_path, image)

    try:
        async with transaction(db):
            post = Post(
                id=post_id, author_id=author.id, booth_id=booth.id,
                body=text, image_path=image_path, created_at=utcnow(),
            )
            db.add(post)
            await db.flush()
            item = PostFeedItem(
                id=post.id,
                body=post.body,
                image_url=to_public_image_url(post.image_path),
                created_at=as_utc(post.created_at),
                author_id=author.id,
                booth_name=format_booth_name(booth.name),
                booth_location=booth.location,
                author_nickname=display_name(author),
                heart_count=0,
                viewer_has_heart=False,
            )
    except SQLAlchemyError:
        await remove_post_assets(post_id, image_path)
        raise
    logger.info("post.created", post_id=str(post_id), booth_id=str(booth.id))
    return item

async def delete_post(db: AsyncSession, *, post_id: uuid.UUID, requester: User) -> None:
    post = await db.get(Post, post_id)
    if post is None:
        raise PostNotFound()
    if post.author_id != requester.id and requester.role != UserRole.ADMIN:
        raise PostDeleteForbidden()
    image_path = post.image_path

    async with transaction(db):
        await db.execute(delete(Heart).where(Heart.post_id == post_id))
        await db.execute(delete(Post).where(Post.id == post_id))

    await remove_post_assets(post_id, image_path)
    logger.info("post.deleted", post_id=str(post_id), by=str(requester.id))
