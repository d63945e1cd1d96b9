import logging
from collections import defaultdict

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.feed import Comment, Post, PostLike, PostMedia
from models.profile import Profile
from nuggetdepot.utils.text import display_name, normalize_bucket
from nuggetdepot.utils.tokens import decode_cursor, encode_cursor
from schemas.feed import CommentView, MediaDescriptor, PostCard, TimelinePage

logger = logging.getLogger("nuggetdepot.timeline")

PREVIEW_COMMENTS = 2


async def load_display_names(db: AsyncSession, customer_ids) -> dict[str, str]:
    ids = sorted({cid for cid in customer_ids if cid})
    if not ids:
        return {}
    try:
        rows = await db.execute(select(Profile).where(Profile.customer_id.in_(ids)))
    except SQLAlchemyError:
        logger.exception("display name lookup failed")
        return {}
    return {p.customer_id: display_name(p) for p in rows.scalars().all()}


async def _like_counts(db: AsyncSession, post_ids: list[int]) -> dict[int, int]:
    rows = await db.execute(
        select(PostLike.post_id, func.count(PostLike.id)).where(PostLike.post_id.in_(post_ids)).group_by(PostLike.post_id)
    )
    return {post_id: count for post_id, count in rows}


async def _liked_by(db: AsyncSession, post_ids: list[int], viewer: str) -> set[int]:
    rows = await db.execute(
        select(PostLike.post_id).where(PostLike.post_id.in_(post_ids), PostLike.customer_id == viewer)
    )
    return {post_id for (post_id,) in rows}


async def _comment_counts(db: AsyncSession, post_ids: list[int]) -> dict[int, int]:
    rows = await db.execute(
        select(Comment.post_id, func.count(Comment.id)).where(Comment.post_id.in_(post_ids)).group_by(Comment.post_id)
    )
    return {post_id: count for post_id, count in rows}


async def _comment_previews(db: AsyncSession, post_ids: list[int]) -> dict[int, list[Comment]]:
    rank = func.row_number().over(
        partition_by=Comment.post_id,
        order_by=(Comment.created_at.desc(), Comment.id.desc()),
    ).label("rank")
    ranked = (
        select(Comment.id, Comment.post_id, Comment.customer_id, Comment.body, Comment.created_at, rank)
        .where(Comment.post_id.in_(post_ids))
        .subquery()
    )
    rows = await db.execute(
        select(ranked)
        .where(ranked.c.rank <= PREVIEW_COMMENTS)
        .order_by(ranked.c.post_id, ranked.c.created_at, ranked.c.id)
    )
    previews: dict[int, list] = defaultdict(list)
    for row in rows.mappings():
        previews[row["post_id"]].append(row)
    return previews


async def _media_descriptors(db: AsyncSession, post_ids: list[int]) -> dict[int, MediaDescriptor]:
    rows = await db.execute(
        select(PostMedia.post_id, PostMedia.mime)
        .where(PostMedia.post_id.in_(post_ids))
        .order_by(PostMedia.post_id, PostMedia.ordinal)
    )
    mimes: dict[int, list[str]] = defaultdict(list)
    for post_id, mime in rows:
        mimes[post_id].append(mime)
    return {post_id: MediaDescriptor(count=len(items), mimes=items) for post_id, items in mimes.items()}


async def _degrade(label: str, coro, default):
    try:
        return await coro
    except SQLAlchemyError:
        logger.exception("enrichment pass failed: %s", label)
        return default


def comment_view(row, names: dict[str, str]) -> CommentView:
    return CommentView(
        id=row["id"],
        post_id=row["post_id"],
        customer_id=row["customer_id"],
        author_name=names.get(row["customer_id"], "Member"),
        body=row["body"],
        created_at=row["created_at"],
    )


async def enrich_posts(db: AsyncSession, posts: list[Post], viewer: str | None) -> list[PostCard]:
    """Attach counts, the viewer's like state, comment previews and media to ``posts``.

    Every pass is a single batched query over the page's ids; a failing pass
    leaves its field at the default instead of failing the page.
    """
    post_ids = [p.id for p in posts]
    if not post_ids:
        return []
    like_counts = await _degrade("likes", _like_counts(db, post_ids), {})
    liked = await _degrade("liked", _liked_by(db, post_ids, viewer), set()) if viewer else set()
    comment_counts = await _degrade("comment_counts", _comment_counts(db, post_ids), {})
    previews = await _degrade("previews", _comment_previews(db, post_ids), {})
    media = await _degrade("media", _media_descriptors(db, post_ids), {})

    author_ids = {p.customer_id for p in posts}
    for rows in previews.values():
        author_ids.update(r["customer_id"] for r in rows)
    names = await load_display_names(db, author_ids)

    return [
        PostCard(
            id=p.id,
            customer_id=p.customer_id,
            author_name=names.get(p.customer_id, "Member"),
            body=p.body or "",
            bucket=p.bucket,
            created_at=p.created_at,
            like_count=like_counts.get(p.id, 0),
            liked_by_me=p.id in liked,
            comment_count=comment_counts.get(p.id, 0),
            comments=[comment_view(r, names) for r in previews.get(p.id, [])],
            media=media.get(p.id) or MediaDescriptor(),
        ) for p in posts
    ]


async def read_timeline(
    db: AsyncSession | None,
    shop: str,
    viewer_customer_id: str | None,
    bucket: str | None,
    limit: int,
    cursor: str | None = None,
    *,
    author: str | None = None,
) -> TimelinePage:
    """Return one page of ``bucket`` for ``shop``, newest first.

    ``next_cursor`` is empty when the page came back short, which tells the
    caller there is nothing more to fetch.
    """
    if db is None or not shop or limit <= 0:
        return TimelinePage()
    bucket = normalize_bucket(bucket)
    query = select(Post).where(Post.shop == shop, Post.bucket == bucket)
    if author:
        query = query.where(Post.customer_id == author)
    position = decode_cursor(cursor)
    if position is not None:
        created_at, post_id = position
        query = query.where(or_(
            Post.created_at < created_at,
            and_(Post.created_at == created_at, Post.id < post_id),
        ))
    query = query.order_by(Post.created_at.desc(), Post.id.desc()).limit(limit)
    try:
        posts = (await db.execute(query)).scalars().all()
        items = await enrich_posts(db, list(posts), viewer_customer_id)
    except SQLAlchemyError:
        logger.exception("timeline read failed shop=%s bucket=%s", shop, bucket)
        return TimelinePage()
    next_cursor = ""
    if len(posts) == limit:
        last = posts[-1]
        next_cursor = encode_cursor(last.created_at, last.id)
    return TimelinePage(items=items, next_cursor=next_cursor)
