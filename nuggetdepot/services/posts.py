import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.feed import Comment, Post, PostLike, PostMedia
from nuggetdepot.errors import InvalidInput
from nuggetdepot.services.timeline import enrich_posts, load_display_names
from nuggetdepot.utils.media import MediaBlob
from nuggetdepot.utils.text import COMMENT_BODY_MAX, POST_BODY_MAX, clean_text, normalize_bucket
from schemas.feed import CommentView, LikeResult, PostDetail

logger = logging.getLogger("nuggetdepot.posts")

MEDIA_REQUIRED_BUCKETS = {"collection", "trades"}


async def create_post(
    db: AsyncSession,
    *,
    shop: str,
    customer_id: str,
    body: str | None,
    bucket: str | None,
    media: list[MediaBlob],
) -> Post:
    bucket = normalize_bucket(bucket)
    body = clean_text(body, POST_BODY_MAX)
    if bucket in MEDIA_REQUIRED_BUCKETS and not media:
        raise InvalidInput("media", f"{bucket} posts need at least one photo")
    if not body and not media:
        raise InvalidInput("empty", "post has no text and no media")
    post = Post(shop=shop, customer_id=customer_id, body=body, bucket=bucket)
    db.add(post)
    await db.flush()
    for index, blob in enumerate(media):
        db.add(PostMedia(post_id=post.id, ordinal=index, mime=blob.mime, data=blob.data))
    await db.commit()
    logger.info("post created id=%s shop=%s bucket=%s media=%d", post.id, shop, bucket, len(media))
    return post


async def get_post(db: AsyncSession, shop: str, post_id: int) -> Post | None:
    res = await db.execute(select(Post).where(Post.id == post_id, Post.shop == shop))
    return res.scalar_one_or_none()


async def get_post_detail(db: AsyncSession, shop: str, post_id: int, viewer: str | None) -> PostDetail | None:
    post = await get_post(db, shop, post_id)
    if not post:
        return None
    cards = await enrich_posts(db, [post], viewer)
    res = await db.execute(
        select(Comment).where(Comment.post_id == post_id).order_by(Comment.created_at, Comment.id)
    )
    comments = res.scalars().all()
    names = await load_display_names(db, {c.customer_id for c in comments})
    return PostDetail(
        post=cards[0],
        comments=[
            CommentView(
                id=c.id,
                post_id=c.post_id,
                customer_id=c.customer_id,
                author_name=names.get(c.customer_id, "Member"),
                body=c.body,
                created_at=c.created_at,
            ) for c in comments
        ],
    )


async def get_media(db: AsyncSession, shop: str, post_id: int, ordinal: int) -> PostMedia | None:
    res = await db.execute(
        select(PostMedia)
        .join(Post, Post.id == PostMedia.post_id)
        .where(PostMedia.post_id == post_id, PostMedia.ordinal == ordinal, Post.shop == shop)
    )
    return res.scalar_one_or_none()


async def like_count(db: AsyncSession, post_id: int) -> int:
    row = await db.execute(select(func.count(PostLike.id)).where(PostLike.post_id == post_id))
    return row.scalar_one() or 0


async def toggle_like(db: AsyncSession, post_id: int, customer_id: str) -> LikeResult:
    """Flip the customer's like on a post inside one transaction.

    A unique-constraint conflict means a concurrent request inserted the same
    like first; the post stays liked.
    """
    existing = (await db.execute(
        select(PostLike.id).where(PostLike.post_id == post_id, PostLike.customer_id == customer_id)
    )).scalar_one_or_none()
    if existing is not None:
        await db.execute(delete(PostLike).where(PostLike.id == existing))
        liked = False
    else:
        db.add(PostLike(post_id=post_id, customer_id=customer_id))
        liked = True
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        liked = True
    return LikeResult(liked=liked, like_count=await like_count(db, post_id))


async def add_comment(db: AsyncSession, post_id: int, customer_id: str, body: str | None) -> Comment:
    text_body = clean_text(body, COMMENT_BODY_MAX)
    if not text_body:
        raise InvalidInput("comment", "comment is empty")
    comment = Comment(post_id=post_id, customer_id=customer_id, body=text_body)
    db.add(comment)
    await db.commit()
    await db.refresh(comment)
    return comment
