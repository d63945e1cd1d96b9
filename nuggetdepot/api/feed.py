import logging

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from nuggetdepot.database import get_db
from nuggetdepot.errors import InvalidInput, UploadRejected
from nuggetdepot.rendering import login_page, message_page, redirect, render, unavailable_page
from nuggetdepot.security import STATE_REJECTED, RequestContext, get_request_context
from nuggetdepot.services import posts as post_service
from nuggetdepot.services.profiles import ensure_profile
from nuggetdepot.services.timeline import read_timeline
from nuggetdepot.utils.media import POST_MEDIA_MIMES, read_uploads
from nuggetdepot.utils.text import normalize_bucket, safe_next_path
from schemas.feed import TimelinePage

router = APIRouter()
logger = logging.getLogger("nuggetdepot.api.feed")

# bucket -> (page title, app-relative path, compose placeholder)
BUCKET_PAGES = {
    "feed": ("Community Feed", "", "What's new?"),
    "collection": ("Collections", "collection", "Show off a pull or a slab"),
    "trades": ("Trades", "trades", "What are you trading? Add photos of the cards"),
}


def bucket_path(bucket: str) -> str:
    return BUCKET_PAGES[normalize_bucket(bucket)][1]


async def _bucket_page(request: Request, ctx: RequestContext, db: AsyncSession | None, bucket: str):
    title, path, hint = BUCKET_PAGES[bucket]
    if ctx.state == STATE_REJECTED:
        return login_page(request, ctx, title)
    if db is None:
        return unavailable_page(request, ctx, title)
    settings = request.app.state.settings
    if ctx.authenticated:
        await ensure_profile(db, ctx.customer_id, ctx.shop)
    page = await read_timeline(
        db,
        ctx.shop,
        ctx.customer_id or None,
        bucket,
        settings.TIMELINE_PAGE_SIZE,
        request.query_params.get("cursor"),
    )
    return render(
        request, ctx, "timeline.html", title,
        page=page,
        bucket=bucket,
        compose_hint=hint,
        next_path=path,
        login_url=settings.LOGIN_URL,
        source_url=f"{ctx.url('timeline')}?bucket={bucket}",
    )


@router.get("/")
async def feed_page(request: Request, ctx: RequestContext = Depends(get_request_context), db: AsyncSession = Depends(get_db)):
    return await _bucket_page(request, ctx, db, "feed")


@router.get("/collection")
async def collection_page(request: Request, ctx: RequestContext = Depends(get_request_context), db: AsyncSession = Depends(get_db)):
    return await _bucket_page(request, ctx, db, "collection")


@router.get("/trades")
async def trades_page(request: Request, ctx: RequestContext = Depends(get_request_context), db: AsyncSession = Depends(get_db)):
    return await _bucket_page(request, ctx, db, "trades")


@router.get("/timeline")
async def timeline_fragment(
    request: Request,
    bucket: str = "feed",
    cursor: str | None = None,
    author: str | None = None,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Next page of posts as an HTML fragment for endless scroll."""
    bucket = normalize_bucket(bucket)
    page = TimelinePage()
    if ctx.state != STATE_REJECTED:
        page = await read_timeline(
            db, ctx.shop, ctx.customer_id or None, bucket,
            request.app.state.settings.TIMELINE_PAGE_SIZE, cursor, author=author or None,
        )
    next_path = f"u/{author}?bucket={bucket}" if author else bucket_path(bucket)
    return render(request, ctx, "_post_list.html", "", page=page, next_path=next_path)


@router.post("/posts")
async def create_post(
    request: Request,
    body: str = Form(""),
    bucket: str = Form("feed"),
    media: list[UploadFile] | None = File(default=None),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    if not ctx.authenticated:
        return login_page(request, ctx)
    if db is None:
        return unavailable_page(request, ctx, "New post")
    settings = request.app.state.settings
    bucket = normalize_bucket(bucket)
    back = bucket_path(bucket)
    try:
        blobs = await read_uploads(
            media,
            allowed=POST_MEDIA_MIMES,
            max_bytes=settings.MEDIA_MAX_BYTES,
            max_files=settings.MEDIA_MAX_FILES,
            flag="upload",
        )
        await ensure_profile(db, ctx.customer_id, ctx.shop)
        await post_service.create_post(
            db, shop=ctx.shop, customer_id=ctx.customer_id, body=body, bucket=bucket, media=blobs,
        )
    except (UploadRejected, InvalidInput) as exc:
        logger.info("post rejected customer=%s flag=%s reason=%s", ctx.customer_id, exc.flag, exc)
        return redirect(ctx, back, posterr=exc.flag)
    return redirect(ctx, back, posted=1)


@router.get("/posts/{post_id}")
async def post_detail(
    post_id: int,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    if ctx.state == STATE_REJECTED:
        return login_page(request, ctx, "Post")
    if db is None:
        return unavailable_page(request, ctx, "Post")
    detail = await post_service.get_post_detail(db, ctx.shop, post_id, ctx.customer_id or None)
    if detail is None:
        return message_page(request, ctx, "Post", "That post is no longer available.", css="error")
    return render(request, ctx, "post.html", "Post", detail=detail, next_path=f"posts/{post_id}")


@router.get("/posts/{post_id}/media/{index}")
async def post_media(
    post_id: int,
    index: int,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    if ctx.state == STATE_REJECTED:
        return Response("Not logged in", media_type="text/plain")
    if db is None:
        return Response("DB not configured", media_type="text/plain")
    item = await post_service.get_media(db, ctx.shop, post_id, index)
    if item is None:
        return Response("Media not found", media_type="text/plain")
    return Response(item.data, media_type=item.mime, headers={"Cache-Control": "private, max-age=86400"})


@router.post("/posts/{post_id}/like")
async def like_post(
    post_id: int,
    request: Request,
    next_path: str = Form("", alias="next"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    if not ctx.authenticated:
        return login_page(request, ctx)
    if db is None:
        return unavailable_page(request, ctx, "Like")
    back = safe_next_path(next_path)
    post = await post_service.get_post(db, ctx.shop, post_id)
    if not post:
        return redirect(ctx, back, notfound=1)
    result = await post_service.toggle_like(db, post_id, ctx.customer_id)
    logger.debug("like toggled post=%s liked=%s count=%s", post_id, result.liked, result.like_count)
    return redirect(ctx, back)


@router.post("/posts/{post_id}/comments")
async def comment_post(
    post_id: int,
    request: Request,
    body: str = Form(""),
    next_path: str = Form("", alias="next"),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    if not ctx.authenticated:
        return login_page(request, ctx)
    if db is None:
        return unavailable_page(request, ctx, "Comment")
    back = safe_next_path(next_path, f"posts/{post_id}")
    post = await post_service.get_post(db, ctx.shop, post_id)
    if not post:
        return redirect(ctx, back, notfound=1)
    try:
        await ensure_profile(db, ctx.customer_id, ctx.shop)
        await post_service.add_comment(db, post_id, ctx.customer_id, body)
    except InvalidInput:
        return redirect(ctx, back, commenterr=1)
    return redirect(ctx, back)
