import logging

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from nuggetdepot.database import get_db
from nuggetdepot.errors import InvalidInput, UploadRejected
from nuggetdepot.rendering import login_page, redirect, render, unavailable_page
from nuggetdepot.security import STATE_REJECTED, RequestContext, get_request_context
from nuggetdepot.services import profiles
from nuggetdepot.services.timeline import read_timeline
from nuggetdepot.utils.media import AVATAR_MIMES, initials_for, read_upload, svg_avatar
from nuggetdepot.utils.text import normalize_bucket

router = APIRouter()
logger = logging.getLogger("nuggetdepot.api.user")


async def _avatar_response(db: AsyncSession | None, customer_id: str) -> Response:
    if db is None:
        return Response("DB not configured", media_type="text/plain")
    profile = await profiles.get_profile(db, customer_id)
    headers = {"Cache-Control": "no-store"}
    if profile and profile.avatar_bytes and profile.avatar_mime:
        return Response(profile.avatar_bytes, media_type=profile.avatar_mime, headers=headers)
    initials = initials_for(profile.first_name if profile else "", profile.last_name if profile else "")
    return Response(svg_avatar(initials), media_type="image/svg+xml; charset=utf-8", headers=headers)


@router.get("/me")
async def my_profile(request: Request, ctx: RequestContext = Depends(get_request_context), db: AsyncSession = Depends(get_db)):
    if not ctx.authenticated:
        return login_page(request, ctx, "My Profile")
    if db is None:
        return unavailable_page(request, ctx, "My Profile")
    await profiles.ensure_profile(db, ctx.customer_id, ctx.shop)
    view = await profiles.profile_view(db, ctx.shop, ctx.customer_id, ctx.customer_id)
    return render(request, ctx, "me.html", "My Profile", profile=view)


@router.post("/me/name")
async def save_name(
    request: Request,
    first_name: str = Form(""),
    last_name: str = Form(""),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    if not ctx.authenticated:
        return login_page(request, ctx, "My Profile")
    if db is None:
        return unavailable_page(request, ctx, "My Profile")
    try:
        await profiles.update_name(db, ctx.customer_id, ctx.shop, first_name, last_name)
    except InvalidInput:
        return redirect(ctx, "me", err=1)
    return redirect(ctx, "me", saved=1)


@router.post("/me/profile")
async def save_details(
    request: Request,
    username: str = Form(""),
    bio: str = Form(""),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    if not ctx.authenticated:
        return login_page(request, ctx, "My Profile")
    if db is None:
        return unavailable_page(request, ctx, "My Profile")
    await profiles.update_details(db, ctx.customer_id, ctx.shop, username, bio)
    return redirect(ctx, "me", saved=1)


@router.get("/me/avatar")
async def my_avatar(ctx: RequestContext = Depends(get_request_context), db: AsyncSession = Depends(get_db)):
    if not ctx.authenticated:
        return Response("Not logged in", media_type="text/plain")
    return await _avatar_response(db, ctx.customer_id)


@router.post("/me/avatar")
async def upload_avatar(
    request: Request,
    avatar: UploadFile | None = File(default=None),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    if not ctx.authenticated:
        return login_page(request, ctx, "My Profile")
    if db is None:
        return unavailable_page(request, ctx, "My Profile")
    settings = request.app.state.settings
    try:
        blob = await read_upload(avatar, allowed=AVATAR_MIMES, max_bytes=settings.AVATAR_MAX_BYTES, flag="imgerr")
    except UploadRejected as exc:
        logger.info("avatar rejected customer=%s reason=%s", ctx.customer_id, exc)
        return redirect(ctx, "me", imgerr=1)
    if blob is None:
        return redirect(ctx, "me", imgerr=1)
    await profiles.set_avatar(db, ctx.customer_id, ctx.shop, blob)
    return redirect(ctx, "me", saved=1)


@router.get("/u/{customer_id}")
async def public_profile(
    customer_id: str,
    request: Request,
    bucket: str = "feed",
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    if ctx.state == STATE_REJECTED:
        return login_page(request, ctx, "Profile")
    if db is None:
        return unavailable_page(request, ctx, "Profile")
    bucket = normalize_bucket(bucket)
    view = await profiles.profile_view(db, ctx.shop, customer_id, ctx.customer_id or None)
    page = await read_timeline(
        db, ctx.shop, ctx.customer_id or None, bucket,
        request.app.state.settings.TIMELINE_PAGE_SIZE, request.query_params.get("cursor"),
        author=customer_id,
    )
    return render(
        request, ctx, "user.html", view.display_name,
        profile=view,
        page=page,
        bucket=bucket,
        next_path=f"u/{customer_id}?bucket={bucket}",
        source_url=f"{ctx.url('timeline')}?bucket={bucket}&author={customer_id}",
    )


@router.get("/u/{customer_id}/avatar")
async def user_avatar(customer_id: str, ctx: RequestContext = Depends(get_request_context), db: AsyncSession = Depends(get_db)):
    if ctx.state == STATE_REJECTED:
        return Response("Not logged in", media_type="text/plain")
    return await _avatar_response(db, customer_id)


@router.post("/u/{customer_id}/follow")
async def follow_user(
    customer_id: str,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    if not ctx.authenticated:
        return login_page(request, ctx, "Profile")
    if db is None:
        return unavailable_page(request, ctx, "Profile")
    try:
        following = await profiles.toggle_follow(db, ctx.shop, ctx.customer_id, customer_id)
    except InvalidInput:
        return redirect(ctx, f"u/{customer_id}", followerr="self")
    logger.info("follow toggled follower=%s followee=%s following=%s", ctx.customer_id, customer_id, following)
    return redirect(ctx, f"u/{customer_id}")
