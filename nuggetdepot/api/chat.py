from fastapi import APIRouter, Depends, Form, Request
from sqlalchemy.ext.asyncio import AsyncSession

from nuggetdepot.database import get_db
from nuggetdepot.errors import InvalidInput
from nuggetdepot.rendering import login_page, redirect, render, unavailable_page
from nuggetdepot.security import RequestContext, get_request_context
from nuggetdepot.services import messages
from nuggetdepot.services.profiles import ensure_profile

router = APIRouter()


@router.get("/messages")
async def inbox(request: Request, ctx: RequestContext = Depends(get_request_context), db: AsyncSession = Depends(get_db)):
    if not ctx.authenticated:
        return login_page(request, ctx, "Messages")
    if db is None:
        return unavailable_page(request, ctx, "Messages")
    limit = request.app.state.settings.THREAD_PAGE_SIZE * 5
    view = await messages.get_inbox(db, ctx.shop, ctx.customer_id, limit)
    return render(request, ctx, "inbox.html", "Messages", inbox=view)


@router.get("/messages/{partner_id}")
async def thread(
    partner_id: str,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    if not ctx.authenticated:
        return login_page(request, ctx, "Messages")
    if db is None:
        return unavailable_page(request, ctx, "Messages")
    view = await messages.get_thread(
        db, ctx.shop, ctx.customer_id, partner_id, request.app.state.settings.THREAD_PAGE_SIZE
    )
    return render(request, ctx, "thread.html", view.partner_name, thread=view)


@router.post("/messages/{partner_id}")
async def send(
    partner_id: str,
    request: Request,
    body: str = Form(""),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    if not ctx.authenticated:
        return login_page(request, ctx, "Messages")
    if db is None:
        return unavailable_page(request, ctx, "Messages")
    try:
        await ensure_profile(db, ctx.customer_id, ctx.shop)
        await messages.send_message(db, ctx.shop, ctx.customer_id, partner_id, body)
    except InvalidInput as exc:
        return redirect(ctx, f"messages/{partner_id}", msgerr=exc.flag)
    return redirect(ctx, f"messages/{partner_id}")
