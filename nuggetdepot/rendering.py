from pathlib import Path

from fastapi import Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from nuggetdepot.security import RequestContext

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATE_DIR))

# query flag -> (css class, message); pages redirect with one of these after a form post
STATUS_FLAGS = {
    ("saved", "1"): ("ok", "Saved."),
    ("posted", "1"): ("ok", "Posted."),
    ("err", "1"): ("error", "Please check your inputs."),
    ("imgerr", "1"): ("error", "Upload a PNG, JPG, or WEBP under 2MB."),
    ("posterr", "media"): ("error", "Collection and trade posts need at least one photo."),
    ("posterr", "upload"): ("error", "Photos must be PNG, JPG, WEBP or GIF, videos MP4 or WEBM, each under 8MB, up to 6 files."),
    ("posterr", "empty"): ("error", "Write something or attach a photo."),
    ("commenterr", "1"): ("error", "Comments cannot be empty."),
    ("msgerr", "empty"): ("error", "Messages cannot be empty."),
    ("msgerr", "self"): ("error", "You cannot message yourself."),
    ("followerr", "self"): ("error", "You cannot follow yourself."),
    ("notfound", "1"): ("error", "That post is no longer available."),
}


def status_message(request: Request) -> tuple[str, str] | None:
    for (key, value), status in STATUS_FLAGS.items():
        if request.query_params.get(key) == value:
            return status
    return None


def render(request: Request, ctx: RequestContext, name: str, title: str, **values) -> HTMLResponse:
    context = {
        "ctx": ctx,
        "title": title,
        "shop": ctx.shop or "unknown",
        "status": status_message(request),
        "nav": True,
    }
    context.update(values)
    return templates.TemplateResponse(request, name, context)


def message_page(request: Request, ctx: RequestContext, title: str, message: str, *,
                 css: str = "muted", nav: bool = True) -> HTMLResponse:
    return render(request, ctx, "message.html", title, message=message, css=css, nav=nav)


def login_page(request: Request, ctx: RequestContext, title: str = "Nugget Depot") -> HTMLResponse:
    """What every customer-only page shows to an unauthenticated visitor (always HTTP 200)."""
    if not ctx.configured:
        return message_page(request, ctx, "Config error", "Missing SHOPIFY_API_SECRET", css="error", nav=False)
    login_url = request.app.state.settings.LOGIN_URL
    return render(request, ctx, "login.html", title, login_url=login_url, nav=False)


def unavailable_page(request: Request, ctx: RequestContext, title: str) -> HTMLResponse:
    return message_page(request, ctx, title, "The community database is not configured or unreachable.", css="error")


def redirect(ctx: RequestContext, path: str, **flags) -> RedirectResponse:
    url = ctx.url(path)
    if flags:
        query = "&".join(f"{key}={value}" for key, value in flags.items())
        url = f"{url}{'&' if '?' in url else '?'}{query}"
    return RedirectResponse(url, status_code=303)
