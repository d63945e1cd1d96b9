import logging
import time

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from nuggetdepot.api import chat as chat_api
from nuggetdepot.api import feed as feed_api
from nuggetdepot.api import user as user_api
from nuggetdepot.config import Settings, settings as default_settings
from nuggetdepot.database import build_database
from nuggetdepot.rendering import message_page
from nuggetdepot.security import get_request_context, resolve_request_context, set_session_cookie

PROXY_MOUNT = "/proxy"
logger = logging.getLogger("nuggetdepot.main")


def _is_proxy(request: Request) -> bool:
    path = request.url.path
    return path == PROXY_MOUNT or path.startswith(PROXY_MOUNT + "/")


def _proxy_error_page(request: Request, message: str):
    ctx = get_request_context(request)
    return message_page(request, ctx, "Something went wrong", message, css="error")


def create_app(config: Settings | None = None) -> FastAPI:
    config = config or default_settings
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    app = FastAPI(title="Nugget Depot Community", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = config
    app.state.database = build_database(config.database_url, echo=config.DATABASE_ECHO)

    proxy = APIRouter()
    proxy.include_router(feed_api.router)
    proxy.include_router(user_api.router)
    proxy.include_router(chat_api.router)
    app.include_router(proxy, prefix=PROXY_MOUNT)

    @app.middleware("http")
    async def proxy_session(request: Request, call_next):
        if not _is_proxy(request):
            return await call_next(request)
        ctx, token = resolve_request_context(request, config)
        request.state.ctx = ctx
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("unhandled error path=%s", request.url.path)
            response = _proxy_error_page(request, "Please try again in a moment.")
        if token:
            set_session_cookie(response, token, ctx, config)
        return response

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("%s %s %s (%dms)", response.status_code, request.method, request.url.path, elapsed_ms)
        return response

    @app.exception_handler(SQLAlchemyError)
    async def database_error(request: Request, exc: SQLAlchemyError):
        logger.exception("database error path=%s", request.url.path, exc_info=exc)
        if _is_proxy(request):
            return _proxy_error_page(request, "The community database is unavailable right now.")
        return PlainTextResponse("Database error", status_code=500)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        if _is_proxy(request):
            return _proxy_error_page(request, "Please check your inputs.")
        return PlainTextResponse("Bad request", status_code=400)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if _is_proxy(request):
            return _proxy_error_page(request, "Page not found." if exc.status_code == 404 else "Request failed.")
        if exc.status_code == 404:
            return PlainTextResponse("Not found", status_code=404)
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.on_event("startup")
    async def startup():
        database = app.state.database
        if database is not None:
            await database.ensure_ready()
        if not config.api_secret:
            logger.warning("SHOPIFY_API_SECRET not set; every proxy request will be rejected")

    @app.on_event("shutdown")
    async def shutdown():
        if app.state.database is not None:
            await app.state.database.dispose()

    @app.get("/", response_class=HTMLResponse)
    async def root():
        return """
    <h1>Nugget Depot</h1>
    <p>Server is live.</p>
    <ul>
      <li><a href="/healthz">Health Check</a></li>
      <li>Shopify App Proxy entry: <code>/proxy</code> (requires signed request)</li>
    </ul>
  """

    @app.get("/healthz", response_class=PlainTextResponse)
    async def healthz():
        return "ok"

    return app


app = create_app()


def run():
    import uvicorn

    uvicorn.run("nuggetdepot.main:app", host=default_settings.HOST, port=default_settings.PORT)
