import hmac
import logging
from dataclasses import dataclass
from typing import Mapping

from fastapi import Request
from starlette.responses import Response

from nuggetdepot.config import Settings
from nuggetdepot.utils.tokens import hmac_hex, mint_session_token, read_session_token

logger = logging.getLogger("nuggetdepot.security")

STATE_PROXY = "proxy"
STATE_COOKIE = "cookie"
STATE_REJECTED = "rejected"


@dataclass(frozen=True)
class RequestContext:
    """Identity and link base for one proxy request, resolved once by middleware."""

    state: str
    shop: str = ""
    customer_id: str = ""
    base_path: str = ""
    signed: bool = False
    configured: bool = True

    @property
    def authenticated(self) -> bool:
        return bool(self.customer_id) and self.state != STATE_REJECTED

    def url(self, path: str = "/") -> str:
        return f"{self.base_path.rstrip('/')}/{path.lstrip('/')}"


def _mask_user_id(user_id: str | None) -> str:
    value = (user_id or "").strip()
    if not value:
        return "-"
    if len(value) <= 8:
        return value
    return f"{value[:4]}...{value[-4:]}"


def _client_ip(request: Request) -> str:
    client = getattr(request, "client", None)
    return getattr(client, "host", "-") if client else "-"


def _audit_auth_failure(request: Request, reason: str, *, cookie_present: bool) -> None:
    keys = ",".join(sorted(request.query_params.keys())) or "none"
    logger.warning(
        "AUTH_DENY reason=%s method=%s path=%s ip=%s query_keys=%s cookie_present=%s",
        reason,
        request.method,
        request.url.path,
        _client_ip(request),
        keys,
        int(cookie_present),
    )


def _audit_auth_fallback(request: Request, *, customer_id: str) -> None:
    logger.info(
        "AUTH_FALLBACK source=cookie method=%s path=%s ip=%s user=%s",
        request.method,
        request.url.path,
        _client_ip(request),
        _mask_user_id(customer_id),
    )


def build_proxy_message(params: Mapping[str, list[str]]) -> str:
    """Canonical string the platform signs: sorted ``key=value`` pairs, no separators."""
    return "".join(
        f"{key}={','.join(params[key])}"
        for key in sorted(params)
        if key != "signature"
    )


def verify_proxy_signature(params: Mapping[str, list[str]], secret: str) -> bool:
    if not secret:
        return False
    supplied = (params.get("signature") or [""])[0]
    if not supplied:
        return False
    digest = hmac_hex(secret, build_proxy_message(params))
    return hmac.compare_digest(digest.encode("ascii"), supplied.encode("utf-8"))


def query_multi_dict(request: Request) -> dict[str, list[str]]:
    params: dict[str, list[str]] = {}
    for key, value in request.query_params.multi_items():
        params.setdefault(key, []).append(value)
    return params


def resolve_request_context(request: Request, settings: Settings) -> tuple[RequestContext, str | None]:
    """Run the session handshake for ``request``.

    Returns the resolved context and, when the request was freshly signed by
    the platform and names a customer, a newly minted session token that the
    caller must set as the session cookie.
    """
    secret = settings.api_secret
    default_base = settings.APP_PROXY_PREFIX
    params = query_multi_dict(request)

    def param(name: str) -> str:
        return ((params.get(name) or [""])[0] or "").strip()

    if verify_proxy_signature(params, secret):
        shop = param("shop")
        customer_id = param("logged_in_customer_id")
        path_prefix = param("path_prefix")
        ctx = RequestContext(
            state=STATE_PROXY,
            shop=shop,
            customer_id=customer_id,
            base_path=path_prefix or default_base,
            signed=True,
        )
        if customer_id and shop and path_prefix:
            token = mint_session_token(
                customer_id, shop, path_prefix, secret, settings.SESSION_TTL_DAYS * 86400
            )
            return ctx, token
        return ctx, None

    raw_cookie = request.cookies.get(settings.SESSION_COOKIE_NAME)
    payload = read_session_token(raw_cookie, secret)
    if payload:
        _audit_auth_fallback(request, customer_id=payload["customer_id"])
        return RequestContext(
            state=STATE_COOKIE,
            shop=payload["shop"],
            customer_id=payload["customer_id"],
            base_path=payload["path_prefix"] or default_base,
        ), None

    reason = "secret_missing" if not secret else ("bad_cookie" if raw_cookie else "unsigned")
    _audit_auth_failure(request, reason, cookie_present=bool(raw_cookie))
    return RequestContext(state=STATE_REJECTED, base_path=default_base, configured=bool(secret)), None


def set_session_cookie(response: Response, token: str, ctx: RequestContext, settings: Settings) -> None:
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=settings.SESSION_TTL_DAYS * 86400,
        path=ctx.base_path,
        secure=True,
        httponly=True,
        samesite="lax",
    )


def get_request_context(request: Request) -> RequestContext:
    ctx = getattr(request.state, "ctx", None)
    if ctx is None:
        ctx, _ = resolve_request_context(request, request.app.state.settings)
    return ctx
