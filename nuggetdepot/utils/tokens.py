import base64
import binascii
import hashlib
import hmac
import json
import time
from datetime import datetime

SESSION_FIELDS = ("customer_id", "shop", "path_prefix", "exp")
MAX_ROW_ID = 2**63 - 1


def b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def b64url_decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def hmac_hex(secret: str, message: str) -> str:
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def sign_payload(payload: dict, secret: str) -> str:
    """Serialize ``payload`` as ``<base64url json>.<hex hmac-sha256>``."""
    if not secret:
        raise ValueError("cannot sign without a secret")
    encoded = b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return f"{encoded}.{hmac_hex(secret, encoded)}"


def unsign_payload(token: str | None, secret: str, required: tuple[str, ...] = ()) -> dict | None:
    """Return the payload of a token produced by :func:`sign_payload`, or ``None``.

    The MAC is checked in constant time before the payload is decoded, so a
    forged token never reaches the JSON parser.
    """
    if not token or not secret:
        return None
    parts = token.split(".")
    if len(parts) != 2:
        return None
    encoded, mac = parts
    if not hmac.compare_digest(hmac_hex(secret, encoded).encode("ascii"), mac.encode("utf-8")):
        return None
    try:
        payload = json.loads(b64url_decode(encoded).decode("utf-8"))
    except (ValueError, UnicodeDecodeError, binascii.Error):
        return None
    if not isinstance(payload, dict):
        return None
    if any(field not in payload for field in required):
        return None
    return payload


def now_millis() -> int:
    return int(time.time() * 1000)


def mint_session_token(customer_id: str, shop: str, path_prefix: str, secret: str, ttl_seconds: int) -> str:
    return sign_payload({
        "customer_id": customer_id,
        "shop": shop,
        "path_prefix": path_prefix,
        "exp": now_millis() + ttl_seconds * 1000,
    }, secret)


def read_session_token(token: str | None, secret: str) -> dict | None:
    payload = unsign_payload(token, secret, SESSION_FIELDS)
    if payload is None:
        return None
    exp = payload.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)) or exp <= now_millis():
        return None
    for field in ("customer_id", "shop", "path_prefix"):
        if not isinstance(payload.get(field), str) or not payload[field]:
            return None
    return payload


def encode_cursor(created_at: datetime, post_id: int) -> str:
    return b64url_encode(f"{created_at.isoformat()}|{int(post_id)}".encode("utf-8"))


def decode_cursor(cursor: str | None) -> tuple[datetime, int] | None:
    if not cursor:
        return None
    try:
        raw = b64url_decode(cursor.strip()).decode("utf-8")
        created_raw, _, id_raw = raw.rpartition("|")
        if not created_raw:
            return None
        post_id = int(id_raw)
        if not 1 <= post_id <= MAX_ROW_ID:
            return None
        return datetime.fromisoformat(created_raw), post_id
    except (ValueError, OverflowError, UnicodeDecodeError, binascii.Error):
        return None
