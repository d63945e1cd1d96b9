from models.feed import BUCKETS, DEFAULT_BUCKET

POST_BODY_MAX = 500
COMMENT_BODY_MAX = 300
MESSAGE_BODY_MAX = 1000
NAME_MAX = 40
BIO_MAX = 280


def clean_text(value, max_length: int = 80) -> str:
    return str(value or "").strip()[:max_length]


def normalize_bucket(value: str | None) -> str:
    bucket = (value or "").strip().lower()
    return bucket if bucket in BUCKETS else DEFAULT_BUCKET


def display_name(profile, fallback: str = "Member") -> str:
    if profile is None:
        return fallback
    full = f"{profile.first_name or ''} {profile.last_name or ''}".strip()
    return full or (profile.username or "").strip() or fallback


def safe_next_path(value: str | None, default: str = "") -> str:
    """App-relative path to return to after a form post; anything else falls back to ``default``."""
    path = (value or "").strip()
    if not path or "://" in path or path.startswith("//") or "\\" in path:
        return default
    return path.lstrip("/")
