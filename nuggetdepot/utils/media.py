import re
from dataclasses import dataclass

from fastapi import UploadFile

from nuggetdepot.errors import UploadRejected

AVATAR_MIMES = {"image/png", "image/jpeg", "image/webp"}
POST_MEDIA_MIMES = AVATAR_MIMES | {"image/gif", "video/mp4", "video/webm"}

_INITIALS_RE = re.compile(r"[^A-Z0-9]")


@dataclass(frozen=True)
class MediaBlob:
    mime: str
    data: bytes


def normalize_mime(content_type: str | None) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_video(mime: str | None) -> bool:
    return (mime or "").startswith("video/")


async def read_upload(file: UploadFile | None, *, allowed: set[str], max_bytes: int, flag: str) -> MediaBlob | None:
    """Read one uploaded file, or ``None`` if the form field was left empty.

    Raises :class:`UploadRejected` for a disallowed type or an oversized file.
    """
    if file is None or not file.filename:
        return None
    mime = normalize_mime(file.content_type)
    if mime not in allowed:
        raise UploadRejected(flag, f"unsupported media type {mime or '-'}")
    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise UploadRejected(flag, "upload too large")
    if not data:
        return None
    return MediaBlob(mime=mime, data=data)


async def read_uploads(files: list[UploadFile] | None, *, allowed: set[str], max_bytes: int,
                       max_files: int, flag: str) -> list[MediaBlob]:
    blobs: list[MediaBlob] = []
    for file in files or []:
        blob = await read_upload(file, allowed=allowed, max_bytes=max_bytes, flag=flag)
        if blob is not None:
            blobs.append(blob)
    if len(blobs) > max_files:
        raise UploadRejected(flag, "too many files")
    return blobs


def initials_for(first: str | None, last: str | None) -> str:
    a = (first or "").strip()[:1].upper()
    b = (last or "").strip()[:1].upper()
    return f"{a}{b}".strip() or "GN"


def svg_avatar(initials: str) -> str:
    safe = _INITIALS_RE.sub("", initials or "GN")[:2] or "GN"
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<svg xmlns="http://www.w3.org/2000/svg" width="240" height="240" viewBox="0 0 240 240">
  <rect width="240" height="240" rx="32" fill="#f2f2f2"/>
  <text x="50%" y="54%" text-anchor="middle" dominant-baseline="middle"
        font-family="system-ui,-apple-system,Segoe UI,Roboto,Arial,sans-serif"
        font-size="84" fill="#111">{safe}</text>
</svg>"""
