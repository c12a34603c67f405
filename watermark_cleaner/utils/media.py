"""Media kind detection from magic bytes and filenames."""

from __future__ import annotations

from pathlib import Path

from watermark_cleaner.core.errors import UnsupportedMediaError
from watermark_cleaner.schemas.cleanup import MediaKind

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".gif", ".bmp", ".tiff", ".tif"}
DOCUMENT_EXTENSIONS = {".pdf"}
VIDEO_EXTENSIONS = {".mp4", ".mov", ".mkv", ".webm", ".avi", ".m4v"}

_IMAGE_MAGIC = (
    b"\x89PNG\r\n\x1a\n",
    b"\xff\xd8\xff",
    b"GIF87a",
    b"GIF89a",
    b"BM",
    b"II*\x00",
    b"MM\x00*",
)


def sniff_media_kind(data: bytes, filename: str | None = None) -> MediaKind:
    """Guess the media kind of ``data``, consulting ``filename`` as a tiebreaker."""

    head = data[:32]
    if head.startswith(b"%PDF"):
        return MediaKind.document
    if head.startswith(b"RIFF") and head[8:12] == b"WEBP":
        return MediaKind.image
    if head.startswith(b"RIFF") and head[8:12] == b"AVI ":
        return MediaKind.video
    if head[4:8] == b"ftyp" or head.startswith(b"\x1a\x45\xdf\xa3"):
        return MediaKind.video
    if any(head.startswith(magic) for magic in _IMAGE_MAGIC):
        return MediaKind.image

    if filename:
        suffix = Path(filename).suffix.lower()
        if suffix in DOCUMENT_EXTENSIONS:
            return MediaKind.document
        if suffix in VIDEO_EXTENSIONS:
            return MediaKind.video
        if suffix in IMAGE_EXTENSIONS:
            return MediaKind.image

    raise UnsupportedMediaError("unrecognised media format", stage="dispatch")


def cleaned_filename(original: str | None, suffix: str | None = None) -> str:
    """Return ``<stem>_cleaned<ext>`` for an uploaded file name."""

    path = Path(original or "upload")
    extension = suffix or path.suffix or ".bin"
    return f"{path.stem}_cleaned{extension}"
