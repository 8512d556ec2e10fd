"""Content-type sniffing and extension mapping for stored media."""

import mimetypes
from pathlib import Path
from urllib.parse import urlparse

SNIFF_BYTES = 16384

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "audio/ogg": ".ogg",
    "audio/mpeg": ".mp3",
    "audio/wav": ".wav",
    "audio/mp4": ".m4a",
    "video/mp4": ".mp4",
    "application/pdf": ".pdf",
    "text/plain": ".txt",
}

# Transport labels that say nothing about the content.
_GENERIC = {"application/octet-stream", "binary/octet-stream", ""}


def sniff_mime(buffer: bytes) -> str | None:
    """Identify common media formats from their leading bytes."""
    head = buffer[:64]
    if head.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if head.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"
    if head[:4] == b"RIFF" and head[8:12] == b"WAVE":
        return "audio/wav"
    if head.startswith(b"%PDF-"):
        return "application/pdf"
    if head.startswith(b"OggS"):
        return "audio/ogg"
    if head.startswith(b"ID3") or head[:2] in (b"\xff\xfb", b"\xff\xf3", b"\xff\xf2"):
        return "audio/mpeg"
    if head[4:8] == b"ftyp":
        brand = head[8:12]
        return "audio/mp4" if brand in (b"M4A ", b"M4B ") else "video/mp4"
    return None


def _normalize(header_mime: str | None) -> str:
    return (header_mime or "").split(";")[0].strip().lower()


def detect_mime(
    buffer: bytes | None = None,
    header_mime: str | None = None,
    file_path: str | None = None,
) -> str | None:
    """Bytes first, then the transport's Content-Type, then the file name."""
    if buffer:
        sniffed = sniff_mime(buffer)
        if sniffed:
            return sniffed

    header = _normalize(header_mime)
    if header not in _GENERIC:
        return header

    if file_path:
        name = urlparse(file_path).path if "://" in file_path else file_path
        guessed, _ = mimetypes.guess_type(name)
        if guessed:
            return guessed

    return header or None


def extension_for_mime(mime: str | None) -> str | None:
    if not mime:
        return None
    mime = _normalize(mime)
    if mime in _EXTENSIONS:
        return _EXTENSIONS[mime]
    if mime in _GENERIC:
        return None
    return mimetypes.guess_extension(mime)


def extension_from_source(source: str) -> str:
    """Fallback extension taken from a path or URL (may be empty)."""
    path = urlparse(source).path if "://" in source else source
    return Path(path).suffix
