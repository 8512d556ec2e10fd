"""Media store: TTL-bounded local cache for inbound and outbound media."""

import time
import uuid
from dataclasses import dataclass
from pathlib import Path

import httpx
from loguru import logger

from relaybot.media.mime import (
    SNIFF_BYTES,
    detect_mime,
    extension_for_mime,
    extension_from_source,
)

MAX_MEDIA_BYTES = 5 * 1024 * 1024  # 5MB
DEFAULT_MEDIA_TTL_S = 2 * 60
DOWNLOAD_TIMEOUT_S = 30.0


class MediaError(Exception):
    """Base class for media store failures."""


class MediaTooLarge(MediaError):
    def __init__(self, size: int, max_bytes: int):
        self.size = size
        self.max_bytes = max_bytes
        super().__init__(f"Media exceeds {max_bytes / (1024 * 1024):g}MB limit")


class MediaFetchFailed(MediaError):
    """Remote media could not be downloaded (non-2xx or network error)."""


class MediaNotAFile(MediaError):
    """Local media path is missing or not a regular file."""


@dataclass
class SavedMedia:
    id: str
    path: Path
    size: int
    content_type: str | None = None


def looks_like_url(source: str) -> bool:
    return source.lower().startswith(("http://", "https://"))


class MediaStore:
    """Stores media blobs as ``<uuid>.<ext>`` files under a profile directory.

    Directory layout::

        media_dir/
        ├── 3f2c...e1.jpg        # outbound (resolved reply media)
        └── inbound/
            └── 9a41...77.ogg

    Eviction is purely age-based and runs opportunistically before each save.
    """

    def __init__(
        self,
        base_dir: Path,
        max_bytes: int = MAX_MEDIA_BYTES,
        ttl_s: float = DEFAULT_MEDIA_TTL_S,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_dir = base_dir
        self.max_bytes = max_bytes
        self.ttl_s = ttl_s
        self._client = client

    def ensure_dir(self, subdir: str = "") -> Path:
        path = self.base_dir / subdir if subdir else self.base_dir
        path.mkdir(parents=True, exist_ok=True)
        return path

    def clean_old_media(self, ttl_s: float | None = None) -> int:
        """Delete files older than *ttl_s*. Returns the number removed."""
        ttl = self.ttl_s if ttl_s is None else ttl_s
        self.ensure_dir()
        now = time.time()
        removed = 0
        for path in self.base_dir.rglob("*"):
            try:
                if not path.is_file() or now - path.stat().st_mtime <= ttl:
                    continue
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"Failed to evict media {path}: {e}")
        if removed:
            logger.debug(f"Evicted {removed} expired media file(s)")
        return removed

    async def save(
        self,
        source: str,
        headers: dict[str, str] | None = None,
        subdir: str = "",
        max_bytes: int | None = None,
    ) -> SavedMedia:
        """Copy a local file or download a URL into the store.

        Raises:
            MediaTooLarge: source is over the cap (no partial file is left).
            MediaFetchFailed: remote fetch failed.
            MediaNotAFile: local path is missing or not a regular file.
        """
        cap = max_bytes or self.max_bytes
        target_dir = self.ensure_dir(subdir)
        self.clean_old_media()
        media_id = str(uuid.uuid4())

        if looks_like_url(source):
            return await self._save_remote(source, headers, target_dir, media_id, cap)
        return self._save_local(Path(source).expanduser(), target_dir, media_id, cap)

    async def save_buffer(
        self,
        data: bytes,
        content_type: str | None = None,
        subdir: str = "inbound",
    ) -> SavedMedia:
        """Store raw bytes received from a provider."""
        if len(data) > self.max_bytes:
            raise MediaTooLarge(len(data), self.max_bytes)
        target_dir = self.ensure_dir(subdir)
        media_id = str(uuid.uuid4())
        mime = detect_mime(data[:SNIFF_BYTES], header_mime=content_type)
        dest = target_dir / _file_name(media_id, extension_for_mime(mime))
        dest.write_bytes(data)
        logger.debug(f"Saved inbound media: {dest} ({len(data)} bytes, {mime})")
        return SavedMedia(id=media_id, path=dest, size=len(data), content_type=mime)

    # ── internal helpers ────────────────────────────────────────

    def _save_local(self, source: Path, target_dir: Path, media_id: str, cap: int) -> SavedMedia:
        if not source.is_file():
            raise MediaNotAFile(f"Media path is not a file: {source}")
        size = source.stat().st_size
        if size > cap:
            raise MediaTooLarge(size, cap)

        data = source.read_bytes()
        mime = detect_mime(data[:SNIFF_BYTES], file_path=str(source))
        ext = extension_for_mime(mime) or source.suffix
        dest = target_dir / _file_name(media_id, ext)
        dest.write_bytes(data)
        logger.debug(f"Stored local media {source} -> {dest}")
        return SavedMedia(id=media_id, path=dest, size=size, content_type=mime)

    async def _save_remote(
        self,
        url: str,
        headers: dict[str, str] | None,
        target_dir: Path,
        media_id: str,
        cap: int,
    ) -> SavedMedia:
        tmp = target_dir / f"{media_id}.tmp"
        client = self._client or httpx.AsyncClient(follow_redirects=True, timeout=DOWNLOAD_TIMEOUT_S)
        sniff = b""
        total = 0
        try:
            async with client.stream("GET", url, headers=headers) as response:
                if not response.is_success:
                    raise MediaFetchFailed(f"HTTP {response.status_code} downloading media")
                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > cap:
                    raise MediaTooLarge(int(declared), cap)
                header_mime = response.headers.get("content-type")

                with open(tmp, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        total += len(chunk)
                        if total > cap:
                            raise MediaTooLarge(total, cap)
                        if len(sniff) < SNIFF_BYTES:
                            sniff += chunk[: SNIFF_BYTES - len(sniff)]
                        f.write(chunk)
        except httpx.HTTPError as e:
            tmp.unlink(missing_ok=True)
            raise MediaFetchFailed(f"Failed to download {url}: {e}") from e
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        finally:
            if self._client is None:
                await client.aclose()

        mime = detect_mime(sniff, header_mime=header_mime, file_path=url)
        ext = extension_for_mime(mime) or extension_from_source(url)
        dest = target_dir / _file_name(media_id, ext)
        tmp.rename(dest)
        logger.debug(f"Downloaded media {url} -> {dest} ({total} bytes, {mime})")
        return SavedMedia(id=media_id, path=dest, size=total, content_type=mime)


def _file_name(media_id: str, ext: str | None) -> str:
    if not ext:
        return media_id
    return f"{media_id}{ext if ext.startswith('.') else '.' + ext}"
