"""Tests for the media store and content-type detection."""

import asyncio
import os
import time

import httpx
import pytest

from relaybot.media.mime import detect_mime, extension_for_mime, sniff_mime
from relaybot.media.store import (
    MediaFetchFailed,
    MediaNotAFile,
    MediaStore,
    MediaTooLarge,
)

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 32


def _store(tmp_path, handler=None, max_bytes=1024) -> MediaStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler)) if handler else None
    return MediaStore(tmp_path / "media", max_bytes=max_bytes, ttl_s=120, client=client)


def _files(store: MediaStore) -> list[str]:
    return sorted(p.name for p in store.base_dir.rglob("*") if p.is_file())


class TestMime:
    def test_sniff_known_formats(self):
        assert sniff_mime(PNG) == "image/png"
        assert sniff_mime(JPEG) == "image/jpeg"
        assert sniff_mime(b"%PDF-1.7") == "application/pdf"
        assert sniff_mime(b"OggS\x00") == "audio/ogg"
        assert sniff_mime(b"hello") is None

    def test_bytes_beat_header(self):
        assert detect_mime(PNG, header_mime="image/jpeg") == "image/png"

    def test_header_used_when_bytes_unknown(self):
        assert detect_mime(b"????", header_mime="image/gif; charset=binary") == "image/gif"

    def test_generic_header_falls_back_to_path(self):
        mime = detect_mime(b"????", header_mime="application/octet-stream", file_path="https://x/y/a.mp3?sig=1")
        assert mime == "audio/mpeg"

    def test_extension_mapping(self):
        assert extension_for_mime("image/jpeg") == ".jpg"
        assert extension_for_mime("application/octet-stream") is None
        assert extension_for_mime(None) is None


class TestLocalSave:
    @pytest.mark.asyncio
    async def test_copies_file_with_sniffed_extension(self, tmp_path):
        src = tmp_path / "upload.bin"
        src.write_bytes(PNG)
        store = _store(tmp_path)

        saved = await store.save(str(src))

        assert saved.path.suffix == ".png"
        assert saved.path.read_bytes() == PNG
        assert saved.content_type == "image/png"
        assert saved.path.parent == store.base_dir

    @pytest.mark.asyncio
    async def test_too_large_leaves_nothing(self, tmp_path):
        src = tmp_path / "big.jpg"
        src.write_bytes(JPEG + b"\x00" * 2048)
        store = _store(tmp_path)

        with pytest.raises(MediaTooLarge) as exc:
            await store.save(str(src))
        assert exc.value.max_bytes == 1024
        assert _files(store) == []

    @pytest.mark.asyncio
    async def test_directory_is_rejected(self, tmp_path):
        (tmp_path / "somedir").mkdir()
        with pytest.raises(MediaNotAFile):
            await _store(tmp_path).save(str(tmp_path / "somedir"))

    @pytest.mark.asyncio
    async def test_missing_file_is_rejected(self, tmp_path):
        with pytest.raises(MediaNotAFile):
            await _store(tmp_path).save(str(tmp_path / "gone.png"))


class TestRemoteSave:
    @pytest.mark.asyncio
    async def test_downloads_and_sniffs(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=PNG, headers={"content-type": "application/octet-stream"})

        store = _store(tmp_path, handler)
        saved = await store.save("https://cdn.example.com/file")

        assert saved.path.suffix == ".png"
        assert saved.size == len(PNG)
        assert _files(store) == [saved.path.name]

    @pytest.mark.asyncio
    async def test_http_error_status(self, tmp_path):
        store = _store(tmp_path, lambda request: httpx.Response(404))
        with pytest.raises(MediaFetchFailed, match="404"):
            await store.save("https://cdn.example.com/missing.png")
        assert _files(store) == []

    @pytest.mark.asyncio
    async def test_declared_length_over_cap(self, tmp_path):
        store = _store(tmp_path, lambda request: httpx.Response(200, content=b"x" * 4096))
        with pytest.raises(MediaTooLarge):
            await store.save("https://cdn.example.com/big.bin")
        assert _files(store) == []

    @pytest.mark.asyncio
    async def test_streamed_body_over_cap_leaves_no_partial_file(self, tmp_path):
        async def body():
            for _ in range(8):
                yield b"x" * 256

        store = _store(tmp_path, lambda request: httpx.Response(200, content=body()))
        with pytest.raises(MediaTooLarge):
            await store.save("https://cdn.example.com/stream.bin")
        assert _files(store) == []

    @pytest.mark.asyncio
    async def test_cancelled_download_leaves_no_partial_file(self, tmp_path):
        first_chunk_written = asyncio.Event()

        async def body():
            yield b"x" * 100
            first_chunk_written.set()
            await asyncio.Event().wait()

        store = _store(tmp_path, lambda request: httpx.Response(200, content=body()))
        task = asyncio.create_task(store.save("https://cdn.example.com/slow.bin"))
        await asyncio.wait_for(first_chunk_written.wait(), timeout=5)
        assert any(name.endswith(".tmp") for name in _files(store))

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert _files(store) == []

    @pytest.mark.asyncio
    async def test_network_error_is_wrapped(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        store = _store(tmp_path, handler)
        with pytest.raises(MediaFetchFailed):
            await store.save("https://cdn.example.com/a.png")
        assert _files(store) == []


class TestBufferAndEviction:
    @pytest.mark.asyncio
    async def test_save_buffer_goes_to_inbound(self, tmp_path):
        store = _store(tmp_path)
        saved = await store.save_buffer(JPEG, content_type="image/jpeg")
        assert saved.path.parent.name == "inbound"
        assert saved.path.suffix == ".jpg"

    @pytest.mark.asyncio
    async def test_save_buffer_too_large(self, tmp_path):
        with pytest.raises(MediaTooLarge):
            await _store(tmp_path).save_buffer(b"x" * 2048)

    def test_clean_old_media(self, tmp_path):
        store = _store(tmp_path)
        inbound = store.ensure_dir("inbound")
        old = inbound / "old.jpg"
        fresh = store.base_dir / "fresh.jpg"
        old.write_bytes(JPEG)
        fresh.write_bytes(JPEG)
        stale = time.time() - 600
        os.utime(old, (stale, stale))

        assert store.clean_old_media() == 1
        assert not old.exists()
        assert fresh.exists()

    @pytest.mark.asyncio
    async def test_save_evicts_expired_first(self, tmp_path):
        store = _store(tmp_path)
        old = store.ensure_dir() / "old.png"
        old.write_bytes(PNG)
        stale = time.time() - 600
        os.utime(old, (stale, stale))
        src = tmp_path / "new.png"
        src.write_bytes(PNG)

        saved = await store.save(str(src))

        assert _files(store) == [saved.path.name]
