"""Tests for the Telegram file download / upload helpers."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from file_transfer import DownloadError, FileTransferClient, UploadError, open_for_upload


def _client(handler) -> FileTransferClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FileTransferClient("123:ABC", http_client=http_client)


class TestBuildUrl:
    def test_relative_path_uses_token_base(self) -> None:
        client = FileTransferClient("123:ABC", http_client=httpx.AsyncClient())
        assert client.build_url("videos/file_1.mp4") == "https://api.telegram.org/file/bot123:ABC/videos/file_1.mp4"

    def test_absolute_url_kept(self) -> None:
        client = FileTransferClient("123:ABC", http_client=httpx.AsyncClient())
        url = "https://api.telegram.org/file/bot123:ABC/videos/file_1.mp4"
        assert client.build_url(url) == url

    def test_empty_token_rejected(self) -> None:
        with pytest.raises(ValueError):
            FileTransferClient("")


class TestDownload:
    @pytest.mark.asyncio
    async def test_writes_body_verbatim(self, tmp_path: Path) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, content=b"\x00\x01video-bytes")

        dest = tmp_path / "input.mp4"
        dest.write_bytes(b"old content that must be truncated")
        async with _client(handler) as client:
            await client.download("videos/file_1.mp4", str(dest))

        assert dest.read_bytes() == b"\x00\x01video-bytes"
        assert seen == ["https://api.telegram.org/file/bot123:ABC/videos/file_1.mp4"]

    @pytest.mark.asyncio
    async def test_http_error_status_raises(self, tmp_path: Path) -> None:
        async with _client(lambda request: httpx.Response(404)) as client:
            with pytest.raises(DownloadError, match="404"):
                await client.download("videos/missing.mp4", str(tmp_path / "input.mp4"))

    @pytest.mark.asyncio
    async def test_network_error_raises(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(DownloadError):
                await client.download("videos/file_1.mp4", str(tmp_path / "input.mp4"))

    @pytest.mark.asyncio
    async def test_unwritable_destination_raises(self, tmp_path: Path) -> None:
        async with _client(lambda request: httpx.Response(200, content=b"x")) as client:
            with pytest.raises(DownloadError):
                await client.download("videos/file_1.mp4", str(tmp_path / "no-dir" / "input.mp4"))

    @pytest.mark.asyncio
    async def test_token_not_in_error_message(self, tmp_path: Path) -> None:
        async with _client(lambda request: httpx.Response(500)) as client:
            with pytest.raises(DownloadError) as exc_info:
                await client.download("videos/file_1.mp4", str(tmp_path / "input.mp4"))
        assert "123:ABC" not in str(exc_info.value)


class TestOpenForUpload:
    def test_opens_at_start(self, tmp_path: Path) -> None:
        path = tmp_path / "output.mp4"
        path.write_bytes(b"circle")
        with open_for_upload(str(path)) as stream:
            assert stream.read() == b"circle"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(UploadError):
            open_for_upload(str(tmp_path / "nope.mp4"))
