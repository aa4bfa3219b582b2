"""Tests for download(): status handling, extraction, progress, naming and cancellation."""

import asyncio
import importlib
import io
import os
import threading
import zipfile
from pathlib import Path

import httpx
import pytest

from conftest import make_tarball
from exthost.errors import (
    DownloadAbortedError,
    DownloadError,
    HttpStatusError,
    InvalidDestinationError,
    UnsupportedArchiveError,
)
from exthost.packages.download import RESET_GRACE_SECONDS, CancellationTokenSource, download

# the package re-exports the download function under the module name
download_module = importlib.import_module("exthost.packages.download")


def streaming_client(body, headers: dict[str, str] | None = None) -> httpx.AsyncClient:
    """Client whose responses stream the chunks produced by the async generator `body`."""
    return httpx.AsyncClient(
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, headers=headers, content=body())
        )
    )


class TestDestination:
    @pytest.mark.asyncio
    async def test_relative_destination_rejected(self) -> None:
        with pytest.raises(InvalidDestinationError):
            await download("https://example/x.tgz", Path("relative/dir"))

    @pytest.mark.asyncio
    async def test_destination_is_file(self, tmp_path: Path) -> None:
        target = tmp_path / "file"
        target.write_text("x")
        with pytest.raises(InvalidDestinationError):
            await download("https://example/x.tgz", target)


class TestStatus:
    @pytest.mark.asyncio
    async def test_non_2xx_raises(self, tmp_path: Path, httpx_mock) -> None:
        """Any status outside 2xx fails with HttpStatusError."""
        httpx_mock.add_response(url="https://example/x.tgz", status_code=500)
        with pytest.raises(HttpStatusError) as exc:
            await download("https://example/x.tgz", tmp_path)
        assert exc.value.status_code == 500

    @pytest.mark.asyncio
    async def test_1223_accepted(self, tmp_path: Path, httpx_mock) -> None:
        httpx_mock.add_response(url="https://example/file.txt", status_code=1223, content=b"ok")
        path = await download("https://example/file.txt", tmp_path)
        assert path.read_bytes() == b"ok"


class TestPlainFile:
    @pytest.mark.asyncio
    async def test_writes_unique_file_with_url_extension(self, tmp_path: Path, httpx_mock) -> None:
        for _ in range(2):
            httpx_mock.add_response(url="https://example/a/file.vsix", content=b"data")
        first = await download("https://example/a/file.vsix", tmp_path)
        second = await download("https://example/a/file.vsix", tmp_path)
        assert first.suffix == ".vsix"
        assert first.parent == tmp_path
        assert first != second
        assert first.read_bytes() == b"data"

    @pytest.mark.asyncio
    async def test_content_disposition_extension(self, tmp_path: Path, httpx_mock) -> None:
        httpx_mock.add_response(
            url="https://example/download?id=1",
            content=b"zz",
            headers={"content-disposition": 'attachment; filename="bundle.zip"'},
        )
        path = await download("https://example/download?id=1", tmp_path)
        assert path.suffix == ".zip"

    @pytest.mark.asyncio
    async def test_progress_reported_with_content_length(self, tmp_path: Path, httpx_mock) -> None:
        """Percent progress is formatted with one decimal and ends at 100.0."""
        body = b"x" * 1000
        httpx_mock.add_response(
            url="https://example/f.bin", content=body, headers={"content-length": "1000"}
        )
        progress: list[str] = []
        await download("https://example/f.bin", tmp_path, on_progress=progress.append)
        assert progress
        assert progress[-1] == "100.0"

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self, tmp_path: Path) -> None:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"x"))
        )
        await download("https://example/f.bin", tmp_path, client=client)
        assert not client.is_closed
        await client.aclose()


class TestExtraction:
    @pytest.mark.asyncio
    async def test_untar_strips_top_folder(self, tmp_path: Path, httpx_mock) -> None:
        data = make_tarball({"package.json": "{}", "lib/a.py": "x = 1"})
        httpx_mock.add_response(url="https://example/pkg.tgz", content=data)
        dest = tmp_path / "out"
        result = await download("https://example/pkg.tgz", dest, extract="untar")
        assert result == dest
        assert (dest / "package.json").read_text() == "{}"
        assert (dest / "lib" / "a.py").read_text() == "x = 1"
        assert not (dest / "package").exists()

    @pytest.mark.asyncio
    async def test_untar_strip_zero(self, tmp_path: Path, httpx_mock) -> None:
        httpx_mock.add_response(
            url="https://example/pkg.tgz", content=make_tarball({"package.json": "{}"})
        )
        await download("https://example/pkg.tgz", tmp_path, extract="untar", strip=0)
        assert (tmp_path / "package" / "package.json").exists()

    @pytest.mark.asyncio
    async def test_auto_picks_tar_by_extension(self, tmp_path: Path, httpx_mock) -> None:
        httpx_mock.add_response(
            url="https://example/pkg.tgz", content=make_tarball({"index.py": "pass"})
        )
        await download("https://example/pkg.tgz", tmp_path, extract="auto")
        assert (tmp_path / "index.py").exists()

    @pytest.mark.asyncio
    async def test_auto_picks_zip_by_content_type(self, tmp_path: Path, httpx_mock) -> None:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as archive:
            archive.writestr("readme.txt", "hello")
        httpx_mock.add_response(
            url="https://example/download",
            content=buf.getvalue(),
            headers={"content-type": "application/zip"},
        )
        await download("https://example/download", tmp_path, extract="auto")
        assert (tmp_path / "readme.txt").read_text() == "hello"

    @pytest.mark.asyncio
    async def test_auto_unsupported(self, tmp_path: Path, httpx_mock) -> None:
        httpx_mock.add_response(
            url="https://example/file.txt", content=b"plain", headers={"content-type": "text/plain"}
        )
        with pytest.raises(UnsupportedArchiveError):
            await download("https://example/file.txt", tmp_path, extract="auto")


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, tmp_path: Path) -> None:
        source = CancellationTokenSource()
        source.cancel()
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"x"))
        )
        with pytest.raises(DownloadAbortedError):
            await download("https://example/f.bin", tmp_path, client=client, token=source.token)

    @pytest.mark.asyncio
    async def test_cancel_mid_stream_removes_partial_file(self, tmp_path: Path) -> None:
        started = asyncio.Event()

        async def body():
            yield b"x" * 100
            started.set()
            await asyncio.Event().wait()
            yield b"never"

        source = CancellationTokenSource()
        client = streaming_client(body, {"content-length": "200"})
        task = asyncio.ensure_future(
            download("https://example/f.bin", tmp_path, client=client, token=source.token)
        )
        await started.wait()
        source.cancel()

        with pytest.raises(DownloadAbortedError):
            await task
        assert list(tmp_path.iterdir()) == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_cancel_mid_stream_stops_extractor(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        finished = threading.Event()
        real_untar = download_module._untar

        def tracked_untar(*args) -> None:
            try:
                real_untar(*args)
            finally:
                finished.set()

        monkeypatch.setattr(download_module, "_untar", tracked_untar)
        data = make_tarball({"index.py": "pass"})
        started = asyncio.Event()

        async def body():
            yield data[:20]
            started.set()
            await asyncio.Event().wait()
            yield data[20:]

        source = CancellationTokenSource()
        client = streaming_client(body)
        task = asyncio.ensure_future(
            download(
                "https://example/pkg.tgz", tmp_path, extract="untar", client=client, token=source.token
            )
        )
        await started.wait()
        source.cancel()

        with pytest.raises(DownloadAbortedError):
            await task
        assert await asyncio.to_thread(finished.wait, 2)
        await client.aclose()


class TestConnectionReset:
    @pytest.mark.asyncio
    async def test_reset_after_complete_body_succeeds(self, tmp_path: Path) -> None:
        async def body():
            yield b"abc"
            yield b"def"
            raise httpx.ReadError("connection reset")

        client = streaming_client(body, {"content-length": "6"})
        path = await download("https://example/f.bin", tmp_path, client=client)
        assert path.read_bytes() == b"abcdef"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_reset_before_complete_body_fails_after_grace(self, tmp_path: Path) -> None:
        async def body():
            yield b"abc"
            raise httpx.ReadError("connection reset")

        client = streaming_client(body, {"content-length": "6"})
        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(DownloadError):
            await download("https://example/f.bin", tmp_path, client=client)
        assert loop.time() - started >= RESET_GRACE_SECONDS
        assert list(tmp_path.iterdir()) == []
        await client.aclose()


class TestStreamingExtraction:
    @pytest.mark.asyncio
    async def test_small_chunks_fill_the_pipe(self, tmp_path: Path) -> None:
        payload = os.urandom(16 * 1024)
        data = make_tarball({"blob.bin": payload})

        async def body():
            for i in range(0, len(data), 16):
                yield data[i : i + 16]

        client = streaming_client(body)
        await download("https://example/pkg.tgz", tmp_path, extract="untar", client=client)
        assert (tmp_path / "blob.bin").read_bytes() == payload
        await client.aclose()
