"""Streaming HTTP download with optional tar/zip extraction, percent progress and cancellation."""

import asyncio
import io
import logging
import queue
import tarfile
import tempfile
import threading
import zipfile
from email.message import Message
from pathlib import Path, PurePosixPath
from typing import IO, Any, Awaitable, Callable, Literal
from urllib.parse import urlparse
from uuid import uuid1

import httpx

from exthost.errors import (
    DownloadAbortedError,
    DownloadError,
    HttpStatusError,
    InvalidDestinationError,
    UnsupportedArchiveError,
)

logger = logging.getLogger(__name__)

ExtractMode = Literal["auto", "untar", "unzip"]

# Proxies sometimes reset a finished connection; give it this long before failing.
RESET_GRACE_SECONDS = 0.5
_PIPE_DEPTH = 64
_PUT_TIMEOUT = 0.1


class CancellationToken:
    def __init__(self, event: asyncio.Event) -> None:
        self._event = event

    @property
    def is_cancellation_requested(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class CancellationTokenSource:
    """Owner side of a cancellation signal. Hand out .token, call cancel() to abort."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.token = CancellationToken(self._event)

    def cancel(self) -> None:
        self._event.set()


class _ChunkPipe(io.RawIOBase):
    """Blocking file-like reader fed chunk by chunk from the event loop.

    The extractor thread reads; the download loop feeds. A bounded queue keeps
    at most a few chunks in memory. When the queue is full the feeder blocks in
    a worker thread until the reader takes a chunk or goes away.
    """

    def __init__(self) -> None:
        super().__init__()
        self._queue: queue.Queue[bytes | None] = queue.Queue(_PIPE_DEPTH)
        self._buffer = b""
        self._aborted = False
        self._reader_gone = threading.Event()

    def readable(self) -> bool:
        return True

    def readinto(self, b: Any) -> int:
        while not self._buffer:
            chunk = self._queue.get()
            if chunk is None:
                if self._aborted:
                    raise OSError("download aborted")
                return 0
            self._buffer = chunk
        n = min(len(b), len(self._buffer))
        b[:n] = self._buffer[:n]
        self._buffer = self._buffer[n:]
        return n

    def reader_done(self) -> None:
        self._reader_gone.set()

    async def feed(self, chunk: bytes | None) -> None:
        try:
            self._queue.put_nowait(chunk)
        except queue.Full:
            await asyncio.to_thread(self._put_blocking, chunk)

    def _put_blocking(self, chunk: bytes | None) -> None:
        while not self._reader_gone.is_set():
            try:
                self._queue.put(chunk, timeout=_PUT_TIMEOUT)
                return
            except queue.Full:
                continue

    def abort(self) -> None:
        self._aborted = True
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
        self._queue.put_nowait(None)


def _strip_name(name: str, strip: int) -> str | None:
    parts = PurePosixPath(name).parts[strip:]
    if not parts:
        return None
    return str(PurePosixPath(*parts))


def _untar(fileobj: IO[bytes], dest: Path, strip: int) -> None:
    with tarfile.open(fileobj=fileobj, mode="r|gz") as tar:
        for member in tar:
            name = _strip_name(member.name, strip)
            if name is None:
                continue
            member.name = name
            if member.islnk():
                linkname = _strip_name(member.linkname, strip)
                if linkname is None:
                    continue
                member.linkname = linkname
            tar.extract(member, dest, filter="data")


def _unzip(fileobj: IO[bytes], dest: Path) -> None:
    fileobj.seek(0)
    with zipfile.ZipFile(fileobj) as archive:
        archive.extractall(dest)


def _filename_hint(response: httpx.Response) -> str | None:
    header = response.headers.get("content-disposition")
    if not header:
        return None
    msg = Message()
    msg["content-disposition"] = header
    return msg.get_filename()


def _extension(url: str, response: httpx.Response) -> str:
    hint = _filename_hint(response)
    if hint:
        suffixes = PurePosixPath(hint).suffixes
        if suffixes[-2:] == [".tar", ".gz"]:
            return ".tar.gz"
        return PurePosixPath(hint).suffix
    path = PurePosixPath(urlparse(url).path)
    if path.suffixes[-2:] == [".tar", ".gz"]:
        return ".tar.gz"
    return path.suffix


def _resolve_mode(extract: ExtractMode, url: str, response: httpx.Response) -> str:
    if extract != "auto":
        return extract
    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    ext = _extension(url, response).lower()
    if ext == ".zip" or content_type == "application/zip":
        return "unzip"
    if ext in (".tgz", ".tar.gz") or content_type in ("application/gzip", "application/x-gzip"):
        return "untar"
    raise UnsupportedArchiveError(
        f"Unsupported archive for {url}: extension {ext!r}, content-type {content_type!r}"
    )


def _check_destination(dest: Path) -> None:
    if not dest.is_absolute():
        raise InvalidDestinationError(f"Expect absolute destination path, got {dest}")
    if dest.exists() and not dest.is_dir():
        raise InvalidDestinationError(f"{dest} exists but is not a directory")
    dest.mkdir(parents=True, exist_ok=True)


async def _consume(
    response: httpx.Response,
    on_chunk: Callable[[bytes], Awaitable[None]],
    on_progress: Callable[[str], None] | None,
) -> None:
    length = response.headers.get("content-length")
    total = int(length) if length and length.isdigit() else 0
    received = 0
    try:
        async for chunk in response.aiter_bytes():
            received += len(chunk)
            await on_chunk(chunk)
            if total and on_progress is not None:
                on_progress(f"{received / total * 100:.1f}")
    except (httpx.ReadError, httpx.RemoteProtocolError) as e:
        if total and received >= total:
            logger.debug("connection reset after complete body of %s", response.url)
            return
        await asyncio.sleep(RESET_GRACE_SECONDS)
        raise DownloadError(f"Connection reset while downloading {response.url}: {e}") from e


async def _fetch(
    client: httpx.AsyncClient,
    url: str,
    dest: Path,
    strip: int,
    extract: ExtractMode | None,
    timeout: float | None,
    on_progress: Callable[[str], None] | None,
) -> Path:
    async with client.stream("GET", url, timeout=timeout) as response:
        status = response.status_code
        if not (200 <= status < 300 or status == 1223):
            raise HttpStatusError(url, status)

        if extract is None:
            target = dest / f"{uuid1().hex}{_extension(url, response)}"
            try:
                with target.open("wb") as out:

                    async def write(chunk: bytes) -> None:
                        out.write(chunk)

                    await _consume(response, write, on_progress)
            except BaseException:
                target.unlink(missing_ok=True)
                raise
            return target

        mode = _resolve_mode(extract, url, response)
        if mode == "unzip":
            with tempfile.TemporaryFile() as spool:

                async def spool_write(chunk: bytes) -> None:
                    spool.write(chunk)

                await _consume(response, spool_write, on_progress)
                await asyncio.to_thread(_unzip, spool, dest)
            return dest

        pipe = _ChunkPipe()
        reader = io.BufferedReader(pipe)
        extractor = asyncio.ensure_future(asyncio.to_thread(_untar, reader, dest, strip))
        extractor.add_done_callback(lambda _f: pipe.reader_done())

        async def feed(chunk: bytes) -> None:
            await pipe.feed(chunk)

        try:
            await _consume(response, feed, on_progress)
            await pipe.feed(None)
        except BaseException:
            pipe.abort()
            extractor.add_done_callback(lambda f: f.cancelled() or f.exception())
            raise
        try:
            await extractor
        except (tarfile.TarError, OSError, EOFError) as e:
            raise DownloadError(f"Failed to extract {url}: {e}") from e
        return dest


async def download(
    url: str,
    dest: Path,
    *,
    strip: int = 1,
    extract: ExtractMode | None = None,
    timeout: float | None = None,
    on_progress: Callable[[str], None] | None = None,
    token: CancellationToken | None = None,
    client: httpx.AsyncClient | None = None,
) -> Path:
    """Download url into the absolute directory dest.

    Without extract the body is written to a uniquely named file in dest and
    that file's path is returned. With extract the archive is unpacked into
    dest (tar members lose `strip` leading path segments) and dest is
    returned. on_progress receives percent strings like "42.0" when the
    response carries Content-Length.
    """
    _check_destination(dest)
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(follow_redirects=True)
    try:
        coro = _fetch(client, url, dest, strip, extract, timeout, on_progress)
        return await _run_cancellable(coro, token, url)
    except httpx.TimeoutException as e:
        raise DownloadError(f"Request timeout after {timeout}s: {url}") from e
    except httpx.HTTPError as e:
        raise DownloadError(f"Download of {url} failed: {e}") from e
    finally:
        if owns_client:
            await client.aclose()


async def _run_cancellable(
    coro: Awaitable[Path], token: CancellationToken | None, url: str
) -> Path:
    if token is None:
        return await coro
    task = asyncio.ensure_future(coro)
    if token.is_cancellation_requested:
        task.cancel()
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()
    if task in done and not task.cancelled():
        return task.result()
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.debug("aborted download of %s ended with %s", url, e)
    raise DownloadAbortedError(f"request aborted: {url}")
