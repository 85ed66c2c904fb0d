"""Byte stream sources used to feed install scripts.

Every source validates its input when it is constructed, so a bad path or
URL fails before any I/O. ``get_stream()`` returns a single-use ByteStream.
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import uuid
import weakref
from typing import Any, AsyncIterator, Callable, Iterator, Mapping, Optional, Protocol
from urllib.parse import urlparse

import requests
from requests.models import PreparedRequest

from ..cancel import CancelToken
from ..errors import AbortedError, StreamAcquisitionError, ValidationError
from ..logging_utils import bind

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
DEFAULT_HTTP_TIMEOUT = 30.0


class ByteStream:
    """Single-use async iterator over byte chunks.

    Use it as ``async with stream:`` so the underlying file or response is
    released as soon as the consumer is done. A stream dropped without being
    closed releases it when garbage collected.
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        *,
        close: Optional[Callable[[], None]] = None,
        name: str = "",
    ) -> None:
        self._chunks = chunks
        # `close` must not reference the stream, or it is never collected.
        self._close = weakref.finalize(self, close) if close is not None else None
        self._consumed = False
        self._closed = False
        self.name = name

    @property
    def consumed(self) -> bool:
        return self._consumed

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise StreamAcquisitionError(f"Stream already consumed: {self.name}")
        self._consumed = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._chunks:
                yield chunk
        finally:
            await self.aclose()

    async def read(self) -> bytes:
        return b"".join([chunk async for chunk in self])

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._chunks, "aclose", None)
        if aclose is not None:
            await aclose()
        if self._close is not None:
            self._close()

    async def __aenter__(self) -> "ByteStream":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"<ByteStream name={self.name!r} consumed={self._consumed}>"


class StreamSource(Protocol):
    async def get_stream(self, cancel: Optional[CancelToken] = None) -> ByteStream:
        ...


def _require_trimmed(value: Any, what: str) -> str:
    if not isinstance(value, str) or value == "":
        raise ValidationError(f"{what} is required")
    if value != value.strip():
        raise ValidationError(f"{what} cannot have leading or trailing whitespace")
    return value


class TextStreamSource:
    def __init__(self, text: str) -> None:
        if not isinstance(text, str) or text == "":
            raise ValidationError("Text cannot be empty")
        self._text = text
        # Short id instead of the text itself to keep log lines readable.
        self._log = bind(logger, id=uuid.uuid4().hex[:8])
        self._log.debug("Creating %s...", type(self).__name__)
        self._log.trace("Text: %s", text)

    @classmethod
    def create(cls, text: str) -> "TextStreamSource":
        return cls(text)

    @property
    def text(self) -> str:
        return self._text

    async def get_stream(self, cancel: Optional[CancelToken] = None) -> ByteStream:
        if cancel is not None:
            cancel.raise_if_cancelled()

        data = self._text.encode("utf-8")

        async def chunks() -> AsyncIterator[bytes]:
            yield data

        return ByteStream(chunks(), name="text")


class FileStreamSource:
    def __init__(self, path: str) -> None:
        path = _require_trimmed(path, "File path")
        if not os.path.isabs(path):
            raise ValidationError(f"File path must be absolute: {path}")
        self._path = path
        self._log = bind(logger, file=path)
        self._log.debug("Creating %s...", type(self).__name__)

    @classmethod
    def create(cls, path: str) -> "FileStreamSource":
        return cls(path)

    @property
    def path(self) -> str:
        return self._path

    async def get_stream(self, cancel: Optional[CancelToken] = None) -> ByteStream:
        if cancel is not None:
            cancel.raise_if_cancelled()

        self._log.debug("Creating stream from file...")
        try:
            fh = await asyncio.to_thread(open, self._path, "rb")
        except OSError as e:
            raise StreamAcquisitionError(f"Cannot read {self._path}: {e}") from e

        async def chunks() -> AsyncIterator[bytes]:
            while True:
                if cancel is not None:
                    cancel.raise_if_cancelled()
                chunk = await asyncio.to_thread(fh.read, CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

        return ByteStream(chunks(), close=fh.close, name=self._path)


def _abort_response(response: requests.Response) -> None:
    """Close ``response`` and wake any thread blocked reading its socket."""
    conn = getattr(getattr(response, "raw", None), "_connection", None)
    sock = getattr(conn, "sock", None)
    if sock is not None:
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Already closed by the peer.
            pass
    response.close()


def _drain(task: "asyncio.Future[Any]") -> None:
    if not task.cancelled():
        task.exception()


async def _next_chunk(body: Iterator[bytes], cancel: Optional[CancelToken]) -> Optional[bytes]:
    """Next body chunk, or AbortedError as soon as ``cancel`` fires."""
    read = asyncio.ensure_future(asyncio.to_thread(next, body, None))
    if cancel is None:
        return await read

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({read, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if cancel.cancelled or not read.done():
            # The worker thread ends once the aborted socket read fails.
            read.add_done_callback(_drain)
    if cancel.cancelled:
        raise AbortedError(cancel.reason)
    return read.result()


class HttpStreamSource:
    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        url = _require_trimmed(url, "URL")
        try:
            PreparedRequest().prepare_url(url, None)
        except (requests.RequestException, ValueError) as e:
            raise ValidationError(f"Invalid URL format: {url}") from e
        parsed = urlparse(url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValidationError(f"Invalid URL format: {url}")

        self._url = url
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._log = bind(logger, url=url)
        self._log.debug("Creating %s...", type(self).__name__)

    @classmethod
    def create(cls, url: str) -> "HttpStreamSource":
        return cls(url)

    @property
    def url(self) -> str:
        return self._url

    async def get_stream(self, cancel: Optional[CancelToken] = None) -> ByteStream:
        if cancel is not None:
            cancel.raise_if_cancelled()

        self._log.debug("Fetching stream...")
        try:
            response = await asyncio.to_thread(
                requests.get,
                self._url,
                stream=True,
                timeout=self._timeout,
                headers=self._headers,
            )
        except requests.RequestException as e:
            self._log.error("HTTP request failed: %s", e)
            raise StreamAcquisitionError(f"HTTP request failed for {self._url}: {e}") from e

        log = self._log.bind(status=response.status_code)
        log.trace("Response: %r", response)

        if cancel is not None and cancel.cancelled:
            response.close()
            raise AbortedError(cancel.reason)

        if not response.ok:
            response.close()
            log.error("HTTP request failed")
            raise StreamAcquisitionError(
                f"HTTP request failed: {response.status_code} {response.reason} ({self._url})"
            )

        if response.status_code == 204 or response.headers.get("Content-Length") == "0":
            response.close()
            log.error("HTTP response is empty")
            raise StreamAcquisitionError(f"Response body is empty for {self._url}")

        unregister = cancel.add_callback(lambda: _abort_response(response)) if cancel is not None else None
        body = response.iter_content(chunk_size=CHUNK_SIZE)

        async def chunks() -> AsyncIterator[bytes]:
            while True:
                if cancel is not None:
                    cancel.raise_if_cancelled()
                try:
                    chunk = await _next_chunk(body, cancel)
                except AbortedError:
                    raise
                except Exception as e:
                    # A cancelled request surfaces as whatever error the closed
                    # connection produces.
                    if cancel is not None and cancel.cancelled:
                        raise AbortedError(cancel.reason) from e
                    if isinstance(e, (requests.RequestException, OSError)):
                        raise StreamAcquisitionError(f"Reading {self._url} failed: {e}") from e
                    raise
                if chunk is None:
                    break
                if chunk:
                    yield chunk

        def close() -> None:
            if unregister is not None:
                unregister()
            response.close()

        return ByteStream(chunks(), close=close, name=self._url)
