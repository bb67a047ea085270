"""Streaming upload bodies and download readers."""

from __future__ import annotations

import hashlib
import io
import re
import threading
from typing import IO, Iterator

import requests
from urllib3.exceptions import HTTPError as Urllib3HTTPError
from urllib3.exceptions import TimeoutError as Urllib3TimeoutError

from s3core.logging_config import get_logger
from s3core.storage.errors import (
    ContentLengthMismatchError,
    IntegrityError,
    RequestTimeoutError,
    TransferCancelledError,
    TransportError,
)
from s3core.storage.models import ObjectMetadata

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024

_PLAIN_MD5_ETAG = re.compile(r"[0-9a-f]{32}")


def is_md5_etag(etag: str) -> bool:
    """Multipart and encrypted uploads report ETags that are not an MD5 of the content."""
    return bool(_PLAIN_MD5_ETAG.fullmatch(etag.lower()))


def _raise_if_cancelled(cancel: threading.Event | None, what: str) -> None:
    if cancel is not None and cancel.is_set():
        raise TransferCancelledError(f"{what} cancelled by caller")


class HashingReader:
    """Upload body that delivers exactly ``size`` bytes from ``reader`` and MD5s them.

    ``requests`` sizes the body with ``len()``; the reader is drained lazily while the
    request is being written, so nothing is buffered beyond one block.
    """

    def __init__(self, reader: IO[bytes], size: int, cancel: threading.Event | None = None) -> None:
        self._reader = reader
        self._size = size
        self._remaining = size
        self._md5 = hashlib.md5()
        self._cancel = cancel

    def __len__(self) -> int:
        return self._size

    @property
    def bytes_read(self) -> int:
        return self._size - self._remaining

    def read(self, amt: int | None = -1) -> bytes:
        _raise_if_cancelled(self._cancel, "upload")
        if self._remaining <= 0:
            return b""
        if amt is None or amt < 0 or amt > self._remaining:
            amt = self._remaining
        chunk = self._reader.read(amt)
        if not chunk:
            raise ContentLengthMismatchError(self._size, self.bytes_read)
        chunk = chunk[: self._remaining]
        self._remaining -= len(chunk)
        self._md5.update(chunk)
        return chunk

    def hexdigest(self) -> str:
        return self._md5.hexdigest()


class ObjectReader(io.RawIOBase):
    """Binary reader bound to a live GET response.

    Closing it before EOF releases the connection without raising. On reaching EOF the
    MD5 of everything read is checked against a plain ETag, also for chunked responses
    whose size was not known up front.
    """

    def __init__(
        self,
        response: requests.Response,
        metadata: ObjectMetadata,
        cancel: threading.Event | None = None,
        verify_etag: bool = True,
    ) -> None:
        super().__init__()
        self._response = response
        self.metadata = metadata
        self._cancel = cancel
        self._verify_etag = verify_etag and is_md5_etag(metadata.etag)
        self._md5 = hashlib.md5()
        self._bytes_read = 0
        self._finished = False

    @property
    def bytes_read(self) -> int:
        return self._bytes_read

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed object reader.")
        try:
            _raise_if_cancelled(self._cancel, "download")
        except TransferCancelledError:
            self.close()
            raise
        try:
            data = self._response.raw.read(len(buffer))
        except Urllib3TimeoutError as exc:
            self.close()
            raise RequestTimeoutError(f"Timed out reading {self.metadata.key!r}") from exc
        except (Urllib3HTTPError, OSError) as exc:
            self.close()
            raise TransportError(f"Connection lost while reading {self.metadata.key!r}: {exc}") from exc
        if not data:
            self._finish()
            return 0
        size = len(data)
        buffer[:size] = data
        self._md5.update(data)
        self._bytes_read += size
        return size

    def iter_chunks(self, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
        while True:
            chunk = self.read(chunk_size)
            if not chunk:
                return
            yield chunk

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        # EOF on a full GET: every byte of the object passed through, whether or not
        # the response declared a Content-Length.
        if not self._verify_etag:
            return
        digest = self._md5.hexdigest()
        if digest != self.metadata.etag.lower():
            raise IntegrityError(self.metadata.key, self.metadata.etag, digest)

    def close(self) -> None:
        if not self.closed:
            if not self._finished:
                logger.debug(
                    "Object reader released early: key=%s bytes_read=%s size=%s",
                    self.metadata.key,
                    self._bytes_read,
                    self.metadata.size,
                )
            self._response.close()
        super().close()
