from __future__ import annotations

import asyncio
import enum
import logging
import os
from collections.abc import AsyncIterator, Iterator, Sequence
from typing import TYPE_CHECKING, BinaryIO

from .errors import FileChangedError, StreamClosedError
from .multipart import CRLF

if TYPE_CHECKING:
    from .form import FileEntry

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 8192

# "\r\n--" + boundary + "--\r\n"
_CLOSING_FRAME = 8


class StreamState(enum.Enum):
    SEPARATOR = "separator"
    FILE_HEADER = "file_header"
    FILE_CONTENT = "file_content"
    FIELDS = "fields"
    DONE = "done"


def separator_owed(next_index: int, file_count: int, trailing_length: int, boundary_length: int) -> bool:
    """
    Decide whether a CRLF separator follows the file that was just finished.

    One is owed when another file comes next, or when the trailing block holds
    scalar fields and not just the closing boundary.
    """
    return next_index < file_count or trailing_length > boundary_length + _CLOSING_FRAME


class FormStream:
    """
    Pull-based reader over a finalized multipart form.

    Each read() serves bytes from the current segment (a separator, a file
    header, file content or the trailing field block) and moves the state
    machine forward once that segment is exhausted. Files are opened lazily,
    one at a time, and closed as soon as their content has been read.
    """

    def __init__(
        self,
        files: Sequence[FileEntry],
        fields: bytes,
        boundary: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._files = tuple(files)
        self._fields = memoryview(fields)
        self._boundary_length = len(boundary.encode("utf-8"))
        self._chunk_size = chunk_size
        self._index = 0
        self._buffer = memoryview(b"")
        self._offset = 0
        self._handle: BinaryIO | None = None
        self._remaining = 0
        self._position = 0
        self._error: BaseException | None = None
        self._closed = False
        if self._files:
            self._enter(StreamState.FILE_HEADER)
        else:
            self._enter(StreamState.FIELDS)

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def position(self) -> int:
        """Number of bytes emitted so far."""
        return self._position

    @property
    def closed(self) -> bool:
        return self._closed

    def readable(self) -> bool:
        return True

    def _enter(self, state: StreamState) -> None:
        self._state = state
        self._offset = 0
        if state is StreamState.SEPARATOR:
            self._buffer = memoryview(CRLF)
        elif state is StreamState.FILE_HEADER:
            self._buffer = memoryview(self._files[self._index].header)
        elif state is StreamState.FIELDS:
            self._buffer = self._fields
        else:
            self._buffer = memoryview(b"")

    def _advance(self) -> None:
        state = self._state
        if state is StreamState.FILE_HEADER:
            self._enter(StreamState.FILE_CONTENT)
        elif state is StreamState.FILE_CONTENT:
            self._close_file()
            self._index += 1
            if separator_owed(self._index, len(self._files), len(self._fields), self._boundary_length):
                self._enter(StreamState.SEPARATOR)
            else:
                self._enter(StreamState.FIELDS)
        elif state is StreamState.SEPARATOR:
            if self._index < len(self._files):
                self._enter(StreamState.FILE_HEADER)
            else:
                self._enter(StreamState.FIELDS)
        elif state is StreamState.FIELDS:
            self._enter(StreamState.DONE)

    def _open_file(self) -> BinaryIO:
        entry = self._files[self._index]
        handle = open(entry.path, "rb")
        self._handle = handle
        self._remaining = entry.size
        logger.debug("Opened %s for field %r (%d bytes)", entry.path, entry.key, entry.size)
        return handle

    def _close_file(self) -> None:
        if self._handle is not None:
            handle, self._handle = self._handle, None
            handle.close()
            logger.debug("Closed %s", self._files[self._index].path)

    def _read_file(self, size: int) -> bytes:
        handle = self._handle if self._handle is not None else self._open_file()
        entry = self._files[self._index]
        if self._remaining == 0:
            # Content fully served; the file must not have grown since it was registered.
            if os.fstat(handle.fileno()).st_size != entry.size:
                raise FileChangedError(f"{entry.path} changed size after it was added to the form")
            return b""
        data = handle.read(min(size, self._remaining))
        if not data:
            raise FileChangedError(
                f"{entry.path} ended {self._remaining} bytes early; it changed after it was added to the form"
            )
        self._remaining -= len(data)
        return data

    def _read_segment(self, size: int) -> bytes:
        if self._state is StreamState.FILE_CONTENT:
            return self._read_file(size)
        end = self._offset + size
        data = self._buffer[self._offset:end].tobytes()
        self._offset += len(data)
        return data

    def read(self, size: int | None = -1) -> bytes:
        """
        Read up to `size` bytes of the multipart body.

        Returns b"" only once the body is exhausted. A negative or None size
        reads everything that is left.
        """
        if self._error is not None:
            raise self._error
        if self._closed:
            raise StreamClosedError("Form stream has been closed")
        if size is None or size < 0:
            return b"".join(self.iter_bytes())
        if size == 0:
            return b""

        while self._state is not StreamState.DONE:
            try:
                data = self._read_segment(size)
            except (OSError, FileChangedError) as exc:
                self._fail(exc)
                raise
            if data:
                self._position += len(data)
                return data
            self._advance()
        return b""

    def _fail(self, exc: BaseException) -> None:
        entry = self._files[self._index] if self._index < len(self._files) else None
        logger.warning(
            "Form stream failed at byte %d while reading %s: %s",
            self._position,
            entry.path if entry is not None else "form fields",
            exc,
        )
        self._error = exc
        self.close()

    def iter_bytes(self, chunk_size: int | None = None) -> Iterator[bytes]:
        """
        Iterate over the body in chunks.

        Args:
            chunk_size: Maximum size of each chunk (default: 8192)

        Yields:
            Consecutive byte chunks until the body is exhausted
        """
        size = chunk_size or self._chunk_size
        while True:
            chunk = self.read(size)
            if not chunk:
                break
            yield chunk

    async def aiter_bytes(self, chunk_size: int | None = None) -> AsyncIterator[bytes]:
        """
        Async iterate over the body in chunks.

        Blocking file reads run in a worker thread, so the event loop is never
        held up by disk I/O.
        """
        size = chunk_size or self._chunk_size
        while True:
            chunk = await asyncio.to_thread(self.read, size)
            if not chunk:
                break
            yield chunk

    def close(self) -> None:
        """Close the stream and release any open file handle."""
        if not self._closed:
            self._closed = True
            self._close_file()

    def __enter__(self) -> FormStream:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[bytes]:
        return self.iter_bytes()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.aiter_bytes()

    def __repr__(self) -> str:
        return f"<FormStream [{self._state.value}] {self._position} bytes read>"
