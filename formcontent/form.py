from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass

from .errors import EmptyFileError, FormFinalizedError
from .multipart import (
    choose_boundary,
    closing_boundary,
    content_type_for,
    render_field,
    render_file_header,
    validate_boundary,
)
from .stream import DEFAULT_CHUNK_SIZE, FormStream, separator_owed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileEntry:
    """A file attachment whose content is read only while streaming."""

    key: str
    path: str
    header: bytes
    size: int

    @property
    def length(self) -> int:
        return len(self.header) + self.size


class FieldBlock:
    """Append-only buffer of scalar fields, rendered as soon as they are added."""

    def __init__(self, boundary: str) -> None:
        self._boundary = boundary
        self._buffer = bytearray()
        self._count = 0

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def count(self) -> int:
        return self._count

    def append(self, key: str, value: str) -> int:
        part = render_field(self._boundary, key, value, first=self._count == 0)
        self._buffer += part
        self._count += 1
        return len(part)

    def close(self, preceded: bool) -> int:
        """Append the closing boundary and return its length."""
        marker = closing_boundary(self._boundary, preceded)
        self._buffer += marker
        return len(marker)

    def getvalue(self) -> bytes:
        return bytes(self._buffer)


@dataclass(frozen=True)
class ContentSubmission:
    """A finalized form: a single-pass body stream, its exact length and content type."""

    content: FormStream
    content_length: int
    content_type: str

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": self.content_type,
            "Content-Length": str(self.content_length),
        }

    def close(self) -> None:
        self.content.close()

    def __enter__(self) -> ContentSubmission:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _probe_file(path: str) -> int:
    """Open and stat `path`, returning its size. The handle is closed before returning."""
    with open(path, "rb") as handle:
        size = os.fstat(handle.fileno()).st_size
    if size == 0:
        raise EmptyFileError()
    return size


class Form:
    """
    Incremental multipart/form-data builder.

    Scalar fields are rendered into memory immediately; files are only opened
    and stat'd at registration and read later, while the finalized content is
    being streamed. All files are emitted first, in the order they were added,
    followed by the scalar fields and the closing boundary.

    Example:
        form = Form()
        form.add_field("title", "report")
        form.add_file("attachment", "/tmp/report.pdf", "application/pdf")
        submission = form.finalize()
        conn.request("POST", "/upload", body=submission.content, headers=submission.headers)
    """

    def __init__(
        self,
        boundary: str | None = None,
        *,
        boundary_factory: Callable[[], str] = choose_boundary,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.boundary = validate_boundary(boundary if boundary is not None else boundary_factory())
        self.content_type = content_type_for(self.boundary)
        self.length = 0
        self._chunk_size = chunk_size
        self._files: list[FileEntry] = []
        self._fields = FieldBlock(self.boundary)
        self._finalized = False

    @property
    def files(self) -> tuple[FileEntry, ...]:
        return tuple(self._files)

    @property
    def finalized(self) -> bool:
        return self._finalized

    def _ensure_open(self) -> None:
        if self._finalized:
            raise FormFinalizedError("Form has already been finalized")

    def add_field(self, key: str, value: str) -> None:
        """Render a scalar field into the form."""
        self._ensure_open()
        self.length += self._fields.append(key, value)

    def add_file(self, key: str, path: str | os.PathLike[str], content_type: str | None = None) -> None:
        """
        Register a file attachment.

        The file is opened and stat'd right away so that a missing, unreadable
        or empty file is reported here rather than halfway through the upload.
        Its content is not read.

        Args:
            key: Form field name
            path: Location of the file on disk
            content_type: Part content type (default: application/octet-stream)

        Raises:
            OSError: The file cannot be opened or stat'd
            EmptyFileError: The file has no content
            FieldEncodingError: The key or file name cannot be rendered
        """
        self._ensure_open()
        path = os.fspath(path)
        size = _probe_file(path)
        header = render_file_header(self.boundary, key, os.path.basename(path), content_type)
        entry = FileEntry(key=key, path=path, header=header, size=size)
        self._files.append(entry)
        self.length += entry.length
        logger.debug("Added file %s as %r (%d bytes)", path, key, size)

    def finalize(self) -> ContentSubmission:
        """Close the form and return its content stream with the exact content length."""
        self._ensure_open()
        file_count = len(self._files)
        self.length += self._fields.close(preceded=bool(file_count or self._fields.count))
        if file_count:
            self.length += 2 * (file_count - 1)
            if separator_owed(file_count, file_count, len(self._fields), len(self.boundary.encode("utf-8"))):
                self.length += 2
        self._finalized = True
        logger.debug(
            "Finalized form with %d file(s) and %d field(s), %d bytes",
            file_count,
            self._fields.count,
            self.length,
        )
        stream = FormStream(self._files, self._fields.getvalue(), self.boundary, self._chunk_size)
        return ContentSubmission(content=stream, content_length=self.length, content_type=self.content_type)

    def __repr__(self) -> str:
        return f"<Form files={len(self._files)} fields={self._fields.count} length={self.length}>"
