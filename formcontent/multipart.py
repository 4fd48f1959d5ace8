"""
Multipart/form-data rendering primitives.

Every part is framed the same way whether it is built in memory or streamed:
the first part opens with ``--boundary``, later parts are preceded by CRLF, and
the body ends with ``--boundary--`` followed by CRLF.
"""

from __future__ import annotations

import re
import uuid

from .errors import FieldEncodingError, InvalidBoundaryError

CRLF = b"\r\n"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_BOUNDARY_RE = re.compile(r"[A-Za-z0-9'()+_,\-./:=? ]{0,69}[A-Za-z0-9'()+_,\-./:=?]")
_TSPECIALS = set('()<>@,;:\\"/[]?= ')
_FORBIDDEN = ("\r", "\n", "\x00")


def choose_boundary() -> str:
    """Generate a random boundary token."""
    return uuid.uuid4().hex


def validate_boundary(boundary: str) -> str:
    """
    Check that `boundary` is usable as a multipart delimiter.

    Returns the boundary unchanged, or raises InvalidBoundaryError.
    """
    if not isinstance(boundary, str) or not _BOUNDARY_RE.fullmatch(boundary):
        raise InvalidBoundaryError(f"invalid multipart boundary: {boundary!r}")
    return boundary


def content_type_for(boundary: str) -> str:
    """Build the Content-Type header value for a multipart/form-data body."""
    if any(ch in _TSPECIALS for ch in boundary):
        boundary = f'"{boundary}"'
    return f"multipart/form-data; boundary={boundary}"


def _quote(value: str, what: str) -> str:
    if any(ch in value for ch in _FORBIDDEN):
        raise FieldEncodingError(f"{what} contains a line break or NUL: {value!r}")
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _delimiter(boundary: str, first: bool) -> bytes:
    leading = b"" if first else CRLF
    return leading + f"--{boundary}\r\n".encode("utf-8")


def render_field(boundary: str, key: str, value: str, first: bool) -> bytes:
    """Render a scalar field part, value included."""
    name = _quote(key, "field name")
    header = f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
    return _delimiter(boundary, first) + header.encode("utf-8") + value.encode("utf-8")


def render_file_header(
    boundary: str,
    key: str,
    filename: str,
    content_type: str | None = None,
) -> bytes:
    """Render the header of a file part. The file content follows it directly."""
    name = _quote(key, "field name")
    fname = _quote(filename, "filename")
    ct = _quote(content_type or DEFAULT_CONTENT_TYPE, "content type")
    header = (
        f'Content-Disposition: form-data; name="{name}"; filename="{fname}"\r\n'
        f"Content-Type: {ct}\r\n\r\n"
    )
    return _delimiter(boundary, True) + header.encode("utf-8")


def closing_boundary(boundary: str, preceded: bool) -> bytes:
    """Render the terminating delimiter; `preceded` is True when any part came before it."""
    leading = CRLF if preceded else b""
    return leading + f"--{boundary}--\r\n".encode("utf-8")


def build_multipart(
    data: dict[str, str] | None,
    files: dict[str, bytes | tuple[str, bytes, str | None]] | None,
    boundary: str | None = None,
) -> tuple[str, bytes]:
    """
    Build a multipart/form-data body in memory.

    `files` values can be bytes or (filename, bytes, content_type|None).
    Files come first in insertion order, then the scalar fields, the same
    layout a streamed Form produces.
    """
    boundary = validate_boundary(boundary) if boundary is not None else choose_boundary()
    body_chunks: list[bytes] = []
    files = files or {}
    for index, (field, val) in enumerate(files.items()):
        if index:
            body_chunks.append(CRLF)
        if isinstance(val, bytes):
            filename, content, ctype = field, val, None
        else:
            filename, content, ctype = val
        body_chunks.append(render_file_header(boundary, field, filename, ctype))
        body_chunks.append(content)
    if data:
        if files:
            body_chunks.append(CRLF)
        for index, (k, v) in enumerate(data.items()):
            body_chunks.append(render_field(boundary, k, v, first=index == 0))
    body_chunks.append(closing_boundary(boundary, preceded=bool(files or data)))
    return content_type_for(boundary), b"".join(body_chunks)
