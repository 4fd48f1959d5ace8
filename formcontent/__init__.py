from formcontent.form import ContentSubmission, FieldBlock, FileEntry, Form
from formcontent.multipart import build_multipart, choose_boundary
from formcontent.stream import FormStream, StreamState
from formcontent.errors import (
    EmptyFileError,
    FieldEncodingError,
    FileChangedError,
    FormContentError,
    FormFinalizedError,
    InvalidBoundaryError,
    StreamClosedError,
)

__all__ = [
    "Form",
    "FileEntry",
    "FieldBlock",
    "ContentSubmission",
    "FormStream",
    "StreamState",
    "build_multipart",
    "choose_boundary",
    "FormContentError",
    "InvalidBoundaryError",
    "FieldEncodingError",
    "EmptyFileError",
    "FormFinalizedError",
    "StreamClosedError",
    "FileChangedError",
]
