class FormContentError(Exception):
    """Base error for formcontent."""


class InvalidBoundaryError(FormContentError, ValueError):
    """Raised when a boundary token is not valid for multipart/form-data."""


class FieldEncodingError(FormContentError, ValueError):
    """Raised when a field key or filename cannot be rendered into a part header."""


class EmptyFileError(FormContentError):
    """Raised when a file attachment has no content."""

    def __init__(self, message: str = "file provided has no content") -> None:
        super().__init__(message)


class FormFinalizedError(FormContentError):
    """Raised when a form is used after it has been finalized."""


class StreamClosedError(FormContentError):
    """Raised when reading from a form stream that has been closed."""


class FileChangedError(FormContentError):
    """Raised when a file's size changed between registration and streaming."""
