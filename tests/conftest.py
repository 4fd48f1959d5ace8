"""Pytest configuration and fixtures."""

import pytest

from formcontent import Form

BOUNDARY = "formcontent-test-boundary"


@pytest.fixture
def boundary():
    """A fixed boundary so rendered bytes can be compared exactly."""
    return BOUNDARY


@pytest.fixture
def form(boundary):
    """A fresh form using the fixed boundary."""
    return Form(boundary)


@pytest.fixture
def make_file(tmp_path):
    """Factory that writes a file under tmp_path and returns its path as a string."""

    def _make(name: str, content: bytes | str) -> str:
        if isinstance(content, str):
            content = content.encode()
        path = tmp_path / name
        path.write_bytes(content)
        return str(path)

    return _make


class SpyHandle:
    """File wrapper that counts reads and tracks whether it was closed."""

    def __init__(self, handle):
        self._handle = handle
        self.reads = 0

    def read(self, *args):
        self.reads += 1
        return self._handle.read(*args)

    def fileno(self):
        return self._handle.fileno()

    def close(self):
        self._handle.close()

    @property
    def closed(self):
        return self._handle.closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


@pytest.fixture
def open_spy(monkeypatch):
    """Patch `open` in a formcontent module and return the list of handles it opens."""

    def _install(module: str) -> list[SpyHandle]:
        real_open = open
        handles: list[SpyHandle] = []

        def spy_open(*args, **kwargs):
            handle = SpyHandle(real_open(*args, **kwargs))
            handles.append(handle)
            return handle

        monkeypatch.setattr(f"{module}.open", spy_open, raising=False)
        return handles

    return _install
