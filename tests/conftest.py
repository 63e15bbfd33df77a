import pytest

from polyfs.afs.namespace import CompositeBackend
from polyfs.core.capability import Capability
from polyfs.core.errors import BackendError
from polyfs.filesystem import Filesystem
from polyfs.storage.local import LocalBackend
from polyfs.storage.memory import InMemoryBackend
from polyfs.storage.sqlite import SqliteBackend


class RecordingBackend(InMemoryBackend):
    """InMemoryBackend that logs every call it receives."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def read(self, addr):
        self.calls.append(("read", addr.path))
        return super().read(addr)

    def write(self, addr, contents, **kwargs):
        self.calls.append(("write", addr.path))
        return super().write(addr, contents, **kwargs)

    def delete(self, addr):
        self.calls.append(("delete", addr.path))
        return super().delete(addr)

    def move(self, src, dst, **kwargs):
        self.calls.append(("move", src.path, dst.path))
        return super().move(src, dst, **kwargs)

    def copy(self, src, dst, **kwargs):
        self.calls.append(("copy", src.path, dst.path))
        return super().copy(src, dst, **kwargs)


class FailingWriteBackend(InMemoryBackend):
    def write(self, addr, contents, **kwargs):
        raise BackendError(f"write {addr.path}: disk full")


class FailingDeleteBackend(InMemoryBackend):
    def delete(self, addr):
        raise BackendError(f"delete {addr.path}: permission denied")


class ReadWriteOnlyBackend(InMemoryBackend):
    capabilities = frozenset({Capability.TRANSFORMABLE})


def _composite(tmp_path):
    composite = CompositeBackend()
    composite.mount(InMemoryBackend(), "/")
    return composite


BACKEND_FACTORIES = {
    "memory": lambda tmp_path: InMemoryBackend(),
    "local": lambda tmp_path: LocalBackend(tmp_path / "store"),
    "sqlite": lambda tmp_path: SqliteBackend(tmp_path / "objects.db"),
    "composite": _composite,
}


@pytest.fixture(params=sorted(BACKEND_FACTORIES))
def backend(request, tmp_path):
    instance = BACKEND_FACTORIES[request.param](tmp_path)
    yield instance
    if isinstance(instance, SqliteBackend):
        instance.close()


@pytest.fixture
def fs(backend):
    return Filesystem(backend)


@pytest.fixture
def recording():
    return RecordingBackend()
