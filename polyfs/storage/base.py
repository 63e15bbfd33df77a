from __future__ import annotations

import io
import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, BinaryIO

from polyfs.core.address import Address
from polyfs.core.capability import Capability
from polyfs.core.errors import BackendError, PolyfsError
from polyfs.core.visibility import Visibility

if TYPE_CHECKING:
    from polyfs.afs.resource import Resource

DEFAULT_CHUNK_SIZE = 1024


class StorageBackend(ABC):
    """Operations every backend supports. Addresses are backend-relative."""

    scheme: str = ""
    capabilities: frozenset[Capability] = frozenset({Capability.TRANSFORMABLE})

    @abstractmethod
    def read(self, addr: Address) -> bytes | None: ...

    @abstractmethod
    def write(self, addr: Address, contents: bytes, *,
              visibility: Visibility | None = None,
              directory_visibility: Visibility | None = None) -> bool: ...

    @abstractmethod
    def delete(self, addr: Address) -> bool: ...

    @abstractmethod
    def move(self, src: Address, dst: Address, *,
             visibility: Visibility | None = None,
             directory_visibility: Visibility | None = None) -> bool: ...

    @abstractmethod
    def copy(self, src: Address, dst: Address, *,
             visibility: Visibility | None = None,
             directory_visibility: Visibility | None = None) -> bool: ...

    @abstractmethod
    def exists(self, addr: Address) -> bool: ...

    @abstractmethod
    def get_visibility(self, addr: Address) -> Visibility | None: ...

    @abstractmethod
    def set_visibility(self, addr: Address, visibility: Visibility) -> bool: ...


class CollectionBackend(ABC):
    @abstractmethod
    def list(self, addr: Address) -> list[Resource] | None: ...

    @abstractmethod
    def create_collection(self, addr: Address, *,
                          directory_visibility: Visibility | None = None) -> bool: ...

    @abstractmethod
    def delete_collection(self, addr: Address, *, recursive: bool = False) -> bool:
        """Remove a directory. Raises AlreadyExistsError if non-empty and not recursive."""
        ...


class StreamableBackend(ABC):
    @abstractmethod
    def read_stream(self, addr: Address, *,
                    chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes] | None:
        """Lazy, single-pass chunk iterator, or None when the resource is missing."""
        ...

    @abstractmethod
    def write_stream(self, addr: Address, *,
                     chunk_size: int = DEFAULT_CHUNK_SIZE) -> BinaryIO | None:
        """Writable sink; the content is stored once the sink is closed."""
        ...


@dataclass(frozen=True)
class ExecutionResult:
    returncode: int
    stdout: bytes
    stderr: bytes


class ExecutableBackend(ABC):
    @abstractmethod
    def get_executable(self, addr: Address) -> bool | None: ...

    @abstractmethod
    def set_executable(self, addr: Address, executable: bool) -> bool: ...

    @abstractmethod
    def execute(self, addr: Address, args: list[str] | None = None) -> ExecutionResult | None: ...


class MountableBackend(ABC):
    @abstractmethod
    def mount(self, backend: StorageBackend, destination: str | Address, *,
              root: str | Address = "/") -> None: ...

    @abstractmethod
    def unmount(self, destination: str | Address) -> None: ...


class CommitOnCloseWriter(io.BytesIO):
    """In-memory sink that hands its bytes to ``commit`` when closed.

    Leaving a ``with`` block through an exception, or calling ``abort``,
    drops the buffered data instead.
    """

    def __init__(self, commit: Callable[[bytes], None]) -> None:
        super().__init__()
        self._commit = commit
        self._aborted = False

    def abort(self) -> None:
        self._aborted = True
        self.close()

    def close(self) -> None:
        if self.closed:
            return
        data = self.getvalue()
        try:
            if not self._aborted:
                self._commit(data)
        finally:
            super().close()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self._aborted = True
        self.close()

    def __del__(self) -> None:
        # A sink dropped without close() is abandoned, not committed.
        self._aborted = True


@contextmanager
def backend_errors(action: str, addr: Address) -> Iterator[None]:
    """Re-raise driver failures as BackendError, keeping the cause."""
    try:
        yield
    except PolyfsError:
        raise
    except (OSError, sqlite3.Error) as exc:
        raise BackendError(f"{action} {addr.path}: {exc}") from exc
