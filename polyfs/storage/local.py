from __future__ import annotations

import io
import logging
import mimetypes
import os
import shutil
import stat
import subprocess
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from polyfs.afs.resource import Resource, ResourceType
from polyfs.core.address import Address, join, normalize
from polyfs.core.capability import Capability
from polyfs.core.errors import AlreadyExistsError, BackendError
from polyfs.core.primitives import atomic_write, from_timestamp
from polyfs.core.visibility import PortableUnixVisibility, Visibility
from polyfs.storage.base import (
    DEFAULT_CHUNK_SIZE,
    CollectionBackend,
    ExecutableBackend,
    ExecutionResult,
    StorageBackend,
    StreamableBackend,
    backend_errors,
)

logger = logging.getLogger(__name__)


class ReplaceOnCloseWriter(io.BufferedWriter):
    """Streams into a temp file next to ``target`` and renames it over ``target`` on close.

    Until then readers keep seeing the old content. Leaving a ``with`` block
    through an exception, calling ``abort``, or dropping the sink unclosed
    removes the temp file instead.
    """

    def __init__(self, target: Path, addr: Address, mode: int, buffer_size: int) -> None:
        fd, tmp = tempfile.mkstemp(dir=target.parent, suffix=".tmp")
        super().__init__(io.FileIO(fd, "wb"), buffer_size=buffer_size)
        self._tmp = Path(tmp)
        self._target = target
        self._addr = addr
        self._mode = mode
        self._aborted = False

    def abort(self) -> None:
        self._aborted = True
        self.close()

    def close(self) -> None:
        if self.closed:
            return
        with backend_errors("write", self._addr):
            try:
                super().close()
            except BaseException:
                self._tmp.unlink(missing_ok=True)
                raise
            if self._aborted:
                self._tmp.unlink(missing_ok=True)
                return
            os.chmod(self._tmp, self._mode)
            os.replace(self._tmp, self._target)

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self._aborted = True
        self.close()

    def __del__(self) -> None:
        if not self.closed:
            self.abort()


class LocalBackend(StorageBackend, CollectionBackend, StreamableBackend, ExecutableBackend):
    """Files on local disk, sandboxed under ``root``."""

    scheme = "file"
    capabilities = frozenset({
        Capability.TRANSFORMABLE, Capability.COLLECTION,
        Capability.STREAMABLE, Capability.EXECUTABLE,
    })

    def __init__(self, root: Path | str, converter: PortableUnixVisibility | None = None) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._converter = converter or PortableUnixVisibility()

    @property
    def root(self) -> Path:
        return self._root

    def _local_path(self, addr: Address) -> Path:
        segments = normalize(addr).path.strip("/")
        return self._root / segments if segments else self._root

    def _ensure_dir(self, target: Path, visibility: Visibility | None) -> None:
        missing = []
        current = target
        while not current.is_dir():
            missing.append(current)
            if current == self._root or current.parent == current:
                break
            current = current.parent
        for directory in reversed(missing):
            directory.mkdir(exist_ok=True)
            if visibility is not None:
                directory.chmod(self._converter.for_directory(visibility))

    def read(self, addr: Address) -> bytes | None:
        path = self._local_path(addr)
        with backend_errors("read", addr):
            if not path.is_file():
                return None
            return path.read_bytes()

    def _file_mode(self, path: Path, visibility: Visibility | None) -> int:
        """Mode for a rewritten file: the given visibility, else the mode it already has."""
        if visibility is not None:
            return self._converter.for_file(visibility)
        if path.is_file():
            return stat.S_IMODE(path.stat().st_mode)
        return self._converter.for_file(Visibility.PUBLIC)

    def write(self, addr: Address, contents: bytes, *,
              visibility: Visibility | None = None,
              directory_visibility: Visibility | None = None) -> bool:
        path = self._local_path(addr)
        with backend_errors("write", addr):
            mode = self._file_mode(path, visibility)
            self._ensure_dir(path.parent, directory_visibility)
            atomic_write(path, bytes(contents))
            path.chmod(mode)
        return True

    def delete(self, addr: Address) -> bool:
        path = self._local_path(addr)
        with backend_errors("delete", addr):
            path.unlink(missing_ok=True)
        return True

    def move(self, src: Address, dst: Address, *,
             visibility: Visibility | None = None,
             directory_visibility: Visibility | None = None) -> bool:
        src_path, dst_path = self._local_path(src), self._local_path(dst)
        with backend_errors("move", src):
            if not src_path.exists():
                return False
            self._ensure_dir(dst_path.parent, directory_visibility)
            os.replace(src_path, dst_path)
            if visibility is not None:
                dst_path.chmod(self._converter.for_file(visibility))
        return True

    def copy(self, src: Address, dst: Address, *,
             visibility: Visibility | None = None,
             directory_visibility: Visibility | None = None) -> bool:
        src_path, dst_path = self._local_path(src), self._local_path(dst)
        with backend_errors("copy", src):
            if not src_path.is_file():
                return False
            self._ensure_dir(dst_path.parent, directory_visibility)
            shutil.copy(src_path, dst_path)
            if visibility is not None:
                dst_path.chmod(self._converter.for_file(visibility))
        return True

    def exists(self, addr: Address) -> bool:
        return self._local_path(addr).exists()

    def _visibility_for(self, st: os.stat_result) -> Visibility:
        if stat.S_ISDIR(st.st_mode):
            return self._converter.from_directory(st.st_mode)
        return self._converter.from_file(st.st_mode)

    def get_visibility(self, addr: Address) -> Visibility | None:
        path = self._local_path(addr)
        if not path.exists():
            return None
        with backend_errors("stat", addr):
            return self._visibility_for(path.stat())

    def set_visibility(self, addr: Address, visibility: Visibility) -> bool:
        path = self._local_path(addr)
        if not path.exists():
            return False
        with backend_errors("chmod", addr):
            if path.is_dir():
                path.chmod(self._converter.for_directory(visibility))
            else:
                path.chmod(self._converter.for_file(visibility))
        return True

    def list(self, addr: Address) -> list[Resource] | None:
        base = normalize(addr)
        target = self._local_path(base)
        if not target.is_dir():
            return None
        results = []
        with backend_errors("list", addr):
            for item in sorted(target.iterdir()):
                try:
                    st = item.stat()
                except FileNotFoundError:
                    continue
                resource = self._resource(join(base, item.name), st)
                if resource is not None:
                    results.append(resource)
        return results

    def _resource(self, address: Address, st: os.stat_result) -> Resource | None:
        if stat.S_ISDIR(st.st_mode):
            rtype = ResourceType.DIRECTORY
        elif stat.S_ISREG(st.st_mode):
            rtype = ResourceType.FILE
        else:
            return None
        return Resource(
            address=address,
            type=rtype,
            size=st.st_size,
            mtime=from_timestamp(st.st_mtime),
            mime_type=mimetypes.guess_type(address.name)[0] if rtype is ResourceType.FILE else None,
            metadata={
                "visibility": self._visibility_for(st),
                "executable": rtype is ResourceType.FILE and bool(st.st_mode & 0o111),
                "watchable": True,
                "transformable": True,
            },
        )

    def create_collection(self, addr: Address, *,
                          directory_visibility: Visibility | None = None) -> bool:
        path = self._local_path(addr)
        if path.exists() and not path.is_dir():
            raise AlreadyExistsError(f"File exists: {addr.path}")
        with backend_errors("mkdir", addr):
            self._ensure_dir(path.parent, directory_visibility)
            if not path.is_dir():
                path.mkdir()
                path.chmod(self._converter.for_directory(directory_visibility or Visibility.PUBLIC))
        return True

    def delete_collection(self, addr: Address, *, recursive: bool = False) -> bool:
        path = self._local_path(addr)
        if not path.is_dir():
            return False
        with backend_errors("rmdir", addr):
            children = list(path.iterdir())
            if children and not recursive:
                raise AlreadyExistsError(f"Directory not empty: {addr.path}")
            if path == self._root:
                for child in children:
                    if child.is_dir() and not child.is_symlink():
                        shutil.rmtree(child)
                    else:
                        child.unlink()
            elif recursive:
                shutil.rmtree(path)
            else:
                path.rmdir()
        return True

    def read_stream(self, addr: Address, *,
                    chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes] | None:
        path = self._local_path(addr)
        if not path.is_file():
            return None
        return self._iter_file(path, addr, chunk_size)

    def _iter_file(self, path: Path, addr: Address, chunk_size: int) -> Iterator[bytes]:
        with backend_errors("read", addr), path.open("rb") as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    def write_stream(self, addr: Address, *,
                     chunk_size: int = DEFAULT_CHUNK_SIZE) -> BinaryIO | None:
        path = self._local_path(addr)
        with backend_errors("write", addr):
            if path.is_dir():
                raise BackendError(f"Is a directory: {addr.path}")
            mode = self._file_mode(path, None)
            self._ensure_dir(path.parent, None)
            return ReplaceOnCloseWriter(path, addr, mode, max(chunk_size, 2))

    def get_executable(self, addr: Address) -> bool | None:
        path = self._local_path(addr)
        if not path.is_file():
            return None
        return bool(path.stat().st_mode & 0o111)

    def set_executable(self, addr: Address, executable: bool) -> bool:
        path = self._local_path(addr)
        if not path.is_file():
            return False
        with backend_errors("chmod", addr):
            mode = path.stat().st_mode & 0o777
            if executable:
                mode |= (mode & 0o444) >> 2
            else:
                mode &= ~0o111
            path.chmod(mode)
        return True

    def execute(self, addr: Address, args: list[str] | None = None) -> ExecutionResult | None:
        path = self._local_path(addr)
        if not path.is_file():
            return None
        logger.debug("Executing %s with %s", path, args)
        with backend_errors("execute", addr):
            proc = subprocess.run([str(path), *(args or [])], cwd=self._root,
                                  capture_output=True, check=False)
        return ExecutionResult(proc.returncode, proc.stdout, proc.stderr)
