from __future__ import annotations

import threading
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import BinaryIO

from polyfs.afs.resource import Resource, ResourceType
from polyfs.core.address import Address, join, normalize
from polyfs.core.capability import Capability
from polyfs.core.errors import AlreadyExistsError, BackendError
from polyfs.core.primitives import now_utc
from polyfs.core.visibility import PortableUnixVisibility, Visibility
from polyfs.storage.base import (
    DEFAULT_CHUNK_SIZE,
    CollectionBackend,
    CommitOnCloseWriter,
    StorageBackend,
    StreamableBackend,
)


@dataclass
class _Meta:
    visibility: Visibility
    mode: int
    mtime: datetime = field(default_factory=now_utc)


@dataclass
class _File:
    content: bytes
    meta: _Meta


def _parent(path: str) -> str:
    return path.rsplit("/", 1)[0] or "/"


def _ancestors(path: str) -> list[str]:
    """Every directory above ``path``, root first."""
    parts = path.strip("/").split("/")[:-1]
    out = ["/"]
    for i in range(1, len(parts) + 1):
        out.append("/" + "/".join(parts[:i]))
    return out


def _under(prefix: str, path: str) -> bool:
    if prefix == "/":
        return path != "/"
    return path.startswith(prefix + "/")


class InMemoryBackend(StorageBackend, CollectionBackend, StreamableBackend):
    """Files and directories held in two dicts keyed by normalized path."""

    scheme = "memory"
    capabilities = frozenset({
        Capability.TRANSFORMABLE, Capability.COLLECTION, Capability.STREAMABLE,
    })

    def __init__(self, converter: PortableUnixVisibility | None = None) -> None:
        self._converter = converter or PortableUnixVisibility()
        self._lock = threading.RLock()
        self._files: dict[str, _File] = {}
        self._dirs: dict[str, _Meta] = {
            "/": _Meta(Visibility.PUBLIC, self._converter.for_directory(Visibility.PUBLIC)),
        }

    def _path(self, addr: Address) -> str:
        return normalize(addr).path

    def _file_meta(self, visibility: Visibility) -> _Meta:
        return _Meta(visibility, self._converter.for_file(visibility))

    def _ensure_parents(self, path: str, visibility: Visibility) -> None:
        for ancestor in _ancestors(path):
            if ancestor in self._files:
                raise BackendError(f"Not a directory: {ancestor}")
            if ancestor not in self._dirs:
                self._dirs[ancestor] = _Meta(visibility, self._converter.for_directory(visibility))

    def read(self, addr: Address) -> bytes | None:
        with self._lock:
            entry = self._files.get(self._path(addr))
            return entry.content if entry else None

    def write(self, addr: Address, contents: bytes, *,
              visibility: Visibility | None = None,
              directory_visibility: Visibility | None = None) -> bool:
        path = self._path(addr)
        with self._lock:
            if path in self._dirs:
                raise BackendError(f"Is a directory: {path}")
            self._ensure_parents(path, directory_visibility or Visibility.PRIVATE)
            self._files[path] = _File(bytes(contents), self._file_meta(visibility or Visibility.PRIVATE))
        return True

    def delete(self, addr: Address) -> bool:
        with self._lock:
            self._files.pop(self._path(addr), None)
        return True

    def _transfer(self, src: Address, dst: Address, remove: bool,
                  visibility: Visibility | None,
                  directory_visibility: Visibility | None) -> bool:
        src_path, dst_path = self._path(src), self._path(dst)
        with self._lock:
            entry = self._files.get(src_path)
            if entry is None:
                return False
            if dst_path in self._dirs:
                raise BackendError(f"Is a directory: {dst_path}")
            self._ensure_parents(dst_path, directory_visibility or Visibility.PRIVATE)
            meta = self._file_meta(visibility) if visibility else replace(entry.meta)
            if remove:
                del self._files[src_path]
            self._files[dst_path] = _File(entry.content, meta)
        return True

    def move(self, src: Address, dst: Address, *,
             visibility: Visibility | None = None,
             directory_visibility: Visibility | None = None) -> bool:
        return self._transfer(src, dst, True, visibility, directory_visibility)

    def copy(self, src: Address, dst: Address, *,
             visibility: Visibility | None = None,
             directory_visibility: Visibility | None = None) -> bool:
        return self._transfer(src, dst, False, visibility, directory_visibility)

    def exists(self, addr: Address) -> bool:
        path = self._path(addr)
        with self._lock:
            return path in self._files or path in self._dirs

    def get_visibility(self, addr: Address) -> Visibility | None:
        path = self._path(addr)
        with self._lock:
            if path in self._files:
                return self._files[path].meta.visibility
            if path in self._dirs:
                return self._dirs[path].visibility
        return None

    def set_visibility(self, addr: Address, visibility: Visibility) -> bool:
        path = self._path(addr)
        with self._lock:
            if path in self._files:
                self._files[path].meta = self._file_meta(visibility)
                return True
            if path in self._dirs:
                self._dirs[path] = _Meta(visibility, self._converter.for_directory(visibility))
                return True
        return False

    def list(self, addr: Address) -> list[Resource] | None:
        base = normalize(addr)
        with self._lock:
            if base.path not in self._dirs:
                return None
            resources = []
            for path, entry in self._files.items():
                if path != "/" and _parent(path) == base.path:
                    resources.append(self._resource(base, path, ResourceType.FILE, entry.meta,
                                                    len(entry.content)))
            for path, meta in self._dirs.items():
                if path != "/" and _parent(path) == base.path:
                    resources.append(self._resource(base, path, ResourceType.DIRECTORY, meta, 0))
        return sorted(resources, key=lambda r: r.address.path)

    def _resource(self, base: Address, path: str, rtype: ResourceType,
                  meta: _Meta, size: int) -> Resource:
        name = path.rsplit("/", 1)[-1]
        return Resource(
            address=replace(join(base, name), scheme=self.scheme),
            type=rtype,
            size=size,
            mtime=meta.mtime,
            metadata={"visibility": meta.visibility, "mode": meta.mode, "transformable": True},
        )

    def create_collection(self, addr: Address, *,
                          directory_visibility: Visibility | None = None) -> bool:
        path = self._path(addr)
        with self._lock:
            if path in self._files:
                raise AlreadyExistsError(f"File exists: {path}")
            self._ensure_parents(path, directory_visibility or Visibility.PRIVATE)
            if path not in self._dirs:
                visibility = directory_visibility or Visibility.PUBLIC
                self._dirs[path] = _Meta(visibility, self._converter.for_directory(visibility))
        return True

    def delete_collection(self, addr: Address, *, recursive: bool = False) -> bool:
        path = self._path(addr)
        with self._lock:
            if path not in self._dirs:
                return False
            files = [p for p in self._files if _under(path, p)]
            dirs = [p for p in self._dirs if _under(path, p)]
            if (files or dirs) and not recursive:
                raise AlreadyExistsError(f"Directory not empty: {path}")
            for p in files:
                del self._files[p]
            for p in dirs:
                del self._dirs[p]
            if path != "/":
                del self._dirs[path]
        return True

    def read_stream(self, addr: Address, *,
                    chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes] | None:
        content = self.read(addr)
        if content is None:
            return None
        return _chunks(content, chunk_size)

    def write_stream(self, addr: Address, *,
                     chunk_size: int = DEFAULT_CHUNK_SIZE) -> BinaryIO | None:
        path = self._path(addr)
        with self._lock:
            if path in self._dirs:
                raise BackendError(f"Is a directory: {path}")
        return CommitOnCloseWriter(lambda data: self.write(addr, data))


def _chunks(content: bytes, chunk_size: int) -> Iterator[bytes]:
    for offset in range(0, len(content), chunk_size):
        yield content[offset:offset + chunk_size]
