"""Filesystem façade.

Every call parses its address with the configured default scheme and
normalizes it, so a path that escapes the root fails with TraversalError
before any backend is touched. Optional operation groups are gated by the
backend's capabilities.
"""
from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import BinaryIO

from polyfs.afs.namespace import CompositeBackend
from polyfs.afs.resource import Resource
from polyfs.core.address import DEFAULT_SCHEME, Address, normalize, parse, to_string
from polyfs.core.capability import Capability, require, supports
from polyfs.core.config import Config, backend_options, get_backend_class
from polyfs.core.visibility import Visibility
from polyfs.storage.base import DEFAULT_CHUNK_SIZE, ExecutionResult, StorageBackend

logger = logging.getLogger(__name__)

AddressLike = str | Address


def _visibility(value: Visibility | str | None) -> Visibility | None:
    if value is None or isinstance(value, Visibility):
        return value
    return Visibility(value)


class Filesystem:
    def __init__(self, backend: StorageBackend, default_scheme: str = DEFAULT_SCHEME,
                 chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._backend = backend
        self._default_scheme = default_scheme
        self._chunk_size = chunk_size

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    @property
    def default_scheme(self) -> str:
        return self._default_scheme

    def supports(self, capability: Capability) -> bool:
        return supports(self._backend, capability)

    def address(self, raw: AddressLike) -> Address:
        return normalize(parse(raw, self._default_scheme))

    def _gate(self, raw: AddressLike, capability: Capability) -> Address:
        addr = self.address(raw)
        require(self._backend, capability)
        return addr

    def format(self, addr: Address) -> str:
        return to_string(addr, self._default_scheme)

    def read(self, path: AddressLike) -> bytes | None:
        return self._backend.read(self._gate(path, Capability.TRANSFORMABLE))

    def write(self, path: AddressLike, contents: bytes | str, *,
              visibility: Visibility | str | None = None,
              directory_visibility: Visibility | str | None = None) -> bool:
        addr = self._gate(path, Capability.TRANSFORMABLE)
        if isinstance(contents, str):
            contents = contents.encode()
        return self._backend.write(addr, contents, visibility=_visibility(visibility),
                                   directory_visibility=_visibility(directory_visibility))

    def delete(self, path: AddressLike) -> bool:
        return self._backend.delete(self._gate(path, Capability.TRANSFORMABLE))

    def move(self, source: AddressLike, destination: AddressLike, *,
             visibility: Visibility | str | None = None,
             directory_visibility: Visibility | str | None = None) -> bool:
        src = self._gate(source, Capability.TRANSFORMABLE)
        dst = self.address(destination)
        return self._backend.move(src, dst, visibility=_visibility(visibility),
                                  directory_visibility=_visibility(directory_visibility))

    def copy(self, source: AddressLike, destination: AddressLike, *,
             visibility: Visibility | str | None = None,
             directory_visibility: Visibility | str | None = None) -> bool:
        src = self._gate(source, Capability.TRANSFORMABLE)
        dst = self.address(destination)
        return self._backend.copy(src, dst, visibility=_visibility(visibility),
                                  directory_visibility=_visibility(directory_visibility))

    def exists(self, path: AddressLike) -> bool:
        return self._backend.exists(self._gate(path, Capability.TRANSFORMABLE))

    def get_visibility(self, path: AddressLike) -> Visibility | None:
        return self._backend.get_visibility(self._gate(path, Capability.TRANSFORMABLE))

    def set_visibility(self, path: AddressLike, visibility: Visibility | str) -> bool:
        addr = self._gate(path, Capability.TRANSFORMABLE)
        return self._backend.set_visibility(addr, _visibility(visibility))

    def list(self, path: AddressLike = "/") -> list[Resource] | None:
        return self._backend.list(self._gate(path, Capability.COLLECTION))

    def create_collection(self, path: AddressLike, *,
                          directory_visibility: Visibility | str | None = None) -> bool:
        addr = self._gate(path, Capability.COLLECTION)
        return self._backend.create_collection(
            addr, directory_visibility=_visibility(directory_visibility))

    def delete_collection(self, path: AddressLike, *, recursive: bool = False) -> bool:
        addr = self._gate(path, Capability.COLLECTION)
        return self._backend.delete_collection(addr, recursive=recursive)

    def read_stream(self, path: AddressLike, *,
                    chunk_size: int | None = None) -> Iterator[bytes] | None:
        addr = self._gate(path, Capability.STREAMABLE)
        return self._backend.read_stream(addr, chunk_size=chunk_size or self._chunk_size)

    def write_stream(self, path: AddressLike, *,
                     chunk_size: int | None = None) -> BinaryIO | None:
        addr = self._gate(path, Capability.STREAMABLE)
        return self._backend.write_stream(addr, chunk_size=chunk_size or self._chunk_size)

    def get_executable(self, path: AddressLike) -> bool | None:
        return self._backend.get_executable(self._gate(path, Capability.EXECUTABLE))

    def set_executable(self, path: AddressLike, executable: bool) -> bool:
        return self._backend.set_executable(self._gate(path, Capability.EXECUTABLE), executable)

    def execute(self, path: AddressLike, args: list[str] | None = None) -> ExecutionResult | None:
        return self._backend.execute(self._gate(path, Capability.EXECUTABLE), args)

    def mount(self, backend: StorageBackend, destination: AddressLike, *,
              root: AddressLike = "/") -> None:
        require(self._backend, Capability.MOUNTABLE)
        self._backend.mount(backend, self.address(destination), root=self.address(root))

    def unmount(self, destination: AddressLike) -> None:
        require(self._backend, Capability.MOUNTABLE)
        self._backend.unmount(self.address(destination))


def build_filesystem(config: Config) -> Filesystem:
    """Composite filesystem with every configured mount.

    With no mounts configured, a LocalBackend under ``base_dir/store`` is
    mounted at ``/``.
    """
    composite = CompositeBackend()
    if not config.mounts:
        composite.mount(get_backend_class("local")(**backend_options("local", {}, config.base_dir)), "/")
    for mount in config.mounts:
        cls = get_backend_class(mount.backend)
        backend = cls(**backend_options(mount.backend, mount.options, config.base_dir))
        composite.mount(backend, mount.path, root=mount.root)
        logger.debug("Configured %s mount at %s", mount.backend, mount.path)
    return Filesystem(composite, default_scheme=config.default_scheme,
                      chunk_size=config.chunk_size)
