from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import replace
from typing import BinaryIO

from polyfs.afs.mount import Mount, MountTable, Resolution
from polyfs.afs.resource import Resource
from polyfs.core.address import Address, join_prefix, normalize, parse, strip_prefix
from polyfs.core.capability import Capability, require
from polyfs.core.visibility import Visibility
from polyfs.storage.base import (
    DEFAULT_CHUNK_SIZE,
    CollectionBackend,
    ExecutableBackend,
    ExecutionResult,
    MountableBackend,
    StorageBackend,
    StreamableBackend,
)

logger = logging.getLogger(__name__)


class CompositeBackend(StorageBackend, CollectionBackend, StreamableBackend,
                       ExecutableBackend, MountableBackend):
    """Hierarchical namespace of mounted backends. Resolves paths via longest-prefix match.

    Unresolvable addresses behave as missing resources: reads return None and
    mutations return False. Optional operations are checked against the
    capabilities of the backend the address resolves to.
    """

    scheme = "composite"
    capabilities = frozenset(Capability)

    def __init__(self) -> None:
        self._table = MountTable()

    def mount(self, backend: StorageBackend, destination: str | Address, *,
              root: str | Address = "/") -> None:
        self._table.add(backend, destination, root)

    def unmount(self, destination: str | Address) -> None:
        self._table.remove(destination)

    def resolve(self, address: str | Address) -> Resolution | None:
        return self._table.resolve(address)

    @property
    def mounts(self) -> dict[str, tuple[StorageBackend, Address]]:
        return {m.prefix: (m.backend, m.root) for m in self._table.snapshot()}

    def _resolve_for(self, address: Address, capability: Capability) -> Resolution | None:
        resolution = self._table.resolve(address)
        if resolution is not None:
            require(resolution.backend, capability)
        return resolution

    def _to_logical(self, request: Address, mount: Mount, resource: Resource) -> Resource:
        inner = strip_prefix(mount.root, resource.address)
        path = join_prefix(mount.prefix, inner).path
        return replace(resource, address=replace(request, path=path))

    def read(self, addr: Address) -> bytes | None:
        resolution = self.resolve(addr)
        if resolution is None:
            return None
        return resolution.backend.read(resolution.address)

    def write(self, addr: Address, contents: bytes, *,
              visibility: Visibility | None = None,
              directory_visibility: Visibility | None = None) -> bool:
        resolution = self.resolve(addr)
        if resolution is None:
            return False
        return resolution.backend.write(resolution.address, contents, visibility=visibility,
                                        directory_visibility=directory_visibility)

    def delete(self, addr: Address) -> bool:
        resolution = self.resolve(addr)
        if resolution is None:
            return False
        return resolution.backend.delete(resolution.address)

    def move(self, src: Address, dst: Address, *,
             visibility: Visibility | None = None,
             directory_visibility: Visibility | None = None) -> bool:
        source, target = self.resolve(src), self.resolve(dst)
        if source is None or target is None:
            return False
        if source.backend is target.backend:
            return source.backend.move(source.address, target.address, visibility=visibility,
                                       directory_visibility=directory_visibility)

        logger.info("Moving %s across backends to %s", source.address.path, target.address.path)
        contents = source.backend.read(source.address)
        if contents is None:
            return False
        if not target.backend.write(target.address, contents, visibility=visibility,
                                    directory_visibility=directory_visibility):
            return False
        try:
            source.backend.delete(source.address)
        except Exception:
            logger.warning("Moved %s to %s but could not delete the source; both copies remain",
                           source.address.path, target.address.path)
            raise
        return True

    def copy(self, src: Address, dst: Address, *,
             visibility: Visibility | None = None,
             directory_visibility: Visibility | None = None) -> bool:
        source, target = self.resolve(src), self.resolve(dst)
        if source is None or target is None:
            return False
        if source.backend is target.backend:
            return source.backend.copy(source.address, target.address, visibility=visibility,
                                       directory_visibility=directory_visibility)

        logger.info("Copying %s across backends to %s", source.address.path, target.address.path)
        contents = source.backend.read(source.address)
        if contents is None:
            return False
        return target.backend.write(target.address, contents, visibility=visibility,
                                    directory_visibility=directory_visibility)

    def exists(self, addr: Address) -> bool:
        resolution = self.resolve(addr)
        if resolution is None:
            return False
        return resolution.backend.exists(resolution.address)

    def get_visibility(self, addr: Address) -> Visibility | None:
        resolution = self.resolve(addr)
        if resolution is None:
            return None
        return resolution.backend.get_visibility(resolution.address)

    def set_visibility(self, addr: Address, visibility: Visibility) -> bool:
        resolution = self.resolve(addr)
        if resolution is None:
            return False
        return resolution.backend.set_visibility(resolution.address, visibility)

    def list(self, addr: Address) -> list[Resource] | None:
        request = normalize(parse(addr))
        resolution = self._resolve_for(request, Capability.COLLECTION)
        if resolution is None:
            return None
        resources = resolution.backend.list(resolution.address)
        if resources is None:
            return None
        return [self._to_logical(request, resolution.mount, r) for r in resources]

    def create_collection(self, addr: Address, *,
                          directory_visibility: Visibility | None = None) -> bool:
        resolution = self._resolve_for(addr, Capability.COLLECTION)
        if resolution is None:
            return False
        return resolution.backend.create_collection(resolution.address,
                                                    directory_visibility=directory_visibility)

    def delete_collection(self, addr: Address, *, recursive: bool = False) -> bool:
        resolution = self._resolve_for(addr, Capability.COLLECTION)
        if resolution is None:
            return False
        return resolution.backend.delete_collection(resolution.address, recursive=recursive)

    def read_stream(self, addr: Address, *,
                    chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes] | None:
        resolution = self._resolve_for(addr, Capability.STREAMABLE)
        if resolution is None:
            return None
        return resolution.backend.read_stream(resolution.address, chunk_size=chunk_size)

    def write_stream(self, addr: Address, *,
                     chunk_size: int = DEFAULT_CHUNK_SIZE) -> BinaryIO | None:
        resolution = self._resolve_for(addr, Capability.STREAMABLE)
        if resolution is None:
            return None
        return resolution.backend.write_stream(resolution.address, chunk_size=chunk_size)

    def get_executable(self, addr: Address) -> bool | None:
        resolution = self._resolve_for(addr, Capability.EXECUTABLE)
        if resolution is None:
            return None
        return resolution.backend.get_executable(resolution.address)

    def set_executable(self, addr: Address, executable: bool) -> bool:
        resolution = self._resolve_for(addr, Capability.EXECUTABLE)
        if resolution is None:
            return False
        return resolution.backend.set_executable(resolution.address, executable)

    def execute(self, addr: Address, args: list[str] | None = None) -> ExecutionResult | None:
        resolution = self._resolve_for(addr, Capability.EXECUTABLE)
        if resolution is None:
            return None
        return resolution.backend.execute(resolution.address, args)
