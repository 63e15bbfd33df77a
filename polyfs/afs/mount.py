from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from polyfs.core.address import Address, is_prefix, join_prefix, normalize, parse, strip_prefix

if TYPE_CHECKING:
    from polyfs.storage.base import StorageBackend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Mount:
    prefix: str
    backend: StorageBackend
    root: Address


@dataclass(frozen=True)
class Resolution:
    mount: Mount
    address: Address

    @property
    def backend(self) -> StorageBackend:
        return self.mount.backend


class MountTable:
    """Prefix to backend bindings, resolved by longest matching prefix.

    Writers are serialized by a lock and publish a fresh tuple sorted by
    prefix length; readers use whichever tuple is current without locking.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: tuple[Mount, ...] = ()

    def _publish(self, entries: dict[str, Mount]) -> None:
        ordered = sorted(entries.values(), key=lambda m: (-len(m.prefix), m.prefix))
        self._entries = tuple(ordered)

    def add(self, backend: StorageBackend, destination: str | Address,
            root: str | Address = "/") -> Mount:
        prefix = normalize(destination).path
        mount = Mount(prefix=prefix, backend=backend, root=normalize(root))
        with self._lock:
            entries = {m.prefix: m for m in self._entries}
            if prefix in entries:
                logger.debug("Replacing mount at %s", prefix)
            entries[prefix] = mount
            self._publish(entries)
        logger.debug("Mounted %s at %s", type(backend).__name__, prefix)
        return mount

    def remove(self, destination: str | Address) -> None:
        prefix = normalize(destination).path
        with self._lock:
            entries = {m.prefix: m for m in self._entries}
            if entries.pop(prefix, None) is None:
                return
            self._publish(entries)
        logger.debug("Unmounted %s", prefix)

    def resolve(self, address: str | Address) -> Resolution | None:
        address = normalize(parse(address))
        for mount in self._entries:
            if is_prefix(mount.prefix, address.path):
                relative = join_prefix(mount.root, strip_prefix(mount.prefix, address))
                logger.debug("Resolved %s to %s via %s", address.path, relative.path, mount.prefix)
                return Resolution(mount, relative)
        logger.debug("No mount for %s", address.path)
        return None

    def snapshot(self) -> tuple[Mount, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)
