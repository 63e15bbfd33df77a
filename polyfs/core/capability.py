from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from polyfs.core.errors import CapabilityError

if TYPE_CHECKING:
    from polyfs.storage.base import StorageBackend


class Capability(Enum):
    TRANSFORMABLE = "transformable"
    COLLECTION = "collection"
    STREAMABLE = "streamable"
    EXECUTABLE = "executable"
    MOUNTABLE = "mountable"


def supports(backend: StorageBackend, capability: Capability) -> bool:
    return capability in backend.capabilities


def require(backend: StorageBackend, capability: Capability) -> None:
    """Raise CapabilityError unless ``backend`` advertises ``capability``."""
    if not supports(backend, capability):
        raise CapabilityError(type(backend).__name__, capability.value)
