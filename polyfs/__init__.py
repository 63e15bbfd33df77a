from polyfs.afs.namespace import CompositeBackend
from polyfs.afs.resource import Resource, ResourceType
from polyfs.core.address import Address, normalize, parse
from polyfs.core.capability import Capability
from polyfs.core.errors import (
    AlreadyExistsError,
    BackendError,
    CapabilityError,
    PolyfsError,
    TraversalError,
)
from polyfs.core.visibility import Visibility
from polyfs.filesystem import Filesystem, build_filesystem
from polyfs.storage.local import LocalBackend
from polyfs.storage.memory import InMemoryBackend
from polyfs.storage.sqlite import SqliteBackend

__version__ = "0.1.0"

__all__ = [
    "Address",
    "AlreadyExistsError",
    "BackendError",
    "Capability",
    "CapabilityError",
    "CompositeBackend",
    "Filesystem",
    "InMemoryBackend",
    "LocalBackend",
    "PolyfsError",
    "Resource",
    "ResourceType",
    "SqliteBackend",
    "TraversalError",
    "Visibility",
    "build_filesystem",
    "normalize",
    "parse",
]
