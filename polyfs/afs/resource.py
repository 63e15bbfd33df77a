from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from polyfs.core.address import Address, parse

RESOURCE_CAPABILITIES = ("executable", "watchable", "versioned", "transformable")


class ResourceType(Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class Resource:
    address: Address
    type: ResourceType
    size: int | None = None
    mtime: datetime | None = None
    mime_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, hash=False)

    @property
    def is_directory(self) -> bool:
        return self.type is ResourceType.DIRECTORY

    def has_capability(self, capability: str) -> bool:
        _check_capability(capability)
        return bool(self.metadata.get(capability, False))

    def with_capability(self, capability: str) -> Resource:
        _check_capability(capability)
        return replace(self, metadata={**self.metadata, capability: True})


def _check_capability(capability: str) -> None:
    if capability not in RESOURCE_CAPABILITIES:
        raise ValueError(f"Unknown resource capability: {capability}")


def resource_to_dict(resource: Resource) -> dict[str, Any]:
    """Serialize a Resource to a JSON-friendly dict."""
    metadata = {
        k: v.value if isinstance(v, Enum) else v
        for k, v in resource.metadata.items()
    }
    return {
        "address": str(resource.address),
        "type": resource.type.value,
        "size": resource.size,
        "mtime": resource.mtime.isoformat() if resource.mtime else None,
        "mime_type": resource.mime_type,
        "metadata": metadata,
    }


def resource_from_dict(data: dict[str, Any]) -> Resource:
    mtime = data.get("mtime")
    return Resource(
        address=parse(data["address"]),
        type=ResourceType(data["type"]),
        size=data.get("size"),
        mtime=datetime.fromisoformat(mtime) if mtime else None,
        mime_type=data.get("mime_type"),
        metadata=data.get("metadata", {}),
    )
