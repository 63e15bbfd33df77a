from __future__ import annotations

import importlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from polyfs.core.address import DEFAULT_SCHEME
from polyfs.storage.base import DEFAULT_CHUNK_SIZE

DEFAULT_BASE_DIR = Path.home() / ".polyfs"


@dataclass
class MountConfig:
    path: str
    backend: str = "local"
    root: str = "/"                # anchor inside the backend
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class Config:
    base_dir: Path = field(default_factory=lambda: DEFAULT_BASE_DIR)
    default_scheme: str = DEFAULT_SCHEME
    chunk_size: int = DEFAULT_CHUNK_SIZE
    log_level: str = "WARNING"
    mounts: list[MountConfig] = field(default_factory=list)


def load_config(config_path: Path | None = None) -> Config:
    if config_path is None:
        config_path = DEFAULT_BASE_DIR / "config.json"
    if not config_path.exists():
        return Config()
    data = json.loads(config_path.read_text())
    kwargs: dict = {}
    if "base_dir" in data:
        kwargs["base_dir"] = Path(data["base_dir"]).expanduser()
    for key in ("default_scheme", "chunk_size", "log_level"):
        if key in data:
            kwargs[key] = data[key]
    if "mounts" in data:
        kwargs["mounts"] = [
            MountConfig(
                path=m["path"],
                backend=m.get("backend", "local"),
                root=m.get("root", "/"),
                options=m.get("options", {}),
            )
            for m in data["mounts"]
        ]
    return Config(**kwargs)


_BACKEND_REGISTRY: dict[str, str] = {
    "local": "polyfs.storage.local:LocalBackend",
    "memory": "polyfs.storage.memory:InMemoryBackend",
    "sqlite": "polyfs.storage.sqlite:SqliteBackend",
    "composite": "polyfs.afs.namespace:CompositeBackend",
}

# Path options that default to a location under base_dir.
_PATH_OPTIONS: dict[str, tuple[str, str]] = {
    "local": ("root", "store"),
    "sqlite": ("db_path", "objects.db"),
}


def register_backend(name: str, import_path: str) -> None:
    _BACKEND_REGISTRY[name] = import_path


def get_backend_class(name: str) -> type:
    if name not in _BACKEND_REGISTRY:
        raise KeyError(f"Unknown backend: {name}. Available: {list(_BACKEND_REGISTRY.keys())}")
    module_path, class_name = _BACKEND_REGISTRY[name].rsplit(":", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)


def backend_options(name: str, options: dict[str, Any], base_dir: Path) -> dict[str, Any]:
    """Constructor kwargs for a backend, with relative paths anchored at ``base_dir``."""
    out = dict(options)
    if name in _PATH_OPTIONS:
        key, default = _PATH_OPTIONS[name]
        value = Path(out.get(key, default)).expanduser()
        out[key] = value if value.is_absolute() else base_dir / value
    return out
