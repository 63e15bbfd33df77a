from __future__ import annotations


class PolyfsError(Exception):
    """Base class for every error raised by polyfs."""


class TraversalError(PolyfsError, ValueError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Path escapes root: {path}")
        self.path = path


class AlreadyExistsError(PolyfsError, FileExistsError):
    pass


class CapabilityError(PolyfsError, NotImplementedError):
    def __init__(self, backend: str, capability: str) -> None:
        super().__init__(f"{backend} does not support {capability}")
        self.backend = backend
        self.capability = capability


class BackendError(PolyfsError, OSError):
    pass
