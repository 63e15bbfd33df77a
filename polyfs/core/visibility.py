from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Visibility(Enum):
    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class PortableUnixVisibility:
    """Maps visibility to unix permission bits and back."""

    file_public: int = 0o644
    file_private: int = 0o600
    directory_public: int = 0o755
    directory_private: int = 0o700

    def for_file(self, visibility: Visibility) -> int:
        return self.file_public if visibility is Visibility.PUBLIC else self.file_private

    def for_directory(self, visibility: Visibility) -> int:
        return self.directory_public if visibility is Visibility.PUBLIC else self.directory_private

    def from_file(self, mode: int) -> Visibility:
        return Visibility.PRIVATE if mode & 0o777 == self.file_private else Visibility.PUBLIC

    def from_directory(self, mode: int) -> Visibility:
        return Visibility.PRIVATE if mode & 0o777 == self.directory_private else Visibility.PUBLIC
