"""Object-store backend kept in a single SQLite table.

Keys are flat, as in an S3 bucket: ``docs/a.txt`` is one object, and
``docs`` only exists as a directory because some key starts with ``docs/``.
``create_collection`` writes an empty marker object (``docs/``) so empty
directories survive and can carry their own visibility.
"""
from __future__ import annotations

import sqlite3
import threading
import time
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from polyfs.afs.resource import Resource, ResourceType
from polyfs.core.address import Address, join, normalize
from polyfs.core.capability import Capability
from polyfs.core.errors import AlreadyExistsError, BackendError
from polyfs.core.primitives import from_timestamp
from polyfs.core.visibility import Visibility
from polyfs.storage.base import (
    DEFAULT_CHUNK_SIZE,
    CollectionBackend,
    CommitOnCloseWriter,
    StorageBackend,
    StreamableBackend,
    backend_errors,
)

_PREFIX_CLAUSE = "substr(key, 1, ?) = ?"


class SqliteBackend(StorageBackend, CollectionBackend, StreamableBackend):
    scheme = "sqlite"
    capabilities = frozenset({
        Capability.TRANSFORMABLE, Capability.COLLECTION, Capability.STREAMABLE,
    })

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = db_path
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.execute(
            "CREATE TABLE IF NOT EXISTS objects ("
            "  key TEXT PRIMARY KEY,"
            "  data BLOB NOT NULL,"
            "  visibility TEXT NOT NULL,"
            "  mtime REAL NOT NULL"
            ")"
        )
        self._conn.commit()

    def _key(self, addr: Address) -> str:
        return normalize(addr).path.lstrip("/")

    def _has_prefix(self, prefix: str) -> bool:
        row = self._conn.execute(
            f"SELECT 1 FROM objects WHERE {_PREFIX_CLAUSE} LIMIT 1",
            (len(prefix), prefix),
        ).fetchone()
        return row is not None

    def _is_object(self, key: str) -> bool:
        row = self._conn.execute("SELECT 1 FROM objects WHERE key = ?", (key,)).fetchone()
        return row is not None

    def _is_dir(self, key: str) -> bool:
        return key == "" or self._has_prefix(key + "/")

    def _put(self, key: str, data: bytes, visibility: Visibility) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO objects (key, data, visibility, mtime) VALUES (?, ?, ?, ?)",
            (key, data, visibility.value, time.time()),
        )

    def _mark_parents(self, key: str, visibility: Visibility) -> None:
        parts = key.split("/")[:-1]
        for i in range(1, len(parts) + 1):
            self._conn.execute(
                "INSERT OR IGNORE INTO objects (key, data, visibility, mtime) VALUES (?, ?, ?, ?)",
                ("/".join(parts[:i]) + "/", b"", visibility.value, time.time()),
            )

    def read(self, addr: Address) -> bytes | None:
        key = self._key(addr)
        with self._lock, backend_errors("read", addr):
            row = self._conn.execute("SELECT data FROM objects WHERE key = ?", (key,)).fetchone()
        return bytes(row[0]) if row and key else None

    def write(self, addr: Address, contents: bytes, *,
              visibility: Visibility | None = None,
              directory_visibility: Visibility | None = None) -> bool:
        key = self._key(addr)
        with self._lock, backend_errors("write", addr):
            if self._is_dir(key):
                raise BackendError(f"Is a directory: {addr.path}")
            with self._conn:
                if directory_visibility is not None:
                    self._mark_parents(key, directory_visibility)
                self._put(key, bytes(contents), visibility or Visibility.PRIVATE)
        return True

    def delete(self, addr: Address) -> bool:
        key = self._key(addr)
        with self._lock, backend_errors("delete", addr):
            self._conn.execute("DELETE FROM objects WHERE key = ?", (key,))
            self._conn.commit()
        return True

    def move(self, src: Address, dst: Address, *,
             visibility: Visibility | None = None,
             directory_visibility: Visibility | None = None) -> bool:
        return self._transfer(src, dst, True, visibility, directory_visibility)

    def copy(self, src: Address, dst: Address, *,
             visibility: Visibility | None = None,
             directory_visibility: Visibility | None = None) -> bool:
        return self._transfer(src, dst, False, visibility, directory_visibility)

    def _transfer(self, src: Address, dst: Address, remove: bool,
                  visibility: Visibility | None,
                  directory_visibility: Visibility | None) -> bool:
        src_key, dst_key = self._key(src), self._key(dst)
        with self._lock, backend_errors("move" if remove else "copy", src):
            row = self._conn.execute(
                "SELECT data, visibility FROM objects WHERE key = ?", (src_key,)
            ).fetchone()
            if row is None or not src_key:
                return False
            if self._is_dir(dst_key):
                raise BackendError(f"Is a directory: {dst.path}")
            with self._conn:
                if directory_visibility is not None:
                    self._mark_parents(dst_key, directory_visibility)
                self._put(dst_key, row[0], visibility or Visibility(row[1]))
                if remove and src_key != dst_key:
                    self._conn.execute("DELETE FROM objects WHERE key = ?", (src_key,))
        return True

    def exists(self, addr: Address) -> bool:
        key = self._key(addr)
        with self._lock, backend_errors("stat", addr):
            return self._is_dir(key) or self._is_object(key)

    def get_visibility(self, addr: Address) -> Visibility | None:
        key = self._key(addr)
        with self._lock, backend_errors("stat", addr):
            for candidate in (key, key + "/"):
                row = self._conn.execute(
                    "SELECT visibility FROM objects WHERE key = ?", (candidate,)
                ).fetchone()
                if row is not None and candidate:
                    return Visibility(row[0])
            if self._is_dir(key):
                return Visibility.PUBLIC
        return None

    def set_visibility(self, addr: Address, visibility: Visibility) -> bool:
        key = self._key(addr)
        with self._lock, backend_errors("chmod", addr):
            if key and self._is_object(key):
                target = key
            elif key and self._is_dir(key):
                target = key + "/"
            else:
                return False
            with self._conn:
                self._conn.execute(
                    "INSERT OR IGNORE INTO objects (key, data, visibility, mtime) VALUES (?, ?, ?, ?)",
                    (target, b"", visibility.value, time.time()),
                )
                self._conn.execute(
                    "UPDATE objects SET visibility = ? WHERE key = ?", (visibility.value, target)
                )
        return True

    def list(self, addr: Address) -> list[Resource] | None:
        base = normalize(addr)
        key = self._key(base)
        prefix = key + "/" if key else ""
        with self._lock, backend_errors("list", addr):
            if not self._is_dir(key):
                return None
            rows = self._conn.execute(
                f"SELECT key, length(data), visibility, mtime FROM objects "
                f"WHERE {_PREFIX_CLAUSE} ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()

        files: dict[str, Resource] = {}
        dirs: dict[str, Resource] = {}
        for obj_key, size, visibility, mtime in rows:
            rest = obj_key[len(prefix):]
            if not rest:
                continue
            name, slash, tail = rest.partition("/")
            if not slash:
                files[name] = self._resource(base, name, ResourceType.FILE, size,
                                             Visibility(visibility), mtime)
            elif not tail:
                dirs[name] = self._resource(base, name, ResourceType.DIRECTORY, 0,
                                            Visibility(visibility), mtime)
            elif name not in dirs:
                dirs[name] = self._resource(base, name, ResourceType.DIRECTORY, 0,
                                            Visibility.PUBLIC, mtime)
        return sorted([*files.values(), *dirs.values()], key=lambda r: r.address.path)

    def _resource(self, base: Address, name: str, rtype: ResourceType, size: int,
                  visibility: Visibility, mtime: float) -> Resource:
        return Resource(
            address=join(base, name),
            type=rtype,
            size=size,
            mtime=from_timestamp(mtime),
            metadata={"visibility": visibility, "transformable": True},
        )

    def create_collection(self, addr: Address, *,
                          directory_visibility: Visibility | None = None) -> bool:
        key = self._key(addr)
        if not key:
            return True
        with self._lock, backend_errors("mkdir", addr):
            if self._is_object(key):
                raise AlreadyExistsError(f"File exists: {addr.path}")
            self._conn.execute(
                "INSERT OR IGNORE INTO objects (key, data, visibility, mtime) VALUES (?, ?, ?, ?)",
                (key + "/", b"", (directory_visibility or Visibility.PUBLIC).value, time.time()),
            )
            self._conn.commit()
        return True

    def delete_collection(self, addr: Address, *, recursive: bool = False) -> bool:
        key = self._key(addr)
        prefix = key + "/" if key else ""
        with self._lock, backend_errors("rmdir", addr):
            if not self._is_dir(key):
                return False
            children = self._conn.execute(
                f"SELECT 1 FROM objects WHERE {_PREFIX_CLAUSE} AND key != ? LIMIT 1",
                (len(prefix), prefix, prefix),
            ).fetchone()
            if children is not None and not recursive:
                raise AlreadyExistsError(f"Directory not empty: {addr.path}")
            self._conn.execute(
                f"DELETE FROM objects WHERE {_PREFIX_CLAUSE}", (len(prefix), prefix)
            )
            self._conn.commit()
        return True

    def read_stream(self, addr: Address, *,
                    chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes] | None:
        key = self._key(addr)
        with self._lock, backend_errors("read", addr):
            row = self._conn.execute(
                "SELECT length(data) FROM objects WHERE key = ?", (key,)
            ).fetchone()
        if row is None or not key:
            return None
        return self._iter_object(key, addr, row[0], chunk_size)

    def _iter_object(self, key: str, addr: Address, size: int,
                     chunk_size: int) -> Iterator[bytes]:
        offset = 0
        while offset < size:
            with self._lock, backend_errors("read", addr):
                row = self._conn.execute(
                    "SELECT substr(data, ?, ?) FROM objects WHERE key = ?",
                    (offset + 1, chunk_size, key),
                ).fetchone()
            if row is None or not row[0]:
                break
            chunk = bytes(row[0])
            offset += len(chunk)
            yield chunk

    def write_stream(self, addr: Address, *,
                     chunk_size: int = DEFAULT_CHUNK_SIZE) -> BinaryIO | None:
        return CommitOnCloseWriter(lambda data: self.write(addr, data))

    def close(self) -> None:
        self._conn.close()
