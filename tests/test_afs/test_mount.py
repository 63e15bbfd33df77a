import threading

import pytest

from polyfs.afs.mount import MountTable
from polyfs.core.errors import TraversalError
from polyfs.storage.memory import InMemoryBackend


def test_resolve_longest_prefix():
    table = MountTable()
    outer, inner = InMemoryBackend(), InMemoryBackend()
    table.add(outer, "/a")
    table.add(inner, "/a/b")
    resolution = table.resolve("/a/b/c")
    assert resolution.backend is inner
    assert resolution.address.path == "/c"
    assert resolution.mount.prefix == "/a/b"


def test_resolve_ignores_registration_order():
    table = MountTable()
    outer, inner = InMemoryBackend(), InMemoryBackend()
    table.add(inner, "/a/b")
    table.add(outer, "/a")
    assert table.resolve("/a/b/c").backend is inner
    assert table.resolve("/a/x").backend is outer


def test_resolve_on_segment_boundary():
    table = MountTable()
    backend = InMemoryBackend()
    table.add(backend, "/a")
    assert table.resolve("/ab/c") is None
    resolution = table.resolve("/a/bc")
    assert resolution.address.path == "/bc"


def test_resolve_mount_point_itself():
    table = MountTable()
    table.add(InMemoryBackend(), "/a/b")
    assert table.resolve("/a/b").address.path == "/"


def test_root_mount_catches_everything():
    table = MountTable()
    root, special = InMemoryBackend(), InMemoryBackend()
    table.add(root, "/")
    table.add(special, "/special")
    assert table.resolve("/other/file").backend is root
    assert table.resolve("/other/file").address.path == "/other/file"
    assert table.resolve("/special/file").backend is special


def test_resolve_without_match():
    table = MountTable()
    table.add(InMemoryBackend(), "/a")
    assert table.resolve("/b") is None
    assert table.resolve("/") is None


def test_resolve_normalizes_input():
    table = MountTable()
    table.add(InMemoryBackend(), "/a")
    assert table.resolve("/x/../a//b/./c").address.path == "/b/c"


def test_resolve_rejects_traversal():
    table = MountTable()
    table.add(InMemoryBackend(), "/")
    with pytest.raises(TraversalError):
        table.resolve("/a/../../etc")


def test_resolve_keeps_address_fields():
    table = MountTable()
    table.add(InMemoryBackend(), "/a")
    resolution = table.resolve("s3://bucket/a/k?v=1")
    assert resolution.address.scheme == "s3"
    assert resolution.address.host == "bucket"
    assert resolution.address.query == {"v": "1"}
    assert resolution.address.path == "/k"


def test_mount_prefix_is_normalized():
    table = MountTable()
    mount = table.add(InMemoryBackend(), "/a/./b/")
    assert mount.prefix == "/a/b"


def test_remount_replaces_binding():
    table = MountTable()
    first, second = InMemoryBackend(), InMemoryBackend()
    table.add(first, "/a")
    table.add(second, "/a")
    assert len(table) == 1
    assert table.resolve("/a/x").backend is second


def test_remove():
    table = MountTable()
    table.add(InMemoryBackend(), "/a")
    table.remove("/a")
    assert len(table) == 0
    assert table.resolve("/a/x") is None


def test_remove_missing_is_noop():
    table = MountTable()
    table.add(InMemoryBackend(), "/a")
    table.remove("/nope")
    assert len(table) == 1


def test_mount_root_anchor():
    table = MountTable()
    table.add(InMemoryBackend(), "/data", root="/tenant/42")
    assert table.resolve("/data/x/y").address.path == "/tenant/42/x/y"
    assert table.resolve("/data").address.path == "/tenant/42"


def test_snapshot_is_ordered_by_prefix_length():
    table = MountTable()
    for prefix in ("/", "/a/b/c", "/a"):
        table.add(InMemoryBackend(), prefix)
    assert [m.prefix for m in table.snapshot()] == ["/a/b/c", "/a", "/"]


def test_resolve_during_concurrent_mounts():
    table = MountTable()
    outer, inner = InMemoryBackend(), InMemoryBackend()
    table.add(outer, "/a")
    stop = threading.Event()
    errors = []

    def churn():
        while not stop.is_set():
            table.add(inner, "/a/b")
            table.remove("/a/b")

    def lookup():
        for _ in range(2000):
            resolution = table.resolve("/a/b/c")
            if resolution.backend is outer:
                ok = resolution.address.path == "/b/c"
            else:
                ok = resolution.backend is inner and resolution.address.path == "/c"
            if not ok:
                errors.append(resolution)

    writer = threading.Thread(target=churn)
    readers = [threading.Thread(target=lookup) for _ in range(4)]
    writer.start()
    for t in readers:
        t.start()
    for t in readers:
        t.join()
    stop.set()
    writer.join()
    assert errors == []
