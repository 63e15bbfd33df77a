from datetime import timezone

from polyfs.core.primitives import atomic_write, from_timestamp, now_utc


def test_atomic_write(tmp_path):
    p = tmp_path / "test.bin"
    atomic_write(p, b"hello")
    assert p.read_bytes() == b"hello"


def test_atomic_write_overwrites(tmp_path):
    p = tmp_path / "test.bin"
    atomic_write(p, b"first")
    atomic_write(p, b"second")
    assert p.read_bytes() == b"second"


def test_atomic_write_creates_parents(tmp_path):
    p = tmp_path / "a" / "b" / "c.bin"
    atomic_write(p, b"deep")
    assert p.read_bytes() == b"deep"


def test_atomic_write_leaves_no_temp_files(tmp_path):
    atomic_write(tmp_path / "x.bin", b"data")
    assert [p.name for p in tmp_path.iterdir()] == ["x.bin"]


def test_now_utc_is_aware():
    assert now_utc().tzinfo is timezone.utc


def test_from_timestamp():
    assert from_timestamp(0).year == 1970
    assert from_timestamp(0).tzinfo is timezone.utc
