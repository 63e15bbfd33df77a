import io
import json
import sys

import pytest

from polyfs.cli import build_parser, main


@pytest.fixture
def config_file(tmp_path):
    base = tmp_path / "polyfs"
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "base_dir": str(base),
        "mounts": [
            {"path": "/docs", "backend": "local", "options": {"root": "docs"}},
            {"path": "/archive", "backend": "sqlite"},
        ],
    }))
    return path


def _run(config_file, *argv):
    return main(["--config", str(config_file), *argv])


def _put(config_file, tmp_path, path, data):
    src = tmp_path / "payload.bin"
    src.write_bytes(data)
    return _run(config_file, "put", path, "--file", str(src))


def test_put_and_cat(config_file, tmp_path, capsys):
    assert _put(config_file, tmp_path, "/docs/a.txt", b"hello") == 0
    assert "Wrote 5 bytes to /docs/a.txt" in capsys.readouterr().out
    assert _run(config_file, "cat", "/docs/a.txt") == 0
    assert capsys.readouterr().out == "hello"
    assert (tmp_path / "polyfs" / "docs" / "a.txt").read_bytes() == b"hello"


def test_put_from_stdin(config_file, monkeypatch, capsys):
    monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(b"piped")))
    assert _run(config_file, "put", "/archive/p.txt") == 0
    capsys.readouterr()
    assert _run(config_file, "cat", "/archive/p.txt") == 0
    assert capsys.readouterr().out == "piped"


def test_cat_missing(config_file, capsys):
    assert _run(config_file, "cat", "/docs/missing.txt") == 1
    assert "Not found: /docs/missing.txt" in capsys.readouterr().err


def test_traversal_is_an_error(config_file, capsys):
    assert _run(config_file, "cat", "/docs/../../etc/passwd") == 2
    assert "Error:" in capsys.readouterr().err


def test_mv_across_mounts(config_file, tmp_path, capsys):
    _put(config_file, tmp_path, "/docs/a.txt", b"hello")
    assert _run(config_file, "mv", "/docs/a.txt", "/archive/a.txt") == 0
    capsys.readouterr()
    assert _run(config_file, "cat", "/archive/a.txt") == 0
    assert capsys.readouterr().out == "hello"
    assert _run(config_file, "exists", "/docs/a.txt") == 1
    assert capsys.readouterr().out.strip() == "missing"


def test_cp(config_file, tmp_path, capsys):
    _put(config_file, tmp_path, "/docs/a.txt", b"hello")
    assert _run(config_file, "cp", "/docs/a.txt", "/docs/b.txt") == 0
    assert _run(config_file, "exists", "/docs/a.txt") == 0
    assert _run(config_file, "exists", "/docs/b.txt") == 0


def test_mv_missing(config_file):
    assert _run(config_file, "mv", "/docs/none", "/archive/none") == 1


def test_rm(config_file, tmp_path):
    _put(config_file, tmp_path, "/archive/a.txt", b"x")
    assert _run(config_file, "rm", "/archive/a.txt") == 0
    assert _run(config_file, "exists", "/archive/a.txt") == 1


def test_rm_outside_mounts(config_file, capsys):
    assert _run(config_file, "rm", "/elsewhere/a.txt") == 1
    assert "Not found" in capsys.readouterr().err


def test_ls(config_file, tmp_path, capsys):
    _put(config_file, tmp_path, "/docs/a.txt", b"hello")
    _run(config_file, "mkdir", "/docs/sub")
    capsys.readouterr()
    assert _run(config_file, "ls", "/docs") == 0
    assert capsys.readouterr().out.split() == ["a.txt", "sub/"]


def test_ls_json(config_file, tmp_path, capsys):
    _put(config_file, tmp_path, "/docs/a.txt", b"hello")
    capsys.readouterr()
    assert _run(config_file, "ls", "/docs", "--json") == 0
    [entry] = json.loads(capsys.readouterr().out)
    assert entry["address"] == "/docs/a.txt"
    assert entry["type"] == "file"
    assert entry["size"] == 5
    assert entry["metadata"]["visibility"] == "public"


def test_rmdir(config_file, tmp_path, capsys):
    _put(config_file, tmp_path, "/archive/dir/a.txt", b"x")
    assert _run(config_file, "rmdir", "/archive/dir") == 2
    assert "not empty" in capsys.readouterr().err
    assert _run(config_file, "rmdir", "/archive/dir", "--recursive") == 0
    assert _run(config_file, "exists", "/archive/dir") == 1


def test_visibility(config_file, tmp_path, capsys):
    _put(config_file, tmp_path, "/archive/a.txt", b"x")
    capsys.readouterr()
    assert _run(config_file, "visibility", "/archive/a.txt") == 0
    assert capsys.readouterr().out.strip() == "private"
    assert _run(config_file, "visibility", "/archive/a.txt", "public") == 0
    assert _run(config_file, "visibility", "/archive/a.txt") == 0
    assert capsys.readouterr().out.strip() == "public"


def test_mounts(config_file, capsys):
    assert _run(config_file, "mounts") == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == ["/archive\tSqliteBackend\t/", "/docs\tLocalBackend\t/"]


def test_no_command_prints_help(config_file, capsys):
    assert _run(config_file) == 0
    assert "usage" in capsys.readouterr().out


def test_parser_rejects_bad_visibility():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["put", "/a", "--visibility", "secret"])


def test_put_missing_input_file(config_file, tmp_path, capsys):
    assert _run(config_file, "put", "/docs/a.txt", "--file", str(tmp_path / "nope.bin")) == 2
    assert "Error: cannot read input" in capsys.readouterr().err
    assert not (tmp_path / "polyfs" / "docs" / "a.txt").exists()


def test_config_loaded_once(config_file, monkeypatch):
    import polyfs.cli

    calls = []
    real_load = polyfs.cli.load_config

    def counting_load(path):
        calls.append(path)
        return real_load(path)

    monkeypatch.setattr(polyfs.cli, "load_config", counting_load)
    assert _run(config_file, "exists", "/docs/a.txt") == 1
    assert calls == [config_file]
