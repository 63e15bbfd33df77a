from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from polyfs.afs.resource import resource_to_dict
from polyfs.core.config import Config, load_config
from polyfs.core.errors import PolyfsError
from polyfs.filesystem import Filesystem, build_filesystem

logger = logging.getLogger("polyfs")


def _load(args: argparse.Namespace) -> Config:
    config_path = getattr(args, "config", None)
    return load_config(Path(config_path) if config_path else None)


def _not_found(path: str) -> int:
    print(f"Not found: {path}", file=sys.stderr)
    return 1


def cmd_cat(args: argparse.Namespace, fs: Filesystem) -> int:
    data = fs.read(args.path)
    if data is None:
        return _not_found(args.path)
    sys.stdout.write(data.decode(errors="replace"))
    return 0


def cmd_put(args: argparse.Namespace, fs: Filesystem) -> int:
    try:
        data = Path(args.file).read_bytes() if args.file else sys.stdin.buffer.read()
    except OSError as exc:
        print(f"Error: cannot read input: {exc}", file=sys.stderr)
        return 2
    if not fs.write(args.path, data, visibility=args.visibility,
                    directory_visibility=args.directory_visibility):
        return _not_found(args.path)
    print(f"Wrote {len(data)} bytes to {args.path}")
    return 0


def cmd_rm(args: argparse.Namespace, fs: Filesystem) -> int:
    if not fs.delete(args.path):
        return _not_found(args.path)
    return 0


def cmd_mv(args: argparse.Namespace, fs: Filesystem) -> int:
    if not fs.move(args.source, args.destination):
        return _not_found(args.source)
    print(f"Moved {args.source} -> {args.destination}")
    return 0


def cmd_cp(args: argparse.Namespace, fs: Filesystem) -> int:
    if not fs.copy(args.source, args.destination):
        return _not_found(args.source)
    print(f"Copied {args.source} -> {args.destination}")
    return 0


def cmd_ls(args: argparse.Namespace, fs: Filesystem) -> int:
    resources = fs.list(args.path)
    if resources is None:
        return _not_found(args.path)
    if args.json:
        print(json.dumps([resource_to_dict(r) for r in resources], indent=2))
        return 0
    for r in resources:
        suffix = "/" if r.is_directory else ""
        print(f"{r.address.name}{suffix}")
    return 0


def cmd_mkdir(args: argparse.Namespace, fs: Filesystem) -> int:
    if not fs.create_collection(args.path, directory_visibility=args.visibility):
        return _not_found(args.path)
    return 0


def cmd_rmdir(args: argparse.Namespace, fs: Filesystem) -> int:
    if not fs.delete_collection(args.path, recursive=args.recursive):
        return _not_found(args.path)
    return 0


def cmd_exists(args: argparse.Namespace, fs: Filesystem) -> int:
    if fs.exists(args.path):
        print("exists")
        return 0
    print("missing")
    return 1


def cmd_visibility(args: argparse.Namespace, fs: Filesystem) -> int:
    if args.value:
        if not fs.set_visibility(args.path, args.value):
            return _not_found(args.path)
        return 0
    visibility = fs.get_visibility(args.path)
    if visibility is None:
        return _not_found(args.path)
    print(visibility.value)
    return 0


def cmd_mounts(args: argparse.Namespace, fs: Filesystem) -> int:
    for prefix, (backend, root) in sorted(fs.backend.mounts.items()):
        print(f"{prefix}\t{type(backend).__name__}\t{root.path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="polyfs",
                                     description="One namespace over many storage backends")
    parser.add_argument("--config", default="", help="path to config.json")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command")

    p_cat = sub.add_parser("cat")
    p_cat.add_argument("path")

    p_put = sub.add_parser("put")
    p_put.add_argument("path")
    p_put.add_argument("--file", default="")
    p_put.add_argument("--visibility", choices=["public", "private"], default=None)
    p_put.add_argument("--directory-visibility", choices=["public", "private"], default=None)

    p_rm = sub.add_parser("rm")
    p_rm.add_argument("path")

    for name in ("mv", "cp"):
        p = sub.add_parser(name)
        p.add_argument("source")
        p.add_argument("destination")

    p_ls = sub.add_parser("ls")
    p_ls.add_argument("path", nargs="?", default="/")
    p_ls.add_argument("--json", action="store_true")

    p_mkdir = sub.add_parser("mkdir")
    p_mkdir.add_argument("path")
    p_mkdir.add_argument("--visibility", choices=["public", "private"], default=None)

    p_rmdir = sub.add_parser("rmdir")
    p_rmdir.add_argument("path")
    p_rmdir.add_argument("--recursive", action="store_true")

    p_exists = sub.add_parser("exists")
    p_exists.add_argument("path")

    p_vis = sub.add_parser("visibility")
    p_vis.add_argument("path")
    p_vis.add_argument("value", nargs="?", choices=["public", "private"], default=None)

    sub.add_parser("mounts")
    return parser


COMMANDS = {
    "cat": cmd_cat,
    "put": cmd_put,
    "rm": cmd_rm,
    "mv": cmd_mv,
    "cp": cmd_cp,
    "ls": cmd_ls,
    "mkdir": cmd_mkdir,
    "rmdir": cmd_rmdir,
    "exists": cmd_exists,
    "visibility": cmd_visibility,
    "mounts": cmd_mounts,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = _load(args)
    level = "DEBUG" if args.verbose else config.log_level
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if args.command not in COMMANDS:
        parser.print_help()
        return 0
    try:
        return COMMANDS[args.command](args, build_filesystem(config))
    except PolyfsError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
