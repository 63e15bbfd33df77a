"""Resource addresses.

An Address is a superset of a URI: ``scheme://[userinfo@]host[:port]/path[?query][#fragment]``.
Bare paths (``/docs/a.txt``) are accepted as well and take the default scheme,
which keeps plain-path callers working unchanged.
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from types import MappingProxyType
from dataclasses import dataclass, field, replace
from urllib.parse import parse_qsl, quote, urlencode

from polyfs.core.errors import TraversalError

DEFAULT_SCHEME = "memory"

_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]*)://(.*)$", re.DOTALL)
_SLASHES_RE = re.compile(r"/+")


@dataclass(frozen=True)
class Address:
    scheme: str = DEFAULT_SCHEME
    path: str = "/"
    userinfo: str | None = None
    host: str | None = None
    port: int | None = None
    query: Mapping[str, str] | None = field(default=None, hash=False)
    fragment: str | None = None
    # Query text as written, kept so to_string can reproduce it verbatim.
    raw_query: str | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", _ensure_absolute(self.path))
        if self.query is not None:
            object.__setattr__(self, "query", MappingProxyType(dict(self.query)))

    @classmethod
    def parse(cls, raw: str | Address, default_scheme: str = DEFAULT_SCHEME) -> Address:
        return parse(raw, default_scheme)

    @property
    def name(self) -> str:
        return self.path.rstrip("/").rsplit("/", 1)[-1]

    @property
    def is_root(self) -> bool:
        return self.path == "/"

    def parent(self) -> Address:
        head = self.path.rstrip("/").rsplit("/", 1)[0]
        return replace(self, path=head or "/")

    def normalize(self) -> Address:
        return normalize(self)

    def join(self, segment: str) -> Address:
        return join(self, segment)

    def join_prefix(self, prefix: str | Address) -> Address:
        return join_prefix(prefix, self)

    def strip_prefix(self, prefix: str | Address) -> Address:
        return strip_prefix(prefix, self)

    def __str__(self) -> str:
        return to_string(self)


def _ensure_absolute(path: str | None) -> str:
    if not path:
        return "/"
    if path.startswith("/"):
        return path
    return "/" + path


def _split_authority(authority: str) -> tuple[str | None, str | None, int | None]:
    userinfo, sep, hostport = authority.rpartition("@")
    if not sep:
        userinfo = None
    if hostport.startswith("["):
        end = hostport.index("]")
        host, rest = hostport[:end + 1], hostport[end + 1:]
        if rest and not rest.startswith(":"):
            raise ValueError(f"Invalid authority: {authority}")
        port_str = rest[1:]
    else:
        host, _, port_str = hostport.partition(":")
    port = int(port_str) if port_str else None
    if port is not None and not 0 <= port <= 65535:
        raise ValueError(f"Port out of range: {port}")
    return userinfo, host or None, port


def parse(raw: str | Address, default_scheme: str = DEFAULT_SCHEME) -> Address:
    """Build an Address from a URI or a bare path. Never raises."""
    if isinstance(raw, Address):
        return raw
    match = _SCHEME_RE.match(raw)
    if match is None:
        return Address(scheme=default_scheme, path=raw)

    scheme, rest = match.group(1).lower(), match.group(2)
    rest, hashmark, fragment = rest.partition("#")
    rest, qmark, query_string = rest.partition("?")
    slash = rest.find("/")
    authority, path = (rest, "/") if slash < 0 else (rest[:slash], rest[slash:])
    try:
        userinfo, host, port = _split_authority(authority)
    except ValueError:
        return Address(scheme=default_scheme, path=raw)

    query = dict(parse_qsl(query_string, keep_blank_values=True)) if qmark else None
    return Address(
        scheme=scheme,
        path=path,
        userinfo=userinfo,
        host=host,
        port=port,
        query=query,
        fragment=fragment if hashmark else None,
        raw_query=query_string if qmark else None,
    )


def normalize(addr: str | Address) -> Address:
    """Resolve ``.``/``..`` and duplicate separators.

    Raises TraversalError when a ``..`` would climb above the root.
    """
    addr = parse(addr)
    kept: list[str] = []
    for segment in addr.path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not kept:
                raise TraversalError(addr.path)
            kept.pop()
            continue
        kept.append(segment)
    return replace(addr, path="/" + "/".join(kept))


def join(addr: str | Address, segment: str) -> Address:
    addr = parse(addr)
    parts = [p.strip("/") for p in (addr.path, segment)]
    joined = "/".join(p for p in parts if p)
    return replace(addr, path=_SLASHES_RE.sub("/", "/" + joined))


def join_prefix(prefix: str | Address, addr: str | Address) -> Address:
    addr = parse(addr)
    prefix_path = _ensure_absolute(prefix.path if isinstance(prefix, Address) else prefix)
    if prefix_path == "/":
        path = addr.path
    elif addr.path == "/":
        path = prefix_path
    else:
        path = prefix_path.rstrip("/") + "/" + addr.path.lstrip("/")
    return replace(addr, path=_SLASHES_RE.sub("/", path))


def strip_prefix(prefix: str | Address, addr: str | Address) -> Address:
    addr = parse(addr)
    prefix_path = _ensure_absolute(prefix.path if isinstance(prefix, Address) else prefix)
    prefix_path = prefix_path.rstrip("/")
    path = addr.path
    if prefix_path and (path == prefix_path or path.startswith(prefix_path + "/")):
        path = path[len(prefix_path):]
    return replace(addr, path=path or "/")


def is_prefix(prefix: str, path: str) -> bool:
    """True when ``prefix`` covers ``path`` on a segment boundary."""
    if prefix == "/":
        return True
    return path == prefix or path.startswith(prefix + "/")


def to_string(addr: Address, default_scheme: str = DEFAULT_SCHEME) -> str:
    if (addr.scheme == default_scheme and addr.host is None and addr.userinfo is None
            and addr.port is None and addr.query is None and addr.fragment is None):
        return addr.path

    authority = addr.host or ""
    if addr.userinfo is not None:
        authority = f"{addr.userinfo}@{authority}"
    if addr.port is not None:
        authority = f"{authority}:{addr.port}"
    out = f"{addr.scheme}://{authority}{addr.path}"
    if addr.query is not None:
        out += "?" + _render_query(addr)
    if addr.fragment is not None:
        out += "#" + addr.fragment
    return out


def _render_query(addr: Address) -> str:
    raw = addr.raw_query
    if raw is not None and dict(parse_qsl(raw, keep_blank_values=True)) == dict(addr.query):
        return raw
    return urlencode(addr.query, quote_via=quote, safe="/:@")
