from datetime import datetime, timezone

import pytest

from polyfs.afs.resource import Resource, ResourceType, resource_from_dict, resource_to_dict
from polyfs.core.address import parse
from polyfs.core.visibility import Visibility


def _resource(**kwargs):
    defaults = dict(address=parse("/docs/a.txt"), type=ResourceType.FILE, size=5)
    defaults.update(kwargs)
    return Resource(**defaults)


def test_is_directory():
    assert not _resource().is_directory
    assert _resource(type=ResourceType.DIRECTORY).is_directory


def test_capabilities():
    r = _resource(metadata={"executable": True})
    assert r.has_capability("executable")
    assert not r.has_capability("versioned")
    watched = r.with_capability("watchable")
    assert watched.has_capability("watchable")
    assert not r.has_capability("watchable")


def test_unknown_capability():
    with pytest.raises(ValueError):
        _resource().has_capability("flying")
    with pytest.raises(ValueError):
        _resource().with_capability("flying")


def test_to_dict_flattens_enums():
    mtime = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    data = resource_to_dict(_resource(
        mtime=mtime,
        mime_type="text/plain",
        metadata={"visibility": Visibility.PRIVATE, "executable": False},
    ))
    assert data == {
        "address": "/docs/a.txt",
        "type": "file",
        "size": 5,
        "mtime": "2024-01-02T03:04:05+00:00",
        "mime_type": "text/plain",
        "metadata": {"visibility": "private", "executable": False},
    }


def test_from_dict():
    r = resource_from_dict({
        "address": "s3://bucket/k",
        "type": "directory",
        "mtime": "2024-01-02T03:04:05+00:00",
    })
    assert r.address.host == "bucket"
    assert r.is_directory
    assert r.mtime.year == 2024
    assert r.size is None
