from __future__ import annotations

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path


def atomic_write(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        os.replace(tmp, path)
    except BaseException:
        os.unlink(tmp)
        raise


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def from_timestamp(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, timezone.utc)
