"""Advisory locking so only one run converges a given site at a time."""
from __future__ import annotations

import json
import os
import re
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import IO

if os.name == "nt":
    import msvcrt
else:
    import fcntl

_POLL_INTERVAL = 0.05
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class LockTimeoutError(RuntimeError):
    """Raised when a lock cannot be acquired before the timeout."""


@dataclass(slots=True)
class LockHandle:
    """Information about an acquired lock."""

    path: Path
    wait_ms: int


def _try_lock(handle: IO[str]) -> bool:
    try:
        if os.name == "nt":
            handle.seek(0)
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
        else:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        return False
    return True


def _unlock(handle: IO[str]) -> None:
    if os.name == "nt":
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


class LockManager:
    """Hand out exclusive file locks under ``<runtime_dir>/sites``."""

    def __init__(self, runtime_dir: Path, default_timeout: float = 30.0) -> None:
        """Initialise the manager rooted at *runtime_dir*."""
        self.runtime_dir = Path(runtime_dir)
        self.default_timeout = default_timeout

    def lock_path(self, site: str) -> Path:
        """Return the lock file path for *site*."""
        safe = _UNSAFE_CHARS.sub("-", site.strip()) or "default"
        return self.runtime_dir / "sites" / f"{safe}.lock"

    @contextmanager
    def site_lock(self, site: str, *, timeout: float | None = None) -> Iterator[LockHandle]:
        """Hold the lock for *site* for the duration of the context.

        Lock files are left in place after release so the metadata of the last
        holder remains available for diagnostics.
        """
        path = self.lock_path(site)
        path.parent.mkdir(parents=True, exist_ok=True)
        limit = self.default_timeout if timeout is None else timeout
        started = time.monotonic()

        handle = path.open("a+", encoding="utf-8")
        try:
            while not _try_lock(handle):
                if time.monotonic() - started >= limit:
                    raise LockTimeoutError(
                        f"Timed out after {limit:.1f}s waiting for lock {path}; "
                        "another iisphpctl run is converging this site."
                    )
                time.sleep(_POLL_INTERVAL)
            wait_ms = int((time.monotonic() - started) * 1000)
            try:
                self._write_metadata(handle, path)
                yield LockHandle(path=path, wait_ms=wait_ms)
            finally:
                _unlock(handle)
        finally:
            handle.close()

    def _write_metadata(self, handle: IO[str], path: Path) -> None:
        payload = {
            "pid": os.getpid(),
            "path": str(path),
            "acquired_at": datetime.now(tz=UTC).isoformat(timespec="seconds"),
        }
        handle.seek(0)
        handle.truncate()
        handle.write(json.dumps(payload))
        handle.flush()


__all__ = ["LockHandle", "LockManager", "LockTimeoutError"]
