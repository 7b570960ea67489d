"""Process identity checks."""
from __future__ import annotations

import ctypes
import os


def is_elevated() -> bool:
    """Return True when the current process holds administrator authority.

    On Windows this asks the shell whether the token is elevated; elsewhere
    it falls back to checking for an effective UID of zero.
    """
    if os.name == "nt":
        try:
            return bool(ctypes.windll.shell32.IsUserAnAdmin())  # type: ignore[attr-defined]
        except (AttributeError, OSError):
            return False
    geteuid = getattr(os, "geteuid", None)
    return bool(geteuid is not None and geteuid() == 0)


__all__ = ["is_elevated"]
