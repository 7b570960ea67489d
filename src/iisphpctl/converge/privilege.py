"""Privilege guard run before any host mutation."""
from __future__ import annotations

from collections.abc import Callable

from ..errors import PrivilegeDenied
from ..providers.identity import is_elevated


def verify_privileged(check: Callable[[], bool] = is_elevated) -> bool:
    """Return True iff the running identity is a host administrator."""
    return bool(check())


def require_privileged(check: Callable[[], bool] = is_elevated) -> None:
    """Raise :class:`PrivilegeDenied` unless the process is elevated."""
    if not verify_privileged(check):
        raise PrivilegeDenied("re-run iisphpctl from an elevated (Administrator) prompt")


__all__ = ["require_privileged", "verify_privileged"]
