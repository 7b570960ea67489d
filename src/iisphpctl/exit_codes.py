"""Enumerations for CLI exit codes."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Well-known exit codes enforced across the CLI."""

    OK = 0
    PRIVILEGE = 1
    REBOOT_REQUIRED = 2
    VALIDATION = 3
    PROVIDER = 4
    LOCKED = 5
