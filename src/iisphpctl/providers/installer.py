"""Launch native installers and report their exit codes."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path


class InstallerLaunchError(RuntimeError):
    """Raised when an installer process cannot be started."""


@dataclass(slots=True)
class ProcessInstallerRunner:
    """Run an installer executable to completion."""

    def run(self, executable: Path, arguments: Sequence[str]) -> int:
        """Execute *executable* with *arguments* and return its exit code."""
        command = [str(executable), *arguments]
        try:
            result = subprocess.run(  # noqa: S603
                command,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise InstallerLaunchError(f"Unable to launch {executable}: {exc}") from exc
        return result.returncode


__all__ = ["InstallerLaunchError", "ProcessInstallerRunner"]
