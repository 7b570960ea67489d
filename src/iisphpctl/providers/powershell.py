"""Thin wrapper around ``powershell.exe`` used by the host providers."""
from __future__ import annotations

import json
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass


class PowerShellError(RuntimeError):
    """Raised when a PowerShell invocation fails."""

    def __init__(self, message: str, *, returncode: int | None = None) -> None:
        """Store *message* and the exit status reported by PowerShell."""
        super().__init__(message)
        self.returncode = returncode


def ps_quote(value: str) -> str:
    """Return *value* as a single-quoted PowerShell string literal."""
    return "'" + value.replace("'", "''") + "'"


def ps_literal(value: object) -> str:
    """Render a Python scalar as a PowerShell literal."""
    if isinstance(value, bool):
        return "$true" if value else "$false"
    if isinstance(value, int):
        return str(value)
    if value is None:
        return "$null"
    return ps_quote(str(value))


def ps_hashtable(values: Mapping[str, object]) -> str:
    """Render *values* as a PowerShell hashtable literal."""
    pairs = "; ".join(f"{ps_quote(key)}={ps_literal(item)}" for key, item in values.items())
    return "@{" + pairs + "}"


@dataclass(slots=True)
class PowerShellRunner:
    """Execute PowerShell scripts non-interactively."""

    powershell_bin: str = "powershell.exe"
    modules: tuple[str, ...] = ()

    def run(self, script: str, *, check: bool = True) -> subprocess.CompletedProcess[str]:
        """Run *script* and return the completed process."""
        prologue = "".join(f"Import-Module {module} -ErrorAction Stop; " for module in self.modules)
        body = f"$ErrorActionPreference = 'Stop'; {prologue}{script}"
        args = [
            self.powershell_bin,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-Command",
            body,
        ]
        try:
            result = subprocess.run(  # noqa: S603
                args,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise PowerShellError(f"{self.powershell_bin} not found: {exc}") from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise PowerShellError(
                f"PowerShell command failed (exit {result.returncode}): {message}",
                returncode=result.returncode,
            )
        return result

    def run_json(self, script: str) -> object:
        """Run *script* (which must emit JSON) and return the decoded payload."""
        result = self.run(script)
        output = (result.stdout or "").strip()
        if not output:
            return None
        try:
            return json.loads(output)
        except json.JSONDecodeError as exc:
            raise PowerShellError(f"PowerShell returned invalid JSON: {output[:200]!r}") from exc


def as_records(payload: object) -> list[dict[str, object]]:
    """Normalise a ``ConvertTo-Json`` payload into a list of mappings.

    PowerShell collapses single-element arrays into a bare object, so both
    shapes are accepted.
    """
    if payload is None:
        return []
    if isinstance(payload, Mapping):
        return [dict(payload)]
    if isinstance(payload, list):
        return [dict(item) for item in payload if isinstance(item, Mapping)]
    raise PowerShellError(f"Unexpected PowerShell payload type {type(payload).__name__}.")


__all__ = [
    "PowerShellError",
    "PowerShellRunner",
    "as_records",
    "ps_hashtable",
    "ps_literal",
    "ps_quote",
]
