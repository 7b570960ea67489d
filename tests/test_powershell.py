"""Tests for the PowerShell runner and literal helpers."""
from __future__ import annotations

import subprocess
from typing import Any

import pytest

from iisphpctl.providers import powershell
from iisphpctl.providers.powershell import (
    PowerShellError,
    PowerShellRunner,
    as_records,
    ps_hashtable,
    ps_literal,
    ps_quote,
)


class DummyResult:
    """Simple stand-in for ``subprocess.CompletedProcess``."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the dummy result."""
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def test_run_builds_non_interactive_command(monkeypatch: pytest.MonkeyPatch) -> None:
    """Scripts run without a profile, with Stop semantics and module imports."""
    captured: dict[str, Any] = {}

    def fake_run(args: list[str], **kwargs: Any) -> DummyResult:
        captured["args"] = args
        captured["kwargs"] = kwargs
        return DummyResult(stdout="ok\n")

    monkeypatch.setattr(powershell.subprocess, "run", fake_run)
    runner = PowerShellRunner(powershell_bin="pwsh", modules=("WebAdministration",))

    result = runner.run("Get-Website")

    assert result.stdout == "ok\n"
    args = captured["args"]
    assert args[:6] == [
        "pwsh",
        "-NoProfile",
        "-NonInteractive",
        "-ExecutionPolicy",
        "Bypass",
        "-Command",
    ]
    assert args[6].startswith("$ErrorActionPreference = 'Stop'; ")
    assert "Import-Module WebAdministration -ErrorAction Stop; Get-Website" in args[6]
    assert captured["kwargs"]["check"] is False
    assert captured["kwargs"]["capture_output"] is True


def test_run_raises_with_exit_code_and_stderr(monkeypatch: pytest.MonkeyPatch) -> None:
    """Non-zero exits surface stderr and the return code."""
    monkeypatch.setattr(
        powershell.subprocess,
        "run",
        lambda *a, **k: DummyResult(returncode=5, stderr="Access is denied.\n"),
    )

    with pytest.raises(PowerShellError, match=r"exit 5\): Access is denied.") as excinfo:
        PowerShellRunner().run("Set-Acl")

    assert excinfo.value.returncode == 5


def test_run_without_check_returns_failed_result(monkeypatch: pytest.MonkeyPatch) -> None:
    """``check=False`` hands the failed result back to the caller."""
    monkeypatch.setattr(powershell.subprocess, "run", lambda *a, **k: DummyResult(returncode=1))

    result = PowerShellRunner().run("Get-Thing", check=False)

    assert result.returncode == 1


def test_missing_binary_raises_powershell_error(monkeypatch: pytest.MonkeyPatch) -> None:
    """A missing interpreter is reported as a PowerShellError."""

    def fake_run(*args: Any, **kwargs: Any) -> subprocess.CompletedProcess[str]:
        raise FileNotFoundError("powershell.exe")

    monkeypatch.setattr(powershell.subprocess, "run", fake_run)

    with pytest.raises(PowerShellError, match="not found"):
        PowerShellRunner().run("Get-Date")


def test_run_json_decodes_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    """JSON output is decoded; empty output becomes ``None``."""
    outputs = iter(['{"State": "Enabled"}', "   "])
    monkeypatch.setattr(
        powershell.subprocess, "run", lambda *a, **k: DummyResult(stdout=next(outputs))
    )
    runner = PowerShellRunner()

    assert runner.run_json("first") == {"State": "Enabled"}
    assert runner.run_json("second") is None


def test_run_json_rejects_invalid_json(monkeypatch: pytest.MonkeyPatch) -> None:
    """Unparseable output raises instead of being ignored."""
    monkeypatch.setattr(powershell.subprocess, "run", lambda *a, **k: DummyResult(stdout="oops"))

    with pytest.raises(PowerShellError, match="invalid JSON"):
        PowerShellRunner().run_json("Get-Thing")


def test_literal_helpers_escape_values() -> None:
    """Literals are quoted for PowerShell."""
    assert ps_quote("O'Brien") == "'O''Brien'"
    assert ps_literal(True) == "$true"
    assert ps_literal(False) == "$false"
    assert ps_literal(4) == "4"
    assert ps_literal(None) == "$null"
    assert ps_literal("C:\\PHP") == "'C:\\PHP'"
    assert ps_hashtable({"name": "php.local", "maxInstances": 4}) == (
        "@{'name'='php.local'; 'maxInstances'=4}"
    )


def test_as_records_normalises_shapes() -> None:
    """Single objects and arrays both become lists of mappings."""
    assert as_records(None) == []
    assert as_records({"a": 1}) == [{"a": 1}]
    assert as_records([{"a": 1}, "skip", {"b": 2}]) == [{"a": 1}, {"b": 2}]
    with pytest.raises(PowerShellError):
        as_records("text")
