"""Windows optional feature provider backed by the DISM PowerShell cmdlets."""
from __future__ import annotations

from dataclasses import dataclass, field

from ..models import FeatureEnableResult, FeatureState
from .powershell import PowerShellError, PowerShellRunner, as_records, ps_quote

_ENABLED_STATES = {"enabled", "enablepending"}
_PENDING_STATES = {"enablepending", "disablepending"}


class FeatureError(RuntimeError):
    """Raised when querying or enabling an optional feature fails."""


@dataclass(slots=True)
class WindowsFeatureProvider:
    """Query and enable optional features on the running image."""

    runner: PowerShellRunner = field(default_factory=PowerShellRunner)

    def get_state(self, name: str) -> FeatureState:
        """Return the current state of feature *name*."""
        script = (
            f"Get-WindowsOptionalFeature -Online -FeatureName {ps_quote(name)} | "
            "Select-Object FeatureName, @{n='State';e={$_.State.ToString()}} | "
            "ConvertTo-Json -Compress"
        )
        try:
            records = as_records(self.runner.run_json(script))
        except PowerShellError as exc:
            raise FeatureError(f"Unable to query feature {name}: {exc}") from exc
        if not records:
            raise FeatureError(f"Feature {name} is not known to this Windows image.")
        state = str(records[0].get("State", "")).replace(" ", "").lower()
        return FeatureState(
            name=name,
            enabled=state in _ENABLED_STATES,
            pending_reboot=state in _PENDING_STATES,
        )

    def enable(self, name: str) -> FeatureEnableResult:
        """Enable feature *name* together with its parent features."""
        script = (
            f"Enable-WindowsOptionalFeature -Online -FeatureName {ps_quote(name)} "
            "-All -NoRestart | Select-Object RestartNeeded | ConvertTo-Json -Compress"
        )
        try:
            records = as_records(self.runner.run_json(script))
        except PowerShellError as exc:
            raise FeatureError(f"Unable to enable feature {name}: {exc}") from exc
        restart = bool(records[0].get("RestartNeeded")) if records else False
        return FeatureEnableResult(reboot_needed=restart)


__all__ = ["FeatureError", "WindowsFeatureProvider"]
