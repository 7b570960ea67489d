"""Runtime administration of IIS application pools and websites."""
from __future__ import annotations

from dataclasses import dataclass, field

from ..models import SiteBinding, SiteInfo, SiteSpec
from .powershell import PowerShellRunner, as_records, ps_quote

_SITE_QUERY = (
    "$site = Get-Website -Name {name} | Where-Object {{ $_.Name -eq {name} }}; "
    "if ($null -eq $site) {{ ConvertTo-Json -InputObject $null; return }}; "
    "$bindings = @($site.Bindings.Collection | ForEach-Object {{ "
    "@{{ protocol = [string]$_.protocol; bindingInformation = [string]$_.bindingInformation }} }}); "
    "ConvertTo-Json -Depth 4 -Compress -InputObject @{{ "
    "name = [string]$site.Name; "
    "physicalPath = [string]$site.PhysicalPath; "
    "applicationPool = [string]$site.ApplicationPool; "
    "state = [string]$site.State; "
    "bindings = $bindings }}"
)


@dataclass(slots=True)
class IISAdministration:
    """Start, stop, create and remove IIS runtime objects."""

    runner: PowerShellRunner = field(
        default_factory=lambda: PowerShellRunner(modules=("WebAdministration",))
    )

    def pool_state(self, name: str) -> str:
        """Return the runtime state of pool *name* (``Started``/``Stopped``/...)."""
        result = self.runner.run(f"(Get-WebAppPoolState -Name {ps_quote(name)}).Value")
        return (result.stdout or "").strip() or "Unknown"

    def stop_pool(self, name: str) -> None:
        """Stop application pool *name*."""
        self.runner.run(f"Stop-WebAppPool -Name {ps_quote(name)}")

    def start_pool(self, name: str) -> None:
        """Start application pool *name*."""
        self.runner.run(f"Start-WebAppPool -Name {ps_quote(name)}")

    def get_site(self, name: str) -> SiteInfo | None:
        """Return the definition of site *name*, or ``None`` if it is absent."""
        payload = self.runner.run_json(_SITE_QUERY.format(name=ps_quote(name)))
        records = as_records(payload)
        if not records:
            return None
        record = records[0]
        raw_bindings = record.get("bindings") or []
        if isinstance(raw_bindings, dict):
            raw_bindings = [raw_bindings]
        bindings = tuple(
            SiteBinding(
                protocol=str(item.get("protocol", "")),
                binding_information=str(item.get("bindingInformation", "")),
            )
            for item in raw_bindings
            if isinstance(item, dict)
        )
        return SiteInfo(
            name=str(record.get("name", name)),
            physical_path=str(record.get("physicalPath", "")),
            application_pool=str(record.get("applicationPool", "")),
            bindings=bindings,
            state=str(record.get("state", "")),
        )

    def create_site(self, spec: SiteSpec) -> None:
        """Create a website bound according to *spec*."""
        script = (
            f"New-Website -Name {ps_quote(spec.name)} "
            f"-PhysicalPath {ps_quote(spec.physical_path)} "
            f"-ApplicationPool {ps_quote(spec.application_pool)} "
            f"-Port {int(spec.port)} "
            f"-HostHeader {ps_quote(spec.host_header)} "
            f"-IPAddress {ps_quote(spec.ip_address)} -Force | Out-Null"
        )
        self.runner.run(script)

    def remove_site(self, name: str) -> None:
        """Delete website *name*."""
        self.runner.run(f"Remove-Website -Name {ps_quote(name)}")

    def site_state(self, name: str) -> str:
        """Return the runtime state of site *name*."""
        result = self.runner.run(f"(Get-WebsiteState -Name {ps_quote(name)}).Value")
        return (result.stdout or "").strip() or "Unknown"

    def start_site(self, name: str) -> None:
        """Start website *name*."""
        self.runner.run(f"Start-Website -Name {ps_quote(name)}")


__all__ = ["IISAdministration"]
