"""Installed-software inventory read from the Windows uninstall registry keys."""
from __future__ import annotations

from dataclasses import dataclass, field

from ..models import InstalledPackage
from .powershell import PowerShellRunner, as_records

UNINSTALL_KEYS = (
    r"HKLM:\SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall\*",
    r"HKLM:\SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall\*",
)


@dataclass(slots=True)
class RegistryInventory:
    """Look up installed packages by display name."""

    runner: PowerShellRunner = field(default_factory=PowerShellRunner)
    keys: tuple[str, ...] = UNINSTALL_KEYS

    def list_packages(self) -> list[InstalledPackage]:
        """Return every uninstall entry that carries a display name."""
        paths = ", ".join(f"'{key}'" for key in self.keys)
        script = (
            f"$items = @(Get-ItemProperty -Path {paths} -ErrorAction SilentlyContinue | "
            "Where-Object { $_.DisplayName } | "
            "Select-Object DisplayName, DisplayVersion); "
            "ConvertTo-Json -InputObject $items -Compress"
        )
        packages: list[InstalledPackage] = []
        for record in as_records(self.runner.run_json(script)):
            display_name = str(record.get("DisplayName") or "").strip()
            if not display_name:
                continue
            version = record.get("DisplayVersion")
            packages.append(
                InstalledPackage(
                    display_name=display_name,
                    version=str(version) if version else None,
                )
            )
        return packages

    def find_by_display_name_substring(self, pattern: str) -> InstalledPackage | None:
        """Return the first package whose display name contains *pattern*."""
        needle = pattern.casefold()
        for package in self.list_packages():
            if needle in package.display_name.casefold():
                return package
        return None


__all__ = ["RegistryInventory", "UNINSTALL_KEYS"]
