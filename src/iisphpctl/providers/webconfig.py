"""IIS configuration store access through the WebAdministration module.

Filters are the XPath-like strings accepted by ``Get-WebConfiguration``, for
example ``system.webServer/fastCgi/application[@fullPath='C:\\PHP\\php-cgi.exe']``.
A ``location`` of ``None`` targets the server (``applicationHost.config``)
scope; otherwise it names the site whose configuration is read or written.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from .powershell import PowerShellRunner, as_records, ps_hashtable, ps_literal, ps_quote

APPHOST_PSPATH = "MACHINE/WEBROOT/APPHOST"

_ELEMENT_TO_JSON = (
    "$rows = @($items | ForEach-Object { "
    "$row = @{}; "
    "foreach ($a in $_.Attributes) { $row[$a.Name] = [string]$a.Value }; "
    "$row }); "
    "ConvertTo-Json -InputObject $rows -Compress"
)


def xpath_literal(value: str) -> str:
    """Quote *value* for use inside an XPath predicate."""
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    parts = value.split("'")
    return "concat(" + ", \"'\", ".join(f"'{part}'" for part in parts) + ")"


def element_filter(collection: str, element: str, attribute: str, value: str) -> str:
    """Return a filter selecting *element* entries of *collection* by attribute."""
    return f"{collection}/{element}[@{attribute}={xpath_literal(value)}]"


@dataclass(slots=True)
class IISConfigStore:
    """Generic read/write access to IIS configuration sections."""

    runner: PowerShellRunner = field(
        default_factory=lambda: PowerShellRunner(modules=("WebAdministration",))
    )
    pspath: str = APPHOST_PSPATH

    def get_elements(self, filter: str, *, location: str | None = None) -> list[dict[str, str]]:
        """Return attributes of every configuration element matching *filter*."""
        script = (
            f"$items = Get-WebConfiguration {self._scope(location)} "
            f"-Filter {ps_quote(filter)}; " + _ELEMENT_TO_JSON
        )
        records = as_records(self.runner.run_json(script))
        return [{str(key): str(value) for key, value in record.items()} for record in records]

    def get_property(
        self,
        filter: str,
        name: str,
        *,
        location: str | None = None,
    ) -> str | None:
        """Return a single attribute value as a string, or ``None`` when unset."""
        script = (
            f"$value = Get-WebConfigurationProperty {self._scope(location)} "
            f"-Filter {ps_quote(filter)} -Name {ps_quote(name)}; "
            "if ($null -ne $value -and $value.PSObject.Properties['Value']) "
            "{ $value = $value.Value }; "
            "ConvertTo-Json -InputObject ([string]$value) -Compress"
        )
        payload = self.runner.run_json(script)
        if payload in (None, ""):
            return None
        return str(payload)

    def add_element(
        self,
        collection: str,
        attributes: Mapping[str, object],
        *,
        location: str | None = None,
    ) -> None:
        """Append a new element with *attributes* to *collection*."""
        script = (
            f"Add-WebConfigurationProperty {self._scope(location)} "
            f"-Filter {ps_quote(collection)} -Name '.' -Value {ps_hashtable(attributes)}"
        )
        self.runner.run(script)

    def set_property(
        self,
        filter: str,
        name: str,
        value: object,
        *,
        location: str | None = None,
    ) -> None:
        """Set attribute *name* on the element(s) selected by *filter*."""
        script = (
            f"Set-WebConfigurationProperty {self._scope(location)} "
            f"-Filter {ps_quote(filter)} -Name {ps_quote(name)} -Value {ps_literal(value)}"
        )
        self.runner.run(script)

    def clear_collection(self, collection: str, *, location: str | None = None) -> None:
        """Remove every element of *collection* at the given scope."""
        script = f"Clear-WebConfiguration {self._scope(location)} -Filter {ps_quote(collection)}"
        self.runner.run(script)

    def _scope(self, location: str | None) -> str:
        scope = f"-PSPath {ps_quote(self.pspath)}"
        if location:
            scope += f" -Location {ps_quote(location)}"
        return scope


__all__ = ["APPHOST_PSPATH", "IISConfigStore", "element_filter", "xpath_literal"]
