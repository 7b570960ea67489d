"""Filesystem ACL provider using ``Get-Acl``/``Set-Acl``."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from ..models import AccessControlList, AccessRule
from .powershell import PowerShellRunner, as_records, ps_quote

_READ_SCRIPT = (
    "$acl = Get-Acl -LiteralPath {path}; "
    "$rules = @($acl.Access | Where-Object {{ -not $_.IsInherited }} | ForEach-Object {{ @{{ "
    "identity = [string]$_.IdentityReference; "
    "rights = [string]$_.FileSystemRights; "
    "inheritance = [string]$_.InheritanceFlags; "
    "propagation = [string]$_.PropagationFlags; "
    "access_type = [string]$_.AccessControlType }} }}); "
    "ConvertTo-Json -InputObject $rules -Compress"
)

# Explicit rules are replaced wholesale and committed with one Set-Acl call.
_WRITE_SCRIPT = (
    "$acl = Get-Acl -LiteralPath {path}; "
    "foreach ($r in @($acl.Access | Where-Object {{ -not $_.IsInherited }})) "
    "{{ [void]$acl.RemoveAccessRuleSpecific($r) }}; "
    "foreach ($r in (ConvertFrom-Json {rules})) {{ "
    "$rule = New-Object System.Security.AccessControl.FileSystemAccessRule("
    "$r.identity, $r.rights, $r.inheritance, $r.propagation, $r.access_type); "
    "$acl.AddAccessRule($rule) }}; "
    "Set-Acl -LiteralPath {path} -AclObject $acl"
)


@dataclass(slots=True)
class WindowsAclService:
    """Read and write explicit access rules on filesystem paths."""

    runner: PowerShellRunner = field(default_factory=PowerShellRunner)

    def read(self, path: Path) -> AccessControlList:
        """Return the explicit access rules currently set on *path*."""
        payload = self.runner.run_json(_READ_SCRIPT.format(path=ps_quote(str(path))))
        rules = tuple(
            AccessRule(
                identity=str(record.get("identity", "")),
                rights=str(record.get("rights", "")),
                inheritance=str(record.get("inheritance", "None")),
                propagation=str(record.get("propagation", "None")),
                access_type=str(record.get("access_type", "Allow")),
            )
            for record in as_records(payload)
        )
        return AccessControlList(rules=rules)

    def write(self, path: Path, acl: AccessControlList) -> None:
        """Replace the explicit rules on *path* with those in *acl*."""
        rules = json.dumps([rule.to_dict() for rule in acl.rules])
        script = _WRITE_SCRIPT.format(path=ps_quote(str(path)), rules=ps_quote(rules))
        self.runner.run(script)


__all__ = ["WindowsAclService"]
