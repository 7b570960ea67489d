"""Value objects describing desired and observed host state."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True, slots=True)
class DesiredConfiguration:
    """Immutable inputs for a single convergence run."""

    site_name: str
    host_header: str
    content_path: Path
    php_version: str
    install_path: Path
    port: int
    default_documents: tuple[str, ...] = ("index.php", "index.html", "index.htm")
    web_identity: str = "IUSR"
    pool_runtime_version: str = ""
    pool_enable_32bit: bool = False

    @property
    def binding_information(self) -> str:
        """Return the IIS ``ip:port:host`` binding string for the site."""
        return f"*:{self.port}:{self.host_header}"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "site_name": self.site_name,
            "host_header": self.host_header,
            "content_path": str(self.content_path),
            "php_version": self.php_version,
            "install_path": str(self.install_path),
            "port": self.port,
            "default_documents": list(self.default_documents),
            "web_identity": self.web_identity,
            "pool_runtime_version": self.pool_runtime_version,
            "pool_enable_32bit": self.pool_enable_32bit,
        }


@dataclass(frozen=True, slots=True)
class FeatureState:
    """Observed state of a named optional feature."""

    name: str
    enabled: bool
    pending_reboot: bool = False


@dataclass(frozen=True, slots=True)
class FeatureEnableResult:
    """Outcome reported by an enable request."""

    reboot_needed: bool


@dataclass(frozen=True, slots=True)
class InstalledPackage:
    """Entry from the installed-software inventory."""

    display_name: str
    version: str | None = None


@dataclass(frozen=True, slots=True)
class AccessRule:
    """Explicit filesystem access rule for an identity."""

    identity: str
    rights: str
    inheritance: str = "None"
    propagation: str = "None"
    access_type: str = "Allow"

    def to_dict(self) -> dict[str, str]:
        """Return the JSON shape exchanged with the ACL provider."""
        return {
            "identity": self.identity,
            "rights": self.rights,
            "inheritance": self.inheritance,
            "propagation": self.propagation,
            "access_type": self.access_type,
        }


@dataclass(frozen=True, slots=True)
class AccessControlList:
    """Explicit (non-inherited) access rules of a path."""

    rules: tuple[AccessRule, ...] = ()

    def with_rule(self, rule: AccessRule) -> AccessControlList:
        """Return a copy where *rule* replaces any rule for the same identity."""
        identity = rule.identity.casefold()
        kept = tuple(item for item in self.rules if item.identity.casefold() != identity)
        return AccessControlList(rules=(*kept, rule))

    def rule_for(self, identity: str) -> AccessRule | None:
        """Return the rule recorded for *identity*, if any."""
        wanted = identity.casefold()
        for rule in self.rules:
            if rule.identity.casefold() == wanted:
                return rule
        return None


@dataclass(frozen=True, slots=True)
class SiteBinding:
    """Single IIS site binding."""

    protocol: str
    binding_information: str


@dataclass(frozen=True, slots=True)
class SiteInfo:
    """Observed definition of an IIS website."""

    name: str
    physical_path: str
    application_pool: str
    bindings: tuple[SiteBinding, ...]
    state: str


@dataclass(frozen=True, slots=True)
class SiteSpec:
    """Definition used when creating an IIS website."""

    name: str
    physical_path: str
    application_pool: str
    port: int
    host_header: str
    ip_address: str = "*"

    @property
    def bindings(self) -> tuple[SiteBinding, ...]:
        """Return the canonical binding set for this site."""
        return (SiteBinding("http", f"{self.ip_address}:{self.port}:{self.host_header}"),)


@dataclass(slots=True)
class StepOutcome:
    """Result of one convergence step."""

    name: str
    changed: bool
    detail: str
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "name": self.name,
            "changed": self.changed,
            "detail": self.detail,
            "warnings": list(self.warnings),
        }


@dataclass(slots=True)
class ConvergenceReport:
    """Aggregate result of a pipeline run."""

    desired: DesiredConfiguration
    steps: list[StepOutcome] = field(default_factory=list)
    reboot_required: bool = False
    halted_after: str | None = None

    @property
    def changed(self) -> int:
        """Return the number of steps that mutated host state."""
        return sum(1 for step in self.steps if step.changed)

    @property
    def warnings(self) -> list[str]:
        """Return all warnings raised by individual steps."""
        return [warning for step in self.steps for warning in step.warnings]

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "desired": self.desired.to_dict(),
            "steps": [step.to_dict() for step in self.steps],
            "reboot_required": self.reboot_required,
            "halted_after": self.halted_after,
            "changed": self.changed,
            "warnings": self.warnings,
        }


__all__ = [
    "AccessControlList",
    "AccessRule",
    "ConvergenceReport",
    "DesiredConfiguration",
    "FeatureEnableResult",
    "FeatureState",
    "InstalledPackage",
    "SiteBinding",
    "SiteInfo",
    "SiteSpec",
    "StepOutcome",
]
