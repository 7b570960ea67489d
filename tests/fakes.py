"""In-memory stand-ins for the host services used by the convergence steps."""
from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from iisphpctl.converge.interfaces import Collaborators
from iisphpctl.models import (
    AccessControlList,
    FeatureEnableResult,
    FeatureState,
    InstalledPackage,
    SiteInfo,
    SiteSpec,
)
from iisphpctl.providers.archive import ArchiveError
from iisphpctl.providers.downloads import DownloadError
from iisphpctl.providers.features import FeatureError
from iisphpctl.providers.powershell import PowerShellError

_PREDICATE = re.compile(
    r"^(?P<collection>.+)/(?P<element>[^/\[]+)"
    r"\[@(?P<attribute>[A-Za-z0-9_]+)=(?P<quote>['\"])(?P<value>.*)(?P=quote)\]$"
)


def _stringify(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass
class FakeFeatureService:
    """Optional feature table keyed by feature name."""

    states: dict[str, FeatureState] = field(default_factory=dict)
    reboot_on_enable: set[str] = field(default_factory=set)
    failing: set[str] = field(default_factory=set)
    enable_calls: list[str] = field(default_factory=list)

    def get_state(self, name: str) -> FeatureState:
        return self.states.get(name, FeatureState(name=name, enabled=False))

    def enable(self, name: str) -> FeatureEnableResult:
        self.enable_calls.append(name)
        if name in self.failing:
            raise FeatureError(f"Enable-WindowsOptionalFeature failed for {name}")
        reboot = name in self.reboot_on_enable
        self.states[name] = FeatureState(name=name, enabled=True, pending_reboot=reboot)
        return FeatureEnableResult(reboot_needed=reboot)


@dataclass
class FakeInventory:
    """Installed-software list."""

    packages: list[InstalledPackage] = field(default_factory=list)
    queries: list[str] = field(default_factory=list)
    error: str | None = None

    def find_by_display_name_substring(self, pattern: str) -> InstalledPackage | None:
        self.queries.append(pattern)
        if self.error is not None:
            raise PowerShellError(self.error, returncode=1)
        wanted = pattern.casefold()
        for package in self.packages:
            if wanted in package.display_name.casefold():
                return package
        return None


@dataclass
class FakeDownloads:
    """Serve canned payloads for reachable URLs and record every request."""

    payloads: dict[str, bytes] = field(default_factory=dict)
    statuses: dict[str, int] = field(default_factory=dict)
    fail_get: set[str] = field(default_factory=set)
    head_calls: list[str] = field(default_factory=list)
    get_calls: list[tuple[str, Path]] = field(default_factory=list)

    @property
    def calls(self) -> int:
        return len(self.head_calls) + len(self.get_calls)

    def head(self, url: str) -> int:
        self.head_calls.append(url)
        if url in self.statuses:
            return self.statuses[url]
        return 200 if url in self.payloads else 404

    def get(self, url: str, destination: Path) -> Path:
        self.get_calls.append((url, destination))
        if url in self.fail_get or url not in self.payloads:
            raise DownloadError(f"GET {url} failed: connection reset")
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(self.payloads[url])
        return destination


@dataclass
class FakeArchives:
    """Extract a fixed file listing instead of reading the archive."""

    members: dict[str, str] = field(
        default_factory=lambda: {
            "php-cgi.exe": "binary",
            "php.exe": "binary",
            "php.ini-production": "; production defaults\n",
        }
    )
    error: str | None = None
    extracted: list[tuple[Path, Path]] = field(default_factory=list)

    def extract(self, archive_path: Path, destination: Path) -> list[Path]:
        self.extracted.append((archive_path, destination))
        if not archive_path.is_file():
            raise ArchiveError(f"{archive_path} does not exist")
        if self.error is not None:
            raise ArchiveError(self.error)
        written: list[Path] = []
        for name, content in self.members.items():
            target = destination / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            written.append(target)
        return written


@dataclass
class FakeInstallers:
    """Record installer invocations and return a configured exit code."""

    exit_code: int = 0
    on_run: Callable[[], None] | None = None
    calls: list[tuple[Path, tuple[str, ...]]] = field(default_factory=list)
    existed_during_run: list[bool] = field(default_factory=list)

    def run(self, executable: Path, arguments: Sequence[str]) -> int:
        self.calls.append((executable, tuple(arguments)))
        self.existed_during_run.append(executable.is_file())
        if self.on_run is not None:
            self.on_run()
        return self.exit_code


@dataclass
class FakeConfigStore:
    """Hierarchical configuration keyed by (location, collection)."""

    collections: dict[tuple[str | None, str], list[dict[str, str]]] = field(default_factory=dict)
    sections: dict[tuple[str | None, str], dict[str, str]] = field(default_factory=dict)
    fail_writes: bool = False
    writes: list[tuple[str, str, str | None]] = field(default_factory=list)

    def elements(self, collection: str, *, location: str | None = None) -> list[dict[str, str]]:
        return self.collections.setdefault((location, collection), [])

    def get_elements(self, filter: str, *, location: str | None = None) -> list[dict[str, str]]:
        match = _PREDICATE.match(filter)
        if match is None:
            collection = filter.rsplit("/", 1)[0]
            return [dict(item) for item in self.elements(collection, location=location)]
        items = self.elements(match["collection"], location=location)
        return [
            dict(item)
            for item in items
            if item.get(match["attribute"]) == match["value"]
        ]

    def get_property(
        self, filter: str, name: str, *, location: str | None = None
    ) -> str | None:
        match = _PREDICATE.match(filter)
        if match is None:
            return self.sections.get((location, filter), {}).get(name)
        found = self.get_elements(filter, location=location)
        return found[0].get(name) if found else None

    def add_element(
        self,
        collection: str,
        attributes: Mapping[str, object],
        *,
        location: str | None = None,
    ) -> None:
        self._write("add", collection, location)
        self.elements(collection, location=location).append(
            {key: _stringify(value) for key, value in attributes.items()}
        )

    def set_property(
        self, filter: str, name: str, value: object, *, location: str | None = None
    ) -> None:
        self._write("set", f"{filter}@{name}", location)
        match = _PREDICATE.match(filter)
        if match is None:
            self.sections.setdefault((location, filter), {})[name] = _stringify(value)
            return
        for item in self.elements(match["collection"], location=location):
            if item.get(match["attribute"]) == match["value"]:
                item[name] = _stringify(value)

    def clear_collection(self, collection: str, *, location: str | None = None) -> None:
        self._write("clear", collection, location)
        self.collections[(location, collection)] = []

    def _write(self, action: str, target: str, location: str | None) -> None:
        if self.fail_writes:
            raise PowerShellError("PowerShell command failed (exit 1): access denied", returncode=1)
        self.writes.append((action, target, location))


@dataclass
class FakeWebAdministration:
    """Pool and site runtime state."""

    pool_states: dict[str, str] = field(default_factory=dict)
    sites: dict[str, SiteInfo] = field(default_factory=dict)
    start_sites_on_create: bool = False
    calls: list[tuple[str, str]] = field(default_factory=list)

    def pool_state(self, name: str) -> str:
        return self.pool_states.setdefault(name, "Started")

    def stop_pool(self, name: str) -> None:
        self.calls.append(("stop_pool", name))
        self.pool_states[name] = "Stopped"

    def start_pool(self, name: str) -> None:
        self.calls.append(("start_pool", name))
        self.pool_states[name] = "Started"

    def get_site(self, name: str) -> SiteInfo | None:
        return self.sites.get(name)

    def create_site(self, spec: SiteSpec) -> None:
        self.calls.append(("create_site", spec.name))
        if spec.name in self.sites:
            raise PowerShellError(f"Site {spec.name} already exists", returncode=1)
        self.sites[spec.name] = SiteInfo(
            name=spec.name,
            physical_path=spec.physical_path,
            application_pool=spec.application_pool,
            bindings=spec.bindings,
            state="Started" if self.start_sites_on_create else "Stopped",
        )

    def remove_site(self, name: str) -> None:
        self.calls.append(("remove_site", name))
        self.sites.pop(name, None)

    def site_state(self, name: str) -> str:
        site = self.sites.get(name)
        return site.state if site is not None else "Unknown"

    def start_site(self, name: str) -> None:
        self.calls.append(("start_site", name))
        site = self.sites[name]
        self.sites[name] = SiteInfo(
            name=site.name,
            physical_path=site.physical_path,
            application_pool=site.application_pool,
            bindings=site.bindings,
            state="Started",
        )

    def count(self, action: str) -> int:
        return sum(1 for call, _ in self.calls if call == action)


@dataclass
class FakeAclService:
    """Explicit access rules per path."""

    acls: dict[str, AccessControlList] = field(default_factory=dict)
    writes: list[tuple[Path, AccessControlList]] = field(default_factory=list)

    def read(self, path: Path) -> AccessControlList:
        return self.acls.get(str(path), AccessControlList())

    def write(self, path: Path, acl: AccessControlList) -> None:
        self.writes.append((path, acl))
        self.acls[str(path)] = acl


@dataclass
class FakeHost:
    """Bundle of fakes sharing one simulated host."""

    features: FakeFeatureService = field(default_factory=FakeFeatureService)
    inventory: FakeInventory = field(default_factory=FakeInventory)
    downloads: FakeDownloads = field(default_factory=FakeDownloads)
    archives: FakeArchives = field(default_factory=FakeArchives)
    installers: FakeInstallers = field(default_factory=FakeInstallers)
    config_store: FakeConfigStore = field(default_factory=FakeConfigStore)
    web_admin: FakeWebAdministration = field(default_factory=FakeWebAdministration)
    acl: FakeAclService = field(default_factory=FakeAclService)

    def collaborators(self) -> Collaborators:
        return Collaborators(
            features=self.features,
            inventory=self.inventory,
            downloads=self.downloads,
            archives=self.archives,
            installers=self.installers,
            config_store=self.config_store,
            web_admin=self.web_admin,
            acl=self.acl,
        )
