"""Narrow collaborator contracts consumed by the convergence steps."""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ..models import (
    AccessControlList,
    FeatureEnableResult,
    FeatureState,
    InstalledPackage,
    SiteInfo,
    SiteSpec,
)


class FeatureService(Protocol):
    """Query and enable OS optional features."""

    def get_state(self, name: str) -> FeatureState: ...

    def enable(self, name: str) -> FeatureEnableResult: ...


class SoftwareInventory(Protocol):
    """Installed-software lookup."""

    def find_by_display_name_substring(self, pattern: str) -> InstalledPackage | None: ...


class DownloadService(Protocol):
    """Remote artefact retrieval."""

    def head(self, url: str) -> int: ...

    def get(self, url: str, destination: Path) -> Path: ...


class ArchiveService(Protocol):
    """Archive extraction."""

    def extract(self, archive_path: Path, destination: Path) -> list[Path]: ...


class InstallerRunner(Protocol):
    """Process launcher for native installers."""

    def run(self, executable: Path, arguments: Sequence[str]) -> int: ...


class WebConfigStore(Protocol):
    """Filtered access to the web server configuration store."""

    def get_elements(
        self, filter: str, *, location: str | None = None
    ) -> list[dict[str, str]]: ...

    def get_property(
        self, filter: str, name: str, *, location: str | None = None
    ) -> str | None: ...

    def add_element(
        self,
        collection: str,
        attributes: Mapping[str, object],
        *,
        location: str | None = None,
    ) -> None: ...

    def set_property(
        self, filter: str, name: str, value: object, *, location: str | None = None
    ) -> None: ...

    def clear_collection(self, collection: str, *, location: str | None = None) -> None: ...


class WebAdministration(Protocol):
    """Runtime control of application pools and websites."""

    def pool_state(self, name: str) -> str: ...

    def stop_pool(self, name: str) -> None: ...

    def start_pool(self, name: str) -> None: ...

    def get_site(self, name: str) -> SiteInfo | None: ...

    def create_site(self, spec: SiteSpec) -> None: ...

    def remove_site(self, name: str) -> None: ...

    def site_state(self, name: str) -> str: ...

    def start_site(self, name: str) -> None: ...


class AclService(Protocol):
    """Filesystem access-control lists."""

    def read(self, path: Path) -> AccessControlList: ...

    def write(self, path: Path, acl: AccessControlList) -> None: ...


@dataclass(slots=True)
class Collaborators:
    """Bundle of host services the pipeline orchestrates."""

    features: FeatureService
    inventory: SoftwareInventory
    downloads: DownloadService
    archives: ArchiveService
    installers: InstallerRunner
    config_store: WebConfigStore
    web_admin: WebAdministration
    acl: AclService


__all__ = [
    "AclService",
    "ArchiveService",
    "Collaborators",
    "DownloadService",
    "FeatureService",
    "InstallerRunner",
    "SoftwareInventory",
    "WebAdministration",
    "WebConfigStore",
]
