"""Website convergence.

Two strategies are supported. ``recreate`` removes any same-named site and
creates it again on every run. ``reconcile`` compares the existing physical
path, application pool and bindings with the desired definition and only
rebuilds the site when one of them differs, which keeps a correctly
configured site serving requests across runs.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import PureWindowsPath

from ..errors import ConfigWriteFailed
from ..models import SiteInfo, SiteSpec
from ..providers.powershell import PowerShellError
from .interfaces import WebAdministration

LOGGER = logging.getLogger(__name__)


class SiteStrategy(str, Enum):
    """How an existing site with the target name is handled."""

    RECONCILE = "reconcile"
    RECREATE = "recreate"


@dataclass(slots=True)
class SiteResult:
    """Outcome of :func:`ensure_site`."""

    action: str
    started: bool
    differences: tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        """Return True when the site definition or state was modified."""
        return self.action != "unchanged" or self.started


def site_differences(existing: SiteInfo, spec: SiteSpec) -> tuple[str, ...]:
    """Return the names of fields where *existing* deviates from *spec*."""
    differences: list[str] = []
    if _normalize_path(existing.physical_path) != _normalize_path(spec.physical_path):
        differences.append("physicalPath")
    if existing.application_pool != spec.application_pool:
        differences.append("applicationPool")
    existing_bindings = {
        (binding.protocol.casefold(), binding.binding_information.casefold())
        for binding in existing.bindings
    }
    desired_bindings = {
        (binding.protocol.casefold(), binding.binding_information.casefold())
        for binding in spec.bindings
    }
    if existing_bindings != desired_bindings:
        differences.append("bindings")
    return tuple(differences)


def ensure_site(
    admin: WebAdministration,
    spec: SiteSpec,
    *,
    strategy: SiteStrategy = SiteStrategy.RECONCILE,
) -> SiteResult:
    """Converge website *spec.name* onto *spec* and make sure it is started."""
    try:
        existing = admin.get_site(spec.name)
        differences: tuple[str, ...] = ()
        if existing is None:
            action = "created"
        elif strategy is SiteStrategy.RECREATE:
            action = "recreated"
        else:
            differences = site_differences(existing, spec)
            action = "recreated" if differences else "unchanged"

        if action == "recreated":
            LOGGER.info("Removing site %s before recreating it", spec.name)
            admin.remove_site(spec.name)
        if action != "unchanged":
            LOGGER.info("Creating site %s bound to %s", spec.name, spec.bindings[0])
            admin.create_site(spec)

        started = False
        if admin.site_state(spec.name).casefold() != "started":
            admin.start_site(spec.name)
            started = True
    except PowerShellError as exc:
        raise ConfigWriteFailed("site", spec.name, str(exc)) from exc
    return SiteResult(action=action, started=started, differences=differences)


def _normalize_path(value: str) -> str:
    return str(PureWindowsPath(value.rstrip("\\/") or value)).casefold()


__all__ = ["SiteResult", "SiteStrategy", "ensure_site", "site_differences"]
