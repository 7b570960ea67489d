"""FastCGI application registration and the site-level PHP handler mapping."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..errors import ConfigWriteFailed
from ..providers.powershell import PowerShellError
from ..providers.webconfig import element_filter
from .interfaces import WebConfigStore

LOGGER = logging.getLogger(__name__)

FASTCGI_COLLECTION = "system.webServer/fastCgi"
HANDLERS_COLLECTION = "system.webServer/handlers"
DEFAULT_VERBS = "GET,HEAD,POST"


@dataclass(slots=True)
class MappingResult:
    """Outcome of :func:`ensure_path_handler`."""

    created: bool
    warnings: list[str] = field(default_factory=list)


def ensure_handler_registered(
    store: WebConfigStore,
    executable_path: str,
    *,
    max_instances: int = 4,
) -> bool:
    """Register *executable_path* as a FastCGI application once.

    Returns True when a new registration was written.
    """
    selector = element_filter(FASTCGI_COLLECTION, "application", "fullPath", executable_path)
    try:
        if store.get_elements(selector):
            return False
        LOGGER.info("Registering FastCGI application %s", executable_path)
        store.add_element(
            FASTCGI_COLLECTION,
            {
                "fullPath": executable_path,
                "arguments": "",
                "maxInstances": max_instances,
            },
        )
    except PowerShellError as exc:
        raise ConfigWriteFailed("fastcgi", executable_path, str(exc)) from exc
    return True


def ensure_path_handler(
    store: WebConfigStore,
    site: str,
    *,
    handler_name: str,
    pattern: str,
    script_processor: str,
    verbs: str = DEFAULT_VERBS,
) -> MappingResult:
    """Create the named handler mapping at *site* scope if it does not exist.

    An existing mapping with the same name is left untouched even when its
    path or script processor differ; the difference is reported as a warning.
    """
    selector = element_filter(HANDLERS_COLLECTION, "add", "name", handler_name)
    try:
        existing = store.get_elements(selector, location=site)
        if existing:
            current = existing[0]
            warnings: list[str] = []
            if (
                current.get("path") != pattern
                or current.get("scriptProcessor", "").casefold() != script_processor.casefold()
            ):
                warnings.append(
                    f"Handler mapping {handler_name} on {site} differs from the desired "
                    f"definition (path={current.get('path')!r}, "
                    f"scriptProcessor={current.get('scriptProcessor')!r}); left unchanged."
                )
            return MappingResult(created=False, warnings=warnings)

        LOGGER.info("Adding handler mapping %s for %s on %s", handler_name, pattern, site)
        store.add_element(
            HANDLERS_COLLECTION,
            {
                "name": handler_name,
                "path": pattern,
                "verb": verbs,
                "modules": "FastCgiModule",
                "scriptProcessor": script_processor,
                "resourceType": "Either",
            },
            location=site,
        )
    except PowerShellError as exc:
        raise ConfigWriteFailed("handler-mapping", f"{site}/{handler_name}", str(exc)) from exc
    return MappingResult(created=True)


__all__ = [
    "FASTCGI_COLLECTION",
    "HANDLERS_COLLECTION",
    "MappingResult",
    "ensure_handler_registered",
    "ensure_path_handler",
]
