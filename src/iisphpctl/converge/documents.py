"""Default document list management."""
from __future__ import annotations

from collections.abc import Sequence

from ..errors import ConfigWriteFailed
from ..providers.powershell import PowerShellError
from .interfaces import WebConfigStore

DEFAULT_DOCUMENT_SECTION = "system.webServer/defaultDocument"
DEFAULT_DOCUMENT_FILES = f"{DEFAULT_DOCUMENT_SECTION}/files"


def current_default_documents(store: WebConfigStore, site: str) -> list[str]:
    """Return the ordered default documents configured for *site*."""
    return [
        element.get("value", "")
        for element in store.get_elements(f"{DEFAULT_DOCUMENT_FILES}/add", location=site)
    ]


def set_default_documents(store: WebConfigStore, site: str, names: Sequence[str]) -> bool:
    """Enable default documents on *site* and replace the list with *names*.

    The list is cleared and rewritten in order rather than merged. Returns
    True when the previous list differed from *names*.
    """
    desired = list(names)
    try:
        previous = current_default_documents(store, site)
        store.set_property(DEFAULT_DOCUMENT_SECTION, "enabled", True, location=site)
        store.clear_collection(DEFAULT_DOCUMENT_FILES, location=site)
        for name in desired:
            store.add_element(DEFAULT_DOCUMENT_FILES, {"value": name}, location=site)
    except PowerShellError as exc:
        raise ConfigWriteFailed("default-documents", site, str(exc)) from exc
    return previous != desired


__all__ = ["current_default_documents", "set_default_documents"]
