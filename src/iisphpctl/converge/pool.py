"""Application pool convergence."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..errors import ConfigWriteFailed
from ..providers.powershell import PowerShellError
from ..providers.webconfig import element_filter
from .interfaces import WebAdministration, WebConfigStore

LOGGER = logging.getLogger(__name__)

POOLS_COLLECTION = "system.applicationHost/applicationPools"
RUNNING_STATES = {"started", "starting"}


def ensure_pool(
    store: WebConfigStore,
    admin: WebAdministration,
    name: str,
    *,
    runtime_version: str = "",
    allow_32bit: bool = False,
    settle_seconds: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Create pool *name* if needed and apply its runtime settings.

    A running pool is stopped before its properties are written and started
    again afterwards. A pool that was stopped stays stopped. Returns True when
    the pool was created.
    """
    selector = element_filter(POOLS_COLLECTION, "add", "name", name)
    created = False
    try:
        if not store.get_elements(selector):
            LOGGER.info("Creating application pool %s", name)
            store.add_element(POOLS_COLLECTION, {"name": name})
            created = True

        was_running = admin.pool_state(name).casefold() in RUNNING_STATES
        if was_running:
            admin.stop_pool(name)
            if settle_seconds > 0:
                sleep(settle_seconds)

        store.set_property(selector, "managedRuntimeVersion", runtime_version)
        store.set_property(selector, "enable32BitAppOnWin64", allow_32bit)

        if was_running:
            admin.start_pool(name)
    except PowerShellError as exc:
        raise ConfigWriteFailed("pool", name, str(exc)) from exc
    return created


__all__ = ["POOLS_COLLECTION", "ensure_pool"]
