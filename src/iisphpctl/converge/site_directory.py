"""Prepare the site content directory and its permissions."""
from __future__ import annotations

import logging
from pathlib import Path

from ..errors import ConfigWriteFailed
from ..models import AccessRule
from ..providers.powershell import PowerShellError
from .interfaces import AclService

LOGGER = logging.getLogger(__name__)

READ_EXECUTE_RIGHTS = "ReadAndExecute"
CONTAINER_OBJECT_INHERIT = "ContainerInherit, ObjectInherit"
INDEX_FILE = "index.php"
INDEX_CONTENT = "<?php phpinfo(); ?>\n"


def ensure_directory(path: Path) -> bool:
    """Create *path* and any missing parents. Returns True when created."""
    if path.is_dir():
        return False
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigWriteFailed("site-directory", str(path), str(exc)) from exc
    return True


def grant_read_execute(acl_service: AclService, path: Path, identity: str) -> bool:
    """Grant *identity* inherited read/execute on *path*.

    The current rule set is read, the rule for *identity* replaced, and the
    result written back in a single call. Returns False when the desired rule
    was already in place.
    """
    desired = AccessRule(
        identity=identity,
        rights=READ_EXECUTE_RIGHTS,
        inheritance=CONTAINER_OBJECT_INHERIT,
        propagation="None",
        access_type="Allow",
    )
    try:
        current = acl_service.read(path)
        existing = current.rule_for(identity)
        if existing is not None and _satisfies(existing, desired):
            return False
        LOGGER.info("Granting %s read/execute on %s", identity, path)
        acl_service.write(path, current.with_rule(desired))
    except PowerShellError as exc:
        raise ConfigWriteFailed("site-directory", str(path), str(exc)) from exc
    return True


def ensure_index_file(content_path: Path) -> bool:
    """Write a diagnostic ``index.php`` unless one already exists."""
    target = content_path / INDEX_FILE
    if target.exists():
        return False
    try:
        target.write_text(INDEX_CONTENT, encoding="utf-8")
    except OSError as exc:
        raise ConfigWriteFailed("site-directory", str(target), str(exc)) from exc
    return True


def _satisfies(existing: AccessRule, desired: AccessRule) -> bool:
    rights = {part.strip() for part in existing.rights.split(",")}
    inheritance = {part.strip() for part in existing.inheritance.split(",")}
    wanted_inheritance = {part.strip() for part in desired.inheritance.split(",")}
    # Windows reports granted rights with the implicit Synchronize bit.
    return (
        existing.access_type == desired.access_type
        and READ_EXECUTE_RIGHTS in rights
        and rights <= {READ_EXECUTE_RIGHTS, "Synchronize"}
        and inheritance == wanted_inheritance
    )


__all__ = ["ensure_directory", "ensure_index_file", "grant_read_execute"]
