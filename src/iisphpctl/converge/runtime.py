"""Ensure the Visual C++ runtime redistributable is installed."""
from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from ..errors import DownloadFailed, PackageInstallFailed
from ..providers.downloads import DownloadError
from ..providers.installer import InstallerLaunchError
from ..providers.powershell import PowerShellError
from .interfaces import DownloadService, InstallerRunner, SoftwareInventory

LOGGER = logging.getLogger(__name__)

INSTALLER_ARGUMENTS = ("/install", "/quiet", "/norestart")
EXIT_SUCCESS = 0
EXIT_SUCCESS_REBOOT_REQUIRED = 3010
EXIT_ALREADY_INSTALLED = 1638
ALLOWED_EXIT_CODES = frozenset({EXIT_SUCCESS, EXIT_SUCCESS_REBOOT_REQUIRED, EXIT_ALREADY_INSTALLED})


def ensure_runtime_present(
    inventory: SoftwareInventory,
    downloads: DownloadService,
    installers: InstallerRunner,
    *,
    display_name: str,
    url: str,
    temp_dir: Path | None = None,
) -> bool:
    """Install the runtime from *url* unless *display_name* is already present.

    Returns True when an installer was executed. The downloaded installer is
    removed on every exit path.
    """
    try:
        existing = inventory.find_by_display_name_substring(display_name)
    except PowerShellError as exc:
        raise PackageInstallFailed(
            "runtime", display_name, f"installed-software query failed: {exc}"
        ) from exc
    if existing is not None:
        LOGGER.debug("Runtime already installed: %s", existing.display_name)
        return False

    with tempfile.TemporaryDirectory(prefix="iisphpctl-vc-", dir=temp_dir) as staging:
        installer_path = Path(staging) / _file_name(url)
        try:
            downloads.get(url, installer_path)
        except DownloadError as exc:
            raise DownloadFailed("runtime", url, str(exc)) from exc

        LOGGER.info("Running %s %s", installer_path.name, " ".join(INSTALLER_ARGUMENTS))
        try:
            code = installers.run(installer_path, INSTALLER_ARGUMENTS)
        except InstallerLaunchError as exc:
            raise PackageInstallFailed("runtime", display_name, str(exc)) from exc

    if code not in ALLOWED_EXIT_CODES:
        raise PackageInstallFailed(
            "runtime",
            display_name,
            f"installer exited with code {code} "
            f"(allowed: {', '.join(str(item) for item in sorted(ALLOWED_EXIT_CODES))})",
        )
    if code == EXIT_SUCCESS_REBOOT_REQUIRED:
        LOGGER.warning("Runtime installer requested a reboot; continuing.")
    return True


def _file_name(url: str) -> str:
    name = url.rstrip("/").rsplit("/", 1)[-1].split("?", 1)[0]
    return name or "installer.exe"


__all__ = ["ALLOWED_EXIT_CODES", "INSTALLER_ARGUMENTS", "ensure_runtime_present"]
