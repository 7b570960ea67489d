"""Host collaborators used by the convergence steps."""
from __future__ import annotations

from .acl import WindowsAclService
from .archive import ArchiveError, ZipArchiveService
from .downloads import DownloadError, HttpDownloadService, build_session
from .features import FeatureError, WindowsFeatureProvider
from .identity import is_elevated
from .installer import InstallerLaunchError, ProcessInstallerRunner
from .inventory import RegistryInventory
from .powershell import PowerShellError, PowerShellRunner
from .webadmin import IISAdministration
from .webconfig import IISConfigStore

__all__ = [
    "ArchiveError",
    "DownloadError",
    "FeatureError",
    "HttpDownloadService",
    "IISAdministration",
    "IISConfigStore",
    "InstallerLaunchError",
    "PowerShellError",
    "PowerShellRunner",
    "ProcessInstallerRunner",
    "RegistryInventory",
    "WindowsAclService",
    "WindowsFeatureProvider",
    "ZipArchiveService",
    "build_session",
    "is_elevated",
]
