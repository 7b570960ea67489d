"""Resolve, download and unpack the PHP interpreter.

Windows builds of PHP are published as
``php-<version>-nts-Win32-<toolchain>-x64.zip`` where the toolchain token names
the Visual Studio release that compiled them: ``vs16`` for PHP releases older
than 8.4 and ``vs17`` from 8.4 onwards. Superseded releases are moved from the
``releases`` directory to ``releases/archives``.
"""
from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from packaging.version import InvalidVersion, Version

from ..errors import (
    ArchiveLayoutMismatch,
    ConfigWriteFailed,
    DownloadFailed,
    DownloadUnreachable,
    ExtractionFailed,
)
from ..providers.archive import ArchiveError
from ..providers.downloads import DownloadError
from .interfaces import ArchiveService, DownloadService

LOGGER = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_BASE = "https://windows.php.net/downloads/releases"
PHP_CGI_BINARY = "php-cgi.exe"
TOOLCHAIN_THRESHOLD = Version("8.4")
TOOLCHAIN_NEW = "vs17"
TOOLCHAIN_OLD = "vs16"


@dataclass(frozen=True, slots=True)
class PhpDownload:
    """Download coordinates for one PHP release."""

    version: str
    toolchain: str
    file_name: str
    url: str
    archive_url: str

    @property
    def candidates(self) -> tuple[str, ...]:
        """Return URLs in the order they should be probed."""
        return (self.url, self.archive_url)


def compiler_token(version: str) -> str:
    """Return the compiler-ABI token used to build PHP *version*."""
    try:
        parsed = Version(version)
    except InvalidVersion as exc:
        raise ValueError(f"Invalid PHP version {version!r}.") from exc
    return TOOLCHAIN_NEW if parsed >= TOOLCHAIN_THRESHOLD else TOOLCHAIN_OLD


def resolve_download(version: str, base_url: str = DEFAULT_DOWNLOAD_BASE) -> PhpDownload:
    """Return the download coordinates for PHP *version*."""
    normalized = version.strip()
    token = compiler_token(normalized)
    file_name = f"php-{normalized}-nts-Win32-{token}-x64.zip"
    base = base_url.rstrip("/")
    return PhpDownload(
        version=normalized,
        toolchain=token,
        file_name=file_name,
        url=f"{base}/{file_name}",
        archive_url=f"{base}/archives/{file_name}",
    )


def ensure_interpreter(
    downloads: DownloadService,
    archives: ArchiveService,
    *,
    version: str,
    install_path: Path,
    base_url: str = DEFAULT_DOWNLOAD_BASE,
    binary_name: str = PHP_CGI_BINARY,
    temp_dir: Path | None = None,
) -> tuple[Path, bool]:
    """Make sure the PHP CGI binary for *version* exists under *install_path*.

    Returns the binary path and whether a download was performed. When the
    binary is already present no network access takes place.
    """
    binary = install_path / binary_name
    if binary.is_file():
        LOGGER.debug("PHP binary already present at %s", binary)
        return binary, False

    resource = f"PHP {version}"
    download = resolve_download(version, base_url)
    url = _first_reachable(downloads, download, resource)

    with tempfile.TemporaryDirectory(prefix="iisphpctl-php-", dir=temp_dir) as staging:
        archive_path = Path(staging) / download.file_name
        try:
            downloads.get(url, archive_path)
        except DownloadError as exc:
            raise DownloadFailed("interpreter", url, str(exc)) from exc
        try:
            archives.extract(archive_path, install_path)
        except ArchiveError as exc:
            raise ExtractionFailed("interpreter", str(archive_path), str(exc)) from exc

    if not binary.is_file():
        raise ArchiveLayoutMismatch(
            "interpreter",
            str(binary),
            f"{download.file_name} did not contain {binary_name} at its root",
        )
    LOGGER.info("Installed PHP %s (%s) into %s", version, download.toolchain, install_path)
    return binary, True


def ensure_php_ini(install_path: Path) -> bool:
    """Seed ``php.ini`` from ``php.ini-production`` when it is missing."""
    target = install_path / "php.ini"
    template = install_path / "php.ini-production"
    if target.exists() or not template.is_file():
        return False
    try:
        shutil.copyfile(template, target)
    except OSError as exc:
        raise ConfigWriteFailed("interpreter", str(target), str(exc)) from exc
    return True


def _first_reachable(downloads: DownloadService, download: PhpDownload, resource: str) -> str:
    failures: list[str] = []
    for candidate in download.candidates:
        try:
            status = downloads.head(candidate)
        except DownloadError as exc:
            failures.append(str(exc))
            continue
        if 200 <= status < 400:
            return candidate
        failures.append(f"{candidate} returned HTTP {status}")
    raise DownloadUnreachable("interpreter", resource, "; ".join(failures))


__all__ = [
    "PHP_CGI_BINARY",
    "PhpDownload",
    "compiler_token",
    "ensure_interpreter",
    "ensure_php_ini",
    "resolve_download",
]
