"""Archive helpers for unpacking downloaded distributions."""
from __future__ import annotations

import zipfile
from pathlib import Path, PurePosixPath


class ArchiveError(RuntimeError):
    """Raised when an archive cannot be unpacked."""


class ZipArchiveService:
    """Extract zip archives, refusing members that escape the destination."""

    def extract(self, archive_path: Path, destination: Path) -> list[Path]:
        """Extract *archive_path* into *destination* and return written files."""
        try:
            destination.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(archive_path) as archive:
                members = archive.infolist()
                for member in members:
                    _check_member(member.filename)
                archive.extractall(destination)
        except (zipfile.BadZipFile, OSError) as exc:
            raise ArchiveError(f"Failed to extract {archive_path}: {exc}") from exc
        return [destination / member.filename for member in members if not member.is_dir()]


def _check_member(name: str) -> None:
    path = PurePosixPath(name.replace("\\", "/"))
    if path.is_absolute() or ".." in path.parts or (path.parts and ":" in path.parts[0]):
        raise ArchiveError(f"Refusing to extract unsafe archive member {name!r}.")


__all__ = ["ArchiveError", "ZipArchiveService"]
