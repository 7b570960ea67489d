"""Tests for zip extraction."""
from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from iisphpctl.providers.archive import ArchiveError, ZipArchiveService


def _make_zip(path: Path, members: dict[str, str]) -> Path:
    with zipfile.ZipFile(path, "w") as archive:
        for name, content in members.items():
            archive.writestr(name, content)
    return path


def test_extract_writes_members(tmp_path: Path) -> None:
    """Members are extracted beneath the destination."""
    archive = _make_zip(
        tmp_path / "php.zip",
        {"php-cgi.exe": "bin", "ext/php_curl.dll": "dll"},
    )
    destination = tmp_path / "php"

    written = ZipArchiveService().extract(archive, destination)

    assert (destination / "php-cgi.exe").read_text() == "bin"
    assert (destination / "ext" / "php_curl.dll").exists()
    assert destination / "php-cgi.exe" in written


@pytest.mark.parametrize("name", ["../evil.txt", "/abs/evil.txt", "C:/evil.txt", "a\\..\\..\\evil"])
def test_extract_rejects_unsafe_members(tmp_path: Path, name: str) -> None:
    """Members escaping the destination are refused before extraction."""
    archive = _make_zip(tmp_path / "bad.zip", {"ok.txt": "fine", name: "bad"})
    destination = tmp_path / "out"

    with pytest.raises(ArchiveError, match="unsafe"):
        ZipArchiveService().extract(archive, destination)

    assert not (destination / "ok.txt").exists()


def test_extract_corrupt_archive(tmp_path: Path) -> None:
    """A file that is not a zip archive raises ArchiveError."""
    archive = tmp_path / "broken.zip"
    archive.write_bytes(b"not a zip")

    with pytest.raises(ArchiveError, match="Failed to extract"):
        ZipArchiveService().extract(archive, tmp_path / "out")


def test_destination_that_is_a_file_raises(tmp_path: Path) -> None:
    """An unusable destination is reported as an archive error."""
    archive = _make_zip(tmp_path / "php.zip", {"php-cgi.exe": "bin"})
    destination = tmp_path / "php"
    destination.write_text("occupied")

    with pytest.raises(ArchiveError, match="Failed to extract"):
        ZipArchiveService().extract(archive, destination)
