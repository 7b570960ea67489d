"""Failure taxonomy shared by the convergence steps."""
from __future__ import annotations


class ConvergenceError(RuntimeError):
    """Raised when a convergence step cannot reach its desired state.

    Every instance names the step that failed and the resource it was acting
    on so the CLI can surface a single descriptive line.
    """

    def __init__(self, step: str, resource: str, message: str) -> None:
        """Record the failing *step* and *resource* alongside *message*."""
        super().__init__(f"[{step}] {resource}: {message}")
        self.step = step
        self.resource = resource
        self.message = message


class PrivilegeDenied(ConvergenceError):
    """The current process lacks host-administrator authority."""

    def __init__(self, message: str = "administrator rights are required") -> None:
        """Initialise with the fixed privilege step/resource labels."""
        super().__init__("privilege", "process identity", message)


class FeatureEnableFailed(ConvergenceError):
    """Enabling an optional OS feature failed."""


class PackageInstallFailed(ConvergenceError):
    """A runtime redistributable installer exited with a disallowed code."""


class DownloadUnreachable(ConvergenceError):
    """A metadata probe found no reachable download location."""


class DownloadFailed(ConvergenceError):
    """Fetching a remote artefact failed."""


class ExtractionFailed(ConvergenceError):
    """Unpacking a downloaded archive failed."""


class ArchiveLayoutMismatch(ConvergenceError):
    """An archive unpacked cleanly but the expected binary is missing."""


class ConfigWriteFailed(ConvergenceError):
    """Reading or writing the web server configuration store failed."""


__all__ = [
    "ArchiveLayoutMismatch",
    "ConfigWriteFailed",
    "ConvergenceError",
    "DownloadFailed",
    "DownloadUnreachable",
    "ExtractionFailed",
    "FeatureEnableFailed",
    "PackageInstallFailed",
    "PrivilegeDenied",
]
