"""HTTP download service with a bounded retry policy."""
from __future__ import annotations

import logging
from pathlib import Path

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOGGER = logging.getLogger(__name__)

RETRY_STATUSES = (429, 500, 502, 503, 504)
_CHUNK_SIZE = 1024 * 1024


class DownloadError(RuntimeError):
    """Raised when a URL cannot be probed or fetched."""


def build_session(retries: int = 3, backoff_factor: float = 1.0) -> requests.Session:
    """Return a session that retries idempotent requests with backoff."""
    policy = Retry(
        total=retries,
        connect=retries,
        read=retries,
        status=retries,
        backoff_factor=backoff_factor,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=frozenset({"HEAD", "GET"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=policy)
    session = requests.Session()
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers["User-Agent"] = "iisphpctl"
    return session


class HttpDownloadService:
    """Probe and download remote artefacts."""

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        """Use *session* (or a default retrying session) for all requests."""
        self.session = session or build_session()
        self.timeout = timeout

    def head(self, url: str) -> int:
        """Return the HTTP status for a metadata-only request to *url*."""
        try:
            response = self.session.head(url, allow_redirects=True, timeout=self.timeout)
        except requests.RequestException as exc:
            raise DownloadError(f"HEAD {url} failed: {exc}") from exc
        LOGGER.debug("HEAD %s -> %s", url, response.status_code)
        return int(response.status_code)

    def get(self, url: str, destination: Path) -> Path:
        """Stream *url* into *destination* and return the path."""
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                with destination.open("wb") as handle:
                    for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                        if chunk:
                            handle.write(chunk)
        except (requests.RequestException, OSError) as exc:
            destination.unlink(missing_ok=True)
            raise DownloadError(f"GET {url} failed: {exc}") from exc
        LOGGER.debug("Downloaded %s to %s", url, destination)
        return destination


__all__ = ["DownloadError", "HttpDownloadService", "RETRY_STATUSES", "build_session"]
