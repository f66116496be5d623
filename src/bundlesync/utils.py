import mimetypes
import threading
import time
from email.utils import formatdate
from typing import Dict, Mapping, Optional
from urllib.parse import urlsplit

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry  # type: ignore

from bundlesync.constants import (
    CROSS_ORIGIN_HEADERS,
    DEFAULT_MIME_TYPE,
    DEFAULT_REQUEST_TIMEOUT,
)
from bundlesync.log_utils import logger
from bundlesync.result import Result
from bundlesync.response import ResourceResponse

# Types the platform mimetypes table is known to lack or get wrong
_MIME_OVERRIDES = {
    ".wasm": "application/wasm",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".json": "application/json",
    ".css": "text/css",
    ".html": "text/html",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".zip": "application/zip",
}


def now_millis() -> int:
    return int(time.time() * 1000)


def remove_slash_at_end(url: str) -> str:
    return url[:-1] if url.endswith("/") else url


def add_slash_to_end(url: str) -> str:
    return url if url.endswith("/") else f"{url}/"


def strip_relative_path(path: str) -> str:
    """
    Strip one leading "/", "./" or "../" from a path.

    Parameters:
        path (str): Relative file path as found in a manifest.

    Returns:
        str: The path without its relative prefix.
    """
    if path.startswith("/"):
        return path[1:]
    if path.startswith("./"):
        return path[2:]
    if path.startswith("../"):
        return path[3:]
    return path


def join_url(root: str, relative: str) -> str:
    return f"{add_slash_to_end(root)}{strip_relative_path(relative)}"


def string_bytes(text: str) -> int:
    return len(text.encode("utf-8"))


def friendly_bytes(num_bytes: float) -> str:
    """
    Format a byte count for humans (e.g. "1.5 MB").

    Parameters:
        num_bytes (float): Byte count; negative values are formatted with a sign.

    Returns:
        str: Value with two significant decimals and a binary-multiple unit.
    """
    sign = "-" if num_bytes < 0 else ""
    value = float(abs(num_bytes))
    for unit in ("bytes", "KB", "MB", "GB", "TB"):
        if value < 1024 or unit == "TB":
            if unit == "bytes":
                return f"{sign}{int(value)} bytes"
            return f"{sign}{value:.2f} {unit}"
        value /= 1024
    return f"{sign}{value:.2f} TB"


def mime_from_url(url: str) -> Optional[str]:
    """
    Guess a MIME type from the extension of a URL's path.

    Returns:
        Optional[str]: The MIME type, or None when the extension is unknown.
    """
    path = urlsplit(url).path.lower()
    dot = path.rfind(".")
    if dot < 0 or "/" in path[dot:]:
        return None
    extension = path[dot:]
    if extension in _MIME_OVERRIDES:
        return _MIME_OVERRIDES[extension]
    guessed, _encoding = mimetypes.guess_type(path)
    return guessed


def resolve_mime(url: str, response: Optional[ResourceResponse] = None) -> str:
    """
    Decide the MIME type to store a resource under.

    Order: URL extension, then the response's Content-Type header, then "text/plain".
    """
    from_url = mime_from_url(url)
    if from_url:
        return from_url
    if response is not None:
        header = response.headers.get("Content-Type")
        if header:
            return header
    return DEFAULT_MIME_TYPE


def cache_headers(
    mime: str, content_length: int, extra: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """
    Build the headers synthesized for a cached response.

    Returns:
        Dict[str, str]: Last-Modified, Content-Length, Content-Type and cross-origin
        isolation headers, plus any `extra` values.
    """
    headers = {
        "Last-Modified": formatdate(usegmt=True),
        "Content-Length": str(content_length),
        "Content-Type": mime,
    }
    headers.update(CROSS_ORIGIN_HEADERS)
    if extra:
        headers.update(extra)
    return headers


class RetryingFetcher:
    """
    GET-only HTTP client with bounded, linear retries.

    `retry_count` is the total number of attempts. Only transport failures
    (connection and read errors) are retried, without backoff; any HTTP status,
    including 4xx/5xx, is returned to the caller as a response.
    """

    def __init__(self, timeout: float = DEFAULT_REQUEST_TIMEOUT):
        self.timeout = timeout
        self._sessions: Dict[int, requests.Session] = {}
        self._lock = threading.Lock()

    def _session_for(self, retry_count: int) -> requests.Session:
        attempts = max(1, int(retry_count))
        with self._lock:
            session = self._sessions.get(attempts)
            if session is None:
                retry_strategy: Retry = Retry(
                    total=attempts - 1,
                    connect=attempts - 1,
                    read=attempts - 1,
                    status=0,
                    backoff_factor=0,
                    allowed_methods=frozenset({"GET", "HEAD"}),
                    raise_on_status=False,
                )
                adapter = HTTPAdapter(max_retries=retry_strategy)
                session = requests.Session()
                session.mount("https://", adapter)
                session.mount("http://", adapter)
                self._sessions[attempts] = session
        return session

    def fetch(
        self,
        url: str,
        retry_count: int = 1,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Result[ResourceResponse]:
        """
        Fetch a URL and buffer the response.

        Parameters:
            url (str): Absolute URL to GET.
            retry_count (int): Total number of attempts for transport failures.
            headers (Optional[Mapping[str, str]]): Extra request headers.

        Returns:
            Result[ResourceResponse]: Success with the response for any HTTP status;
            failure with the exception text when no response could be obtained.
        """
        session = self._session_for(retry_count)
        try:
            response = session.get(url, headers=dict(headers or {}), timeout=self.timeout)
        except requests.RequestException as e:
            logger.debug(f"Network error fetching {url} after {retry_count} attempt(s): {e}")
            return Result.err(f"network error fetching {url}: {e}")

        logger.debug(f"Received HTTP response status code: {response.status_code} for URL: {url}")
        return Result.ok(
            ResourceResponse(
                body=response.content,
                status=response.status_code,
                status_text=response.reason or "",
                headers=dict(response.headers),
                url=response.url or url,
            )
        )

    __call__ = fetch

    def close(self) -> None:
        with self._lock:
            for session in self._sessions.values():
                session.close()
            self._sessions.clear()
