"""
Per-request cache policy.

FetchPolicyRouter answers requests for an origin either from the network or
from the persistent store. The policy of a request is taken from its
``X-Cache-Policy`` header when that names a known policy; otherwise the root
document of the origin is served network-first and everything else
cache-first.

Responses served from the store carry ``X-Cache-Hit: SW HIT``. When neither
the network nor the store can answer, the router synthesizes a 500 response
whose ``X-Network-Error`` header describes the network failure.
"""

from dataclasses import replace
from typing import Mapping, Optional

from requests.structures import CaseInsensitiveDict

from bundlesync.constants import (
    CACHE_HIT_HEADER,
    CACHE_HIT_VALUE,
    CACHE_POLICY_HEADER,
    DEFAULT_MIME_TYPE,
    NETWORK_ERROR_HEADER,
    OFFLINE_PAGE_NAME,
    POLICY_CACHE_FIRST,
    POLICY_NETWORK_FIRST,
    POLICY_NETWORK_ONLY,
)
from bundlesync.download.interfaces import FetchFunction
from bundlesync.log_utils import logger
from bundlesync.response import ResourceResponse
from bundlesync.store.interfaces import FileCache
from bundlesync.utils import remove_slash_at_end

POLICIES = (POLICY_NETWORK_ONLY, POLICY_NETWORK_FIRST, POLICY_CACHE_FIRST)


def tag_cache_hit(response: ResourceResponse) -> ResourceResponse:
    """Return a copy of `response` marked as served from the store."""
    headers = CaseInsensitiveDict(response.headers)
    headers[CACHE_HIT_HEADER] = CACHE_HIT_VALUE
    return replace(response, headers=headers)


def network_error_response(url: str, reason: str) -> ResourceResponse:
    """
    Build the 500 response returned when a request cannot be answered at all.

    Parameters:
        url (str): The request URL.
        reason (str): Why the network request failed.

    Returns:
        ResourceResponse: A text/plain 500 response with an `X-Network-Error` header.
    """
    # Header values must stay on one line
    diagnostic = " ".join(str(reason).split()) or "network request failed"
    return ResourceResponse(
        body=f"Network request for {url} failed: {diagnostic}".encode("utf-8"),
        status=500,
        status_text="Internal Server Error",
        headers={"Content-Type": DEFAULT_MIME_TYPE, NETWORK_ERROR_HEADER: diagnostic},
        url=url,
    )


class FetchPolicyRouter:
    """
    Routes requests between the network and the persistent store.

    Parameters:
        origin (str): Origin the router serves, e.g. "https://example.com".
        fetch (FetchFunction): Network fetch primitive.
        store (FileCache): Persistent store to answer from.
        retry_count (int): Attempts per network request.
    """

    def __init__(self, origin: str, fetch: FetchFunction, store: FileCache, retry_count: int = 1):
        self.origin = remove_slash_at_end(origin)
        self.fetch = fetch
        self.store = store
        self.retry_count = retry_count

    @property
    def offline_page_url(self) -> str:
        return f"{self.origin}/{OFFLINE_PAGE_NAME}"

    def is_root_document(self, url: str) -> bool:
        return remove_slash_at_end(url.split("?", 1)[0].split("#", 1)[0]) == self.origin

    def policy_for(self, url: str, headers: Optional[Mapping[str, str]] = None) -> str:
        if headers:
            requested = CaseInsensitiveDict(headers).get(CACHE_POLICY_HEADER, "")
            requested = requested.strip().lower()
            if requested in POLICIES:
                return requested
            if requested:
                logger.debug(f"Unknown cache policy '{requested}' for {url}; using default")
        return POLICY_NETWORK_FIRST if self.is_root_document(url) else POLICY_CACHE_FIRST

    def _cached(self, url: str) -> Optional[ResourceResponse]:
        response = self.store.get_file(url)
        if response is None or not response.ok:
            return None
        return tag_cache_hit(response)

    def handle(self, url: str, headers: Optional[Mapping[str, str]] = None) -> ResourceResponse:
        """
        Answer one request according to its cache policy.

        Parameters:
            url (str): Absolute request URL.
            headers (Optional[Mapping[str, str]]): Request headers, forwarded to the network.

        Returns:
            ResourceResponse: The network response, a cached copy, or a synthesized 500.
        """
        policy = self.policy_for(url, headers)
        if policy == POLICY_CACHE_FIRST:
            cached = self._cached(url)
            if cached is not None:
                return cached

        forwarded = {k: v for k, v in (headers or {}).items() if k.lower() != CACHE_POLICY_HEADER.lower()}
        fetched = self.fetch(url, retry_count=self.retry_count, headers=forwarded)
        if fetched.success:
            return fetched.data
        logger.debug(f"Network request for {url} failed ({policy}): {fetched.error_message}")

        if policy == POLICY_NETWORK_FIRST:
            cached = self._cached(url)
            if cached is None:
                cached = self._cached(self.offline_page_url)
            if cached is not None:
                return cached
        return network_error_response(url, fetched.error_message)
