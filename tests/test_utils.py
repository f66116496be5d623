"""
Tests for URL, MIME and HTTP helpers.
"""

from unittest.mock import MagicMock

import pytest
import requests

from bundlesync.response import ResourceResponse
from bundlesync.utils import (
    RetryingFetcher,
    add_slash_to_end,
    cache_headers,
    friendly_bytes,
    join_url,
    mime_from_url,
    remove_slash_at_end,
    resolve_mime,
    strip_relative_path,
)

pytestmark = [pytest.mark.unit]


class TestUrlHelpers:
    """Test URL manipulation helpers."""

    def test_slashes(self):
        """Test trailing slash helpers."""
        assert remove_slash_at_end("https://a.example/x/") == "https://a.example/x"
        assert remove_slash_at_end("https://a.example/x") == "https://a.example/x"
        assert add_slash_to_end("https://a.example/x") == "https://a.example/x/"
        assert add_slash_to_end("https://a.example/x/") == "https://a.example/x/"

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/index.js", "index.js"),
            ("./index.js", "index.js"),
            ("../index.js", "index.js"),
            ("assets/index.js", "assets/index.js"),
        ],
    )
    def test_strip_relative_path(self, path, expected):
        """Test one leading relative prefix is removed."""
        assert strip_relative_path(path) == expected

    def test_join_url(self):
        """Test joining a root and a manifest-relative path."""
        assert join_url("https://cdn.example.com/pong", "./a.js") == "https://cdn.example.com/pong/a.js"
        assert join_url("https://cdn.example.com/pong/", "/a.js") == "https://cdn.example.com/pong/a.js"


class TestFriendlyBytes:
    """Test friendly_bytes."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (0, "0 bytes"),
            (1023, "1023 bytes"),
            (1536, "1.50 KB"),
            (5 * 1024 * 1024, "5.00 MB"),
            (-2048, "-2.00 KB"),
        ],
    )
    def test_formats(self, value, expected):
        """Test units and signs."""
        assert friendly_bytes(value) == expected


class TestMime:
    """Test MIME type resolution."""

    def test_overrides(self):
        """Test types the platform table may lack."""
        assert mime_from_url("https://a.example/app.wasm") == "application/wasm"
        assert mime_from_url("https://a.example/app.JS?v=2") == "text/javascript"

    def test_platform_table(self):
        """Test other extensions fall back to mimetypes."""
        assert mime_from_url("https://a.example/logo.png") == "image/png"

    def test_no_extension(self):
        """Test paths without an extension have no MIME type."""
        assert mime_from_url("https://a.example/LICENSE") is None
        assert mime_from_url("https://a.example/v1.2/data") is None

    def test_resolve_mime_order(self):
        """Test extension, then Content-Type, then text/plain."""
        response = ResourceResponse(headers={"content-type": "application/x-custom"})
        assert resolve_mime("https://a.example/a.css", response) == "text/css"
        assert resolve_mime("https://a.example/blob", response) == "application/x-custom"
        assert resolve_mime("https://a.example/blob", ResourceResponse()) == "text/plain"
        assert resolve_mime("https://a.example/blob") == "text/plain"

    def test_cache_headers(self):
        """Test synthesized cache headers."""
        headers = cache_headers("text/css", 12, extra={"ETag": "abc"})
        assert headers["Content-Type"] == "text/css"
        assert headers["Content-Length"] == "12"
        assert headers["Cross-Origin-Embedder-Policy"] == "require-corp"
        assert headers["Cross-Origin-Opener-Policy"] == "same-origin"
        assert headers["Last-Modified"].endswith("GMT")
        assert headers["ETag"] == "abc"


def _http_response(status=200, body=b"ok", url="https://cdn.example.com/a.js"):
    response = MagicMock()
    response.status_code = status
    response.content = body
    response.reason = "OK" if status == 200 else "Not Found"
    response.headers = {"Content-Type": "text/javascript"}
    response.url = url
    return response


class TestRetryingFetcher:
    """Test RetryingFetcher."""

    def test_success(self, monkeypatch):
        """Test responses are buffered into a ResourceResponse."""
        get = MagicMock(return_value=_http_response())
        monkeypatch.setattr(requests.Session, "get", get)

        result = RetryingFetcher(timeout=5).fetch("https://cdn.example.com/a.js")

        assert result.success
        assert result.data.body == b"ok"
        assert result.data.headers["content-type"] == "text/javascript"
        assert get.call_args.kwargs["timeout"] == 5

    def test_http_error_is_a_response(self, monkeypatch):
        """Test non-2xx statuses are returned, not treated as failures."""
        monkeypatch.setattr(requests.Session, "get", MagicMock(return_value=_http_response(404)))
        result = RetryingFetcher()("https://cdn.example.com/a.js")
        assert result.success
        assert result.data.status == 404
        assert not result.data.ok

    def test_transport_error(self, monkeypatch):
        """Test transport exceptions become failed results."""
        monkeypatch.setattr(
            requests.Session,
            "get",
            MagicMock(side_effect=requests.ConnectionError("refused")),
        )
        result = RetryingFetcher().fetch("https://cdn.example.com/a.js", retry_count=3)
        assert not result.success
        assert "refused" in result.error_message

    def test_headers_forwarded(self, monkeypatch):
        """Test extra request headers are sent."""
        get = MagicMock(return_value=_http_response())
        monkeypatch.setattr(requests.Session, "get", get)
        RetryingFetcher().fetch("https://cdn.example.com/a.js", headers={"Accept": "*/*"})
        assert get.call_args.kwargs["headers"] == {"Accept": "*/*"}

    def test_retry_strategy_per_attempt_count(self):
        """Test one session per attempt count, with attempts - 1 retries and no backoff."""
        fetcher = RetryingFetcher()
        session = fetcher._session_for(3)
        assert fetcher._session_for(3) is session
        assert fetcher._session_for(1) is not session

        retries = session.get_adapter("https://cdn.example.com/").max_retries
        assert retries.total == 2
        assert retries.backoff_factor == 0
        assert fetcher._session_for(1).get_adapter("https://x/").max_retries.total == 0
        fetcher.close()
        assert fetcher._sessions == {}

