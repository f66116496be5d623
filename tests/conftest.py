import json
import threading
import time

import platformdirs
import pytest
import requests

from bundlesync.response import ResourceResponse
from bundlesync.result import Result
from bundlesync.store.memory import InMemoryCache

_NETWORK_BLOCK_MSG = (
    "Network access is blocked during tests. Use the fake_fetch fixture or mock Session.get."
)

# 35 URL-safe characters
VALID_UUID = "3f2a9c1e-7b4d-4e8a-9c0f-5d6e7f8a9b0"
OTHER_UUID = "9b8a7f6e-5d4c-4b3a-8f1e-0d9c8b7a6f5"


def _block_network(*_args, **_kwargs):
    """
    Prevent network calls in tests by raising a RuntimeError.

    Raises:
        RuntimeError: with `_NETWORK_BLOCK_MSG` indicating that network access is blocked during tests.
    """
    raise RuntimeError(_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    """
    Register the markers used to group the test suite.

    Parameters:
        config: pytest.Config
    """
    for marker, description in (
        ("unit", "fast, isolated tests"),
        ("core_downloads", "update checking, downloading and reconciliation"),
        ("configuration", "configuration loading and logging"),
        ("user_interface", "command-line interface"),
        ("integration", "tests wiring several components together"),
    ):
        config.addinivalue_line("markers", f"{marker}: {description}")


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Create an isolated temporary XDG directory layout and patch platformdirs to use it.

    This fixture creates temp directories for cache, state, config, data and logs, sets
    the XDG_* environment variables, removes BUNDLESYNC_LOG_LEVEL and patches the
    platformdirs user_* functions to return the temp paths.
    """
    base = tmp_path_factory.mktemp("bundlesync")
    cache_dir = base / "cache"
    state_dir = base / "state"
    config_dir = base / "config"
    data_dir = base / "data"
    log_dir = state_dir / "log"

    for path in (cache_dir, state_dir, config_dir, data_dir, log_dir):
        path.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_CACHE_HOME", str(cache_dir))
    monkeypatch.setenv("XDG_STATE_HOME", str(state_dir))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))
    monkeypatch.setenv("XDG_DATA_HOME", str(data_dir))
    monkeypatch.delenv("BUNDLESYNC_LOG_LEVEL", raising=False)

    monkeypatch.setattr(
        platformdirs, "user_cache_dir", lambda *_args, **_kwargs: str(cache_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_state_dir", lambda *_args, **_kwargs: str(state_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_data_dir", lambda *_args, **_kwargs: str(data_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_log_dir", lambda *_args, **_kwargs: str(log_dir)
    )


def pytest_runtest_setup():
    """
    Prevent real network requests during tests by replacing HTTP entry points with blocking callables.
    """
    requests.get = _block_network
    requests.post = _block_network
    requests.put = _block_network
    requests.delete = _block_network
    requests.head = _block_network
    requests.patch = _block_network
    requests.options = _block_network
    requests.Session.request = _block_network


@pytest.fixture(autouse=True)
def _mock_time_sleep(monkeypatch):
    """Make time.sleep instant for all tests to prevent delays."""
    monkeypatch.setattr(time, "sleep", lambda *_args, **_kwargs: None)


# =============================================================================
# Fake network and store
# =============================================================================


class FakeFetch:
    """
    In-process stand-in for RetryingFetcher.

    Routes map URLs to canned responses or transport failures; unknown URLs answer 404.
    Every call is recorded in `calls` as `(url, retry_count)`.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []
        self._lock = threading.Lock()

    def add(self, url, body=b"", status=200, headers=None, status_text="OK"):
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode("utf-8")
            headers = {"Content-Type": "application/json", **(headers or {})}
        elif isinstance(body, str):
            body = body.encode("utf-8")
        self.routes[url] = ResourceResponse(
            body=body, status=status, status_text=status_text, headers=headers or {}, url=url
        )

    def fail(self, url, message="connection refused"):
        self.routes[url] = message

    def remove(self, url):
        self.routes.pop(url, None)

    def count(self, url):
        with self._lock:
            return sum(1 for called, _retries in self.calls if called == url)

    def __call__(self, url, retry_count=1, headers=None):
        with self._lock:
            self.calls.append((url, retry_count))
        route = self.routes.get(url)
        if route is None:
            return Result.ok(
                ResourceResponse(body=b"not found", status=404, status_text="Not Found", url=url)
            )
        if isinstance(route, str):
            return Result.err(f"network error fetching {url}: {route}")
        return Result.ok(
            ResourceResponse(
                body=route.body,
                status=route.status,
                status_text=route.status_text,
                headers=dict(route.headers),
                url=route.url,
            )
        )


@pytest.fixture
def fake_fetch():
    """Provide a FakeFetch with no routes."""
    return FakeFetch()


@pytest.fixture
def memory_store():
    """Provide an empty InMemoryCache with a 1 TB quota."""
    return InMemoryCache()


@pytest.fixture
def make_manifest():
    """
    Provide a factory for raw ``cargo.json`` documents.

    The factory accepts `version`, `files` (list of (name, bytes) tuples or file dicts),
    `uuid`, `entry` and any extra top-level keys, and returns a dict in wire format.
    """

    def _make(version="0.1.0", files=None, uuid=VALID_UUID, entry=None, **extra):
        if files is None:
            files = [("index.js", 1000)]
        raw_files = [
            f if isinstance(f, dict) else {"name": f[0], "bytes": f[1], "invalidation": "default"}
            for f in files
        ]
        if entry is None:
            entry = raw_files[0]["name"] if raw_files else ""
        manifest = {
            "uuid": uuid,
            "crateVersion": "0.1.0",
            "name": "test-cargo",
            "version": version,
            "entry": entry,
            "files": raw_files,
            "invalidation": "default",
        }
        manifest.update(extra)
        return manifest

    return _make


@pytest.fixture
def serve_cargo(fake_fetch):
    """
    Provide a helper that publishes a manifest, its mini manifest and its files on fake_fetch.

    Each file body is `bytes` repetitions of "x" so sizes match the manifest.
    """

    def _serve(root, manifest, serve_files=True):
        root = root if root.endswith("/") else f"{root}/"
        fake_fetch.add(f"{root}cargo.json", manifest)
        fake_fetch.add(f"{root}cargo.mini.json", {"version": manifest["version"]})
        if serve_files:
            for f in manifest["files"]:
                fake_fetch.add(f"{root}{f['name']}", b"x" * f["bytes"])

    return _serve
