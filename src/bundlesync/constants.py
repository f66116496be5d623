"""
Constants and configuration values for bundlesync.

This module contains the well-known document names, header names, limits,
timeouts, and other constants used throughout the application.
"""

# Manifest documents, relative to a cargo's request or storage root
MANIFEST_NAME = "cargo.json"
MINI_MANIFEST_NAME = "cargo.mini.json"

# Manifest field defaults
NULL_FIELD = "none"
NULL_MANIFEST_VERSION = "0.0.0"
UUID_LENGTH = 35
LATEST_CRATE_VERSION = "0.1.0"
ALL_CRATE_VERSIONS = frozenset({"0.1.0"})
DEFAULT_CARGO_NAME = "unspecified-name"
DEFAULT_REPO_TYPE = "other"

# Invalidation strategies
INVALIDATION_PURGE = "purge"
INVALIDATION_URL_DIFF = "url-diff"
INVALIDATION_DEFAULT = "default"

# Semantic versions
MAX_VERSION_LENGTH = 256
PRERELEASE_TAGS = ("prealpha", "alpha", "beta", "rc")

# Durable index documents
CARGO_INDICES_NAME = "__cargo-indices__.json"
DOWNLOAD_INDICES_NAME = "__download-indices__.json"
ERROR_DOWNLOAD_INDEX_NAME = "__err-download-index__.json"
FAILED_UPDATE_CHECKPOINT_NAME = "__failed-update__.json"
OFFLINE_PAGE_NAME = "offline.html"

# Cargo states
STATE_UPDATING = "updating"
STATE_CACHED = "cached"
STATE_UPDATE_FAILED = "update-failed"
STATE_UPDATE_ABORTED = "update-aborted"
STATE_DELETED = "deleted"
RETRYABLE_STATES = frozenset({STATE_UPDATE_FAILED, STATE_UPDATE_ABORTED})

# Background download results
FETCH_RESULT_SUCCESS = "success"
FETCH_RESULT_ABORT = "abort"
FETCH_RESULT_FAIL = "fail"

# Download progress phases
PROGRESS_DOWNLOADING = "downloading"
PROGRESS_INSTALLING = "installing"
PROGRESS_READY = "ready"
PROGRESS_FAILED = "failed"
PROGRESS_POLL_INTERVAL = 2.0  # seconds

# Cached response headers
CACHE_HIT_HEADER = "X-Cache-Hit"
CACHE_HIT_VALUE = "SW HIT"
NETWORK_ERROR_HEADER = "X-Network-Error"
CACHE_POLICY_HEADER = "X-Cache-Policy"
CROSS_ORIGIN_HEADERS = {
    "Cross-Origin-Embedder-Policy": "require-corp",
    "Cross-Origin-Opener-Policy": "same-origin",
}
DEFAULT_MIME_TYPE = "text/plain"
JSON_MIME_TYPE = "application/json"

# Request policies
POLICY_NETWORK_ONLY = "network-only"
POLICY_NETWORK_FIRST = "network-first"
POLICY_CACHE_FIRST = "cache-first"

# Network settings (seconds)
DEFAULT_REQUEST_TIMEOUT = 30

# Retry settings
MANIFEST_RETRY_COUNT = 3
ASSET_RETRY_COUNT = 3
UPDATE_ATTEMPTS = 3

# Worker pools
DEFAULT_MAX_WORKERS = 4
RECONCILE_BATCH_SIZE = 30

# Storage budget
SYSTEM_RESERVED_BYTES = 200 * 1024 * 1024  # 200 MB
# Headroom factor applied to a shortfall when asking the host to free space
DISK_CLEAR_MULTIPLIER = 3

# Configuration
APP_NAME = "bundlesync"
CONFIG_FILE_NAME = "bundlesync.yaml"

# Logging
LOGGER_NAME = "bundlesync"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
LOG_FILE_NAME = "bundlesync.log"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT = 5
LOG_LEVEL_ENV_VAR = "BUNDLESYNC_LOG_LEVEL"
