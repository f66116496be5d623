"""
Configuration loading for bundlesync.

Configuration lives in a YAML file under the platform config directory
(``bundlesync.yaml``). It is parsed into a ClientConfig which is passed
explicitly to every component that needs it; nothing reads configuration from
module globals.
"""

import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Optional

import platformdirs
import yaml

from bundlesync.constants import (
    APP_NAME,
    CONFIG_FILE_NAME,
    DEFAULT_MAX_WORKERS,
    DEFAULT_REQUEST_TIMEOUT,
    RECONCILE_BATCH_SIZE,
    SYSTEM_RESERVED_BYTES,
    UPDATE_ATTEMPTS,
)
from bundlesync.exceptions import ConfigurationError
from bundlesync.log_utils import logger


def _default_cache_dir() -> str:
    return platformdirs.user_cache_dir(APP_NAME)


def default_config_path() -> str:
    """
    Return the platform-appropriate path of the bundlesync configuration file.

    Returns:
        str: `<user_config_dir>/bundlesync.yaml`.
    """
    return os.path.join(platformdirs.user_config_dir(APP_NAME), CONFIG_FILE_NAME)


@dataclass
class ClientConfig:
    """Runtime settings shared by the download client and its components."""

    origin: str = "http://localhost"
    """Origin under which index documents are stored"""

    cache_dir: str = field(default_factory=_default_cache_dir)
    """Directory backing the filesystem store"""

    quota_bytes: Optional[int] = None
    """Storage quota; None means the free space of the cache volume"""

    reserved_bytes: int = SYSTEM_RESERVED_BYTES
    """Bytes withheld from the quota for the host system"""

    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    """Per-request network timeout in seconds"""

    update_attempts: int = UPDATE_ATTEMPTS
    """Whole-update attempts made by the orchestrator"""

    max_workers: int = DEFAULT_MAX_WORKERS
    """Size of the worker pools used for downloads and reconciliation"""

    batch_size: int = RECONCILE_BATCH_SIZE
    """Number of completed records committed at once by the reconciler"""

    concurrent_downloads: bool = False
    """Persist asset lists with a worker pool instead of sequentially"""

    log_level: str = "INFO"
    log_dir: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientConfig":
        """
        Build a ClientConfig from a mapping, validating keys and value types.

        Parameters:
            data (Dict[str, Any]): Parsed configuration values. Keys are matched case-insensitively.

        Returns:
            ClientConfig: The populated configuration.

        Raises:
            ConfigurationError: If an unknown key is present or a value has the wrong type.
        """
        known = {f.name: f for f in fields(cls)}
        values: Dict[str, Any] = {}
        for raw_key, value in (data or {}).items():
            key = str(raw_key).lower()
            if key not in known:
                raise ConfigurationError(
                    f"Unknown configuration key: {raw_key}",
                    details=f"valid keys: {', '.join(sorted(known))}",
                )
            values[key] = _coerce(key, value)
        config = cls(**values)
        if config.max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")
        if config.batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1")
        if config.update_attempts < 1:
            raise ConfigurationError("update_attempts must be at least 1")
        return config


_INT_KEYS = {"reserved_bytes", "update_attempts", "max_workers", "batch_size"}
_OPTIONAL_INT_KEYS = {"quota_bytes"}


def _coerce(key: str, value: Any) -> Any:
    try:
        if key in _INT_KEYS:
            return int(value)
        if key in _OPTIONAL_INT_KEYS:
            return None if value is None else int(value)
        if key == "request_timeout":
            return float(value)
        if key == "concurrent_downloads":
            if isinstance(value, str):
                return value.strip().lower() in {"1", "true", "yes", "on"}
            return bool(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid value for {key}: {value!r}", details=str(e)
        ) from e
    if value is None:
        return None
    return str(value)


def load_config(path: Optional[str] = None) -> ClientConfig:
    """
    Load the bundlesync configuration YAML.

    If `path` is None the platform config location is used. A missing file is not an
    error: defaults are returned.

    Parameters:
        path (Optional[str]): Explicit configuration file path.

    Returns:
        ClientConfig: Parsed configuration, or defaults when no file exists.

    Raises:
        ConfigurationError: If the file cannot be read, is not valid YAML, or holds invalid values.
    """
    config_path = path or default_config_path()
    if not os.path.exists(config_path):
        logger.debug(f"No configuration file at {config_path}; using defaults")
        return ClientConfig()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Could not read configuration file {config_path}", details=str(e)
        ) from e

    if data is None:
        return ClientConfig()
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration file {config_path} must contain a mapping",
            details=f"got {type(data).__name__}",
        )
    logger.debug(f"Loaded configuration from {config_path}")
    return ClientConfig.from_dict(data)


def save_config(config: ClientConfig, path: Optional[str] = None) -> str:
    """
    Write a configuration to YAML.

    Returns:
        str: The path written.
    """
    config_path = path or default_config_path()
    os.makedirs(os.path.dirname(config_path) or ".", exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config.to_dict(), f, sort_keys=False)
    return config_path
