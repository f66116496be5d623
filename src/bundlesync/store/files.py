import json
import os
import tempfile
from typing import Any, Callable, Optional

from bundlesync.log_utils import logger


def _atomic_write(
    file_path: str,
    writer_func: Callable[[Any], None],
    suffix: str = ".tmp",
    binary: bool = False,
) -> bool:
    """
    Write data to a file atomically by writing to a temporary file and atomically replacing the target on success.

    Parameters:
        file_path (str): Destination file path to be written.
        writer_func (Callable[[Any], None]): Callable that receives an open file object and writes the desired content to it.
        suffix (str): Suffix to use for the temporary file name (default ".tmp").
        binary (bool): Open the temporary file in binary mode instead of UTF-8 text mode.

    Returns:
        bool: `True` if the temporary write and atomic replace succeeded, `False` on any error.
    """
    parent = os.path.dirname(file_path)
    try:
        if parent:
            os.makedirs(parent, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(dir=parent or None, prefix="tmp-", suffix=suffix)
    except OSError as e:
        logger.error(f"Could not create temporary file for {file_path}: {e}")
        return False

    try:
        if binary:
            with os.fdopen(temp_fd, "wb") as temp_f:
                writer_func(temp_f)
        else:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as temp_f:
                writer_func(temp_f)
        os.replace(temp_path, file_path)
    except (UnicodeEncodeError, TypeError, ValueError, OSError) as e:
        logger.error(f"Could not write to {file_path}: {e}")
        return False
    finally:
        if os.path.exists(temp_path):
            try:
                os.remove(temp_path)
            except OSError:
                pass
    return True


def _atomic_write_bytes(file_path: str, data: bytes) -> bool:
    return _atomic_write(file_path, lambda f: f.write(data), suffix=".part", binary=True)


def _atomic_write_json(file_path: str, data: dict) -> bool:
    """
    Atomically write the given dictionary to the target file as pretty-printed JSON.

    Returns:
        bool: `True` if the file was written and moved into place successfully, `False` on error.
    """
    return _atomic_write(
        file_path, lambda f: json.dump(data, f, indent=2), suffix=".json"
    )


def _read_json(file_path: str) -> Optional[Any]:
    """
    Read JSON from disk, returning None when the file is missing or unreadable.
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, ValueError) as e:
        logger.debug(f"Could not read JSON from {file_path}: {e}")
        return None


def _remove_quietly(file_path: str) -> bool:
    try:
        os.remove(file_path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Could not remove {file_path}: {e}")
        return False
