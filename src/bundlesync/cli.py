# src/bundlesync/cli.py

import argparse
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import List, Optional

from bundlesync import log_utils
from bundlesync.config import ClientConfig, load_config
from bundlesync.download.client import DownloadClient
from bundlesync.download.interfaces import CargoReference, UpdateCheckResult
from bundlesync.exceptions import BundleSyncError
from bundlesync.utils import friendly_bytes


def get_bundlesync_version() -> str:
    """
    Retrieve the installed bundlesync package version.

    Returns:
        str: The installed version string, or "unknown" if it cannot be determined.
    """
    try:
        return version("bundlesync")
    except PackageNotFoundError:
        return "unknown"


def _load_config_or_exit(path: Optional[str]) -> ClientConfig:
    try:
        config = load_config(path)
    except BundleSyncError as e:
        log_utils.logger.error(f"Invalid configuration: {e}")
        sys.exit(1)
    if config.log_dir:
        log_utils.add_file_logging(Path(config.log_dir), config.log_level)
    return config


def _reference_from_args(args: argparse.Namespace) -> CargoReference:
    return CargoReference(
        request_root_url=args.url,
        storage_root_url=args.storage_root or args.url,
        name=getattr(args, "name", "") or "",
    )


def _log_check_summary(check: UpdateCheckResult) -> None:
    """
    Log what an update check found.

    Parameters:
        check (UpdateCheckResult): Result of DownloadClient.check_for_updates.
    """
    logger = log_utils.logger
    if check.has_errors():
        for error in check.errors:
            logger.error(f"{check.request_root_url}: {error}")
        return
    if not check.update_available():
        logger.info(f"{check.name or check.id} is up to date ({check.previous_version})")
        return
    previous = check.previous_version if check.previous_version_exists else "not installed"
    logger.info(f"Update available for {check.name or check.id}: {previous} -> {check.version}")
    logger.info(
        f"{len(check.downloadable_resources)} file(s) to download "
        f"({friendly_bytes(check.bytes_to_download)}), "
        f"{len(check.resources_to_delete)} file(s) to delete"
    )


def _handle_check(client: DownloadClient, args: argparse.Namespace) -> int:
    check = client.check_for_updates(_reference_from_args(args))
    _log_check_summary(check)
    return 1 if check.has_errors() else 0


def _handle_update(client: DownloadClient, args: argparse.Namespace) -> int:
    check = client.check_for_updates(_reference_from_args(args))
    _log_check_summary(check)
    if check.has_errors():
        return 1
    if not check.update_available():
        return 0

    if args.foreground:

        def on_progress(completed: int, total: int) -> None:
            log_utils.logger.debug(
                f"Progress: {friendly_bytes(completed)} / {friendly_bytes(total)}"
            )

        outcome = client.install_now(check, on_progress=on_progress)
        if not outcome.success:
            log_utils.logger.error(f"Update failed: {outcome.error_message}")
            return 1
        log_utils.logger.info(f"Installed {check.name or check.id} {check.version}")
        return 0

    queued = client.execute_updates(check, args.title or "")
    if not queued.success:
        log_utils.logger.error(f"Update not started: {queued.error_message}")
        return 1
    if args.no_wait:
        return 0
    # Background downloads run on daemon threads, so the process has to wait for them
    client.wait_for_download(check.id)
    cargo = client.get_cargo_index(check.id)
    state = cargo.state if cargo else "unknown"
    log_utils.logger.info(f"{check.name or check.id} is now {state}")
    return 0 if state == "cached" else 1


def _handle_status(client: DownloadClient, args: argparse.Namespace) -> int:
    indices = client.get_cargo_indices()
    cargos = [c for c in indices.cargos if not args.id or c.id == args.id]
    if not cargos:
        log_utils.logger.info("No cargos installed." if not args.id else f"Cargo {args.id} not found.")
        return 0 if not args.id else 1
    for cargo in cargos:
        print(f"{cargo.id}")
        print(f"  name:    {cargo.name}")
        print(f"  version: {cargo.version}")
        print(f"  state:   {cargo.state}")
        print(f"  size:    {friendly_bytes(cargo.bytes)}")
        download = client.get_download_state(cargo.id)
        if download is not None and not download.finished:
            print(
                f"  download: {friendly_bytes(download.downloaded)} / {friendly_bytes(download.total)}"
            )
    info = client.disk_info()
    print(f"Disk: {friendly_bytes(info.used)} used of {friendly_bytes(info.total)}")
    return 0


def _handle_retry(client: DownloadClient, args: argparse.Namespace) -> int:
    if args.foreground:
        outcome = client.resume_install(args.id)
    else:
        outcome = client.retry_failed_downloads(args.id, args.title or "")
        if outcome.success and not args.no_wait:
            client.wait_for_download(args.id)
    if not outcome.success:
        log_utils.logger.error(f"Retry of {args.id} failed: {outcome.error_message}")
        return 1
    log_utils.logger.info(f"Retry of {args.id}: {outcome.data.value}")
    return 0


def _handle_delete(client: DownloadClient, args: argparse.Namespace) -> int:
    outcome = client.delete_cargo(args.id)
    if not outcome.success:
        log_utils.logger.error(f"Could not delete {args.id}: {outcome.error_message}")
        return 1
    return 0


def _handle_cache_root(client: DownloadClient, args: argparse.Namespace) -> int:
    outcome = client.cache_root_document_fallback()
    if not outcome.success:
        log_utils.logger.error(outcome.error_message)
        return 1
    log_utils.logger.info(f"Cached offline fallback for {client.origin}")
    return 0


HANDLERS = {
    "check": _handle_check,
    "update": _handle_update,
    "status": _handle_status,
    "retry": _handle_retry,
    "delete": _handle_delete,
    "cache-root": _handle_cache_root,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="bundlesync - versioned bundle cache and updater"
    )
    parser.add_argument("--config", help="Path to the configuration YAML file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Override the configured log level",
    )
    subparsers = parser.add_subparsers(dest="command")

    def add_cargo_arguments(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("url", help="Root URL the cargo is served from")
        sub.add_argument(
            "--storage-root",
            dest="storage_root",
            help="URL prefix the cargo is stored under (defaults to the request URL)",
        )
        sub.add_argument("--name", help="Display name of the cargo")

    # Command to check for updates
    check_parser = subparsers.add_parser("check", help="Check a cargo for updates")
    add_cargo_arguments(check_parser)

    # Command to install or update a cargo
    update_parser = subparsers.add_parser("update", help="Install or update a cargo")
    add_cargo_arguments(update_parser)
    update_parser.add_argument("--title", help="Title of the download")
    update_mode_group = update_parser.add_mutually_exclusive_group()
    update_mode_group.add_argument(
        "--foreground",
        action="store_true",
        help="Download in the foreground with whole-update retries",
    )
    update_mode_group.add_argument(
        "--no-wait",
        dest="no_wait",
        action="store_true",
        help="Queue the background download and exit",
    )

    # Command to list installed cargos
    status_parser = subparsers.add_parser("status", help="Show installed cargos")
    status_parser.add_argument("id", nargs="?", help="Only show this cargo")

    # Command to retry a failed update
    retry_parser = subparsers.add_parser("retry", help="Retry a failed or aborted update")
    retry_parser.add_argument("id", help="Cargo id")
    retry_parser.add_argument("--title", help="Title of the download")
    retry_mode_group = retry_parser.add_mutually_exclusive_group()
    retry_mode_group.add_argument(
        "--foreground",
        action="store_true",
        help="Resume a failed foreground update from its checkpoint",
    )
    retry_mode_group.add_argument(
        "--no-wait",
        dest="no_wait",
        action="store_true",
        help="Queue the retry and exit",
    )

    # Command to delete a cargo
    delete_parser = subparsers.add_parser("delete", help="Delete a cargo's files")
    delete_parser.add_argument("id", help="Cargo id")

    # Command to cache the origin's root document as offline fallback
    subparsers.add_parser(
        "cache-root", help="Cache the origin's root document as the offline fallback page"
    )

    # Command to display version
    subparsers.add_parser("version", help="Display bundlesync version")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """
    Entry point for the bundlesync command-line interface.

    Parses command-line arguments, loads the configuration and dispatches the
    subcommands check, update, status, retry, delete, cache-root and version.
    Exits with status 1 when the requested operation fails.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return
    if args.command == "version":
        print(f"bundlesync v{get_bundlesync_version()}")
        return

    config = _load_config_or_exit(args.config)
    log_utils.set_log_level(args.log_level or config.log_level)

    client = DownloadClient(config)
    try:
        exit_code = HANDLERS[args.command](client, args)
    finally:
        client.close()
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
