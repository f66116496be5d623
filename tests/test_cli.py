import pytest

from bundlesync import cli
from bundlesync.download.client import ClientStatus
from bundlesync.download.interfaces import DownloadState, UpdateCheckResult
from bundlesync.download.quota import DiskInfo
from bundlesync.result import Result
from bundlesync.store.indices import CargoIndex, CargoIndexCollection

pytestmark = [pytest.mark.unit, pytest.mark.user_interface]

URL = "https://cdn.example.com/pong"


def _check(errors=None, available=True):
    check = UpdateCheckResult(
        id=URL,
        name="pong",
        request_root_url=f"{URL}/",
        storage_root_url=f"{URL}/",
        version="0.2.0",
        previous_version="0.1.0",
        previous_version_exists=True,
        errors=list(errors or []),
    )
    if available:
        check.new_manifest = object()
    return check


def _cargo(state="cached"):
    return CargoIndex(
        id=URL,
        name="pong",
        storage_root_url=f"{URL}/",
        request_root_url=f"{URL}/",
        bytes=2048,
        entry=f"{URL}/index.js",
        version="0.2.0",
        state=state,
    )


@pytest.fixture
def client(mocker):
    """Patch DownloadClient in the cli module and return the instance it builds."""
    client_cls = mocker.patch("bundlesync.cli.DownloadClient")
    instance = client_cls.return_value
    instance.origin = "http://localhost"
    instance.check_for_updates.return_value = _check()
    instance.get_cargo_index.return_value = _cargo()
    return instance


def test_no_command_prints_help(capsys):
    """Test running without a command prints usage."""
    cli.main([])
    assert "usage:" in capsys.readouterr().out


def test_version_command(mocker, capsys):
    """Test the 'version' command."""
    mocker.patch("bundlesync.cli.version", return_value="1.2.3")
    cli.main(["version"])
    assert capsys.readouterr().out.strip() == "bundlesync v1.2.3"


def test_version_unknown(mocker):
    """Test the version falls back to 'unknown' when not installed."""
    mocker.patch("bundlesync.cli.version", side_effect=cli.PackageNotFoundError)
    assert cli.get_bundlesync_version() == "unknown"


def test_check_command(client):
    """Test the 'check' command builds a reference from the arguments."""
    cli.main(["check", URL, "--storage-root", "https://games.example.com/pong", "--name", "pong"])
    reference = client.check_for_updates.call_args.args[0]
    assert reference.request_root_url == URL
    assert reference.storage_root_url == "https://games.example.com/pong"
    assert reference.name == "pong"
    client.close.assert_called_once()


def test_check_storage_root_defaults_to_url(client):
    """Test the storage root defaults to the request URL."""
    cli.main(["check", URL])
    assert client.check_for_updates.call_args.args[0].storage_root_url == URL


def test_check_command_errors_exit_1(client):
    """Test a check with errors exits with status 1."""
    client.check_for_updates.return_value = _check(errors=["status=404"])
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["check", URL])
    assert excinfo.value.code == 1
    client.close.assert_called_once()


def test_update_waits_for_background_download(client):
    """Test 'update' queues the download and waits for it."""
    client.execute_updates.return_value = Result.ok(ClientStatus.UPDATE_QUEUED)
    cli.main(["update", URL, "--title", "Pong"])
    client.execute_updates.assert_called_once_with(client.check_for_updates.return_value, "Pong")
    client.wait_for_download.assert_called_once_with(URL)


def test_update_failed_download_exits_1(client):
    """Test 'update' fails when the cargo does not end up cached."""
    client.execute_updates.return_value = Result.ok(ClientStatus.UPDATE_QUEUED)
    client.get_cargo_index.return_value = _cargo(state="update-failed")
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["update", URL])
    assert excinfo.value.code == 1


def test_update_no_wait(client):
    """Test '--no-wait' returns right after queueing."""
    client.execute_updates.return_value = Result.ok(ClientStatus.UPDATE_QUEUED)
    cli.main(["update", URL, "--no-wait"])
    client.wait_for_download.assert_not_called()


def test_update_rejected(client):
    """Test a refused update exits with status 1."""
    client.execute_updates.return_value = Result.err(
        "insufficient disk space", data=ClientStatus.INSUFFICIENT_DISK_SPACE
    )
    with pytest.raises(SystemExit):
        cli.main(["update", URL])


def test_update_up_to_date(client):
    """Test nothing is queued when no update is available."""
    client.check_for_updates.return_value = _check(available=False)
    cli.main(["update", URL])
    client.execute_updates.assert_not_called()
    client.install_now.assert_not_called()


def test_update_foreground(client):
    """Test '--foreground' installs through install_now."""
    client.install_now.return_value = Result.ok(ClientStatus.INSTALLED)
    cli.main(["update", URL, "--foreground"])
    client.install_now.assert_called_once()
    client.execute_updates.assert_not_called()


def test_update_foreground_and_no_wait_conflict(client):
    """Test '--foreground' and '--no-wait' are mutually exclusive."""
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["update", URL, "--foreground", "--no-wait"])
    assert excinfo.value.code == 2


def test_status_command(client, capsys):
    """Test 'status' lists cargos, download progress and disk usage."""
    client.get_cargo_indices.return_value = CargoIndexCollection(cargos=[_cargo("updating")])
    client.get_download_state.return_value = DownloadState(id=URL, downloaded=1024, total=2048)
    client.disk_info.return_value = DiskInfo(used=4096, total=8192, left=4096)

    cli.main(["status"])

    out = capsys.readouterr().out
    assert URL in out
    assert "state:   updating" in out
    assert "download: 1.00 KB / 2.00 KB" in out
    assert "Disk: 4.00 KB used of 8.00 KB" in out


def test_status_unknown_id(client):
    """Test 'status' with an unknown id exits with status 1."""
    client.get_cargo_indices.return_value = CargoIndexCollection()
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["status", "https://nope.example.com"])
    assert excinfo.value.code == 1


def test_retry_command(client):
    """Test 'retry' re-queues and waits."""
    client.retry_failed_downloads.return_value = Result.ok(ClientStatus.UPDATE_RETRY_QUEUED)
    cli.main(["retry", URL])
    client.retry_failed_downloads.assert_called_once_with(URL, "")
    client.wait_for_download.assert_called_once_with(URL)


def test_retry_foreground(client):
    """Test 'retry --foreground' resumes from the checkpoint."""
    client.resume_install.return_value = Result.ok(ClientStatus.INSTALLED)
    cli.main(["retry", URL, "--foreground"])
    client.resume_install.assert_called_once_with(URL)
    client.retry_failed_downloads.assert_not_called()


def test_retry_impossible(client):
    """Test a refused retry exits with status 1 without waiting."""
    client.retry_failed_downloads.return_value = Result.err(
        "update retry impossible", data=ClientStatus.UPDATE_RETRY_IMPOSSIBLE
    )
    with pytest.raises(SystemExit):
        cli.main(["retry", URL])
    client.wait_for_download.assert_not_called()


def test_delete_command(client):
    """Test 'delete' dispatches to delete_cargo."""
    client.delete_cargo.return_value = Result.ok(ClientStatus.DELETED)
    cli.main(["delete", URL])
    client.delete_cargo.assert_called_once_with(URL)


def test_cache_root_command(client):
    """Test 'cache-root' caches the offline fallback."""
    client.cache_root_document_fallback.return_value = Result.ok(ClientStatus.CACHED)
    cli.main(["cache-root"])
    client.cache_root_document_fallback.assert_called_once()


def test_invalid_config_exits(mocker, tmp_path):
    """Test an invalid configuration file exits with status 1 before building a client."""
    client_cls = mocker.patch("bundlesync.cli.DownloadClient")
    config_file = tmp_path / "bundlesync.yaml"
    config_file.write_text("unknown_key: 1\n", encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(config_file), "status"])
    assert excinfo.value.code == 1
    client_cls.assert_not_called()


def test_config_and_log_level_applied(mocker, client, tmp_path):
    """Test the configuration is loaded and the log level override applied."""
    config_file = tmp_path / "bundlesync.yaml"
    config_file.write_text(
        f"origin: https://games.example.com\nlog_dir: {tmp_path / 'logs'}\n", encoding="utf-8"
    )
    set_level = mocker.patch("bundlesync.cli.log_utils.set_log_level")
    add_file_logging = mocker.patch("bundlesync.cli.log_utils.add_file_logging")
    client.delete_cargo.return_value = Result.ok(ClientStatus.DELETED)

    cli.main(["--config", str(config_file), "--log-level", "debug", "delete", URL])

    set_level.assert_called_once_with("DEBUG")
    add_file_logging.assert_called_once()
    config = cli.DownloadClient.call_args.args[0]
    assert config.origin == "https://games.example.com"
