"""Tests for the systemd service installer."""

from pathlib import Path
from unittest.mock import MagicMock, call

import pytest

from git_syncd import service


def test_render_unit_runs_daemon() -> None:
    unit = service.render_unit("/usr/bin/git-syncd-daemon")

    assert "ExecStart=/usr/bin/git-syncd-daemon" in unit
    assert "Restart=on-failure" in unit
    assert "WantedBy=default.target" in unit


def test_install_linux_writes_and_enables(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that the unit is written and enabled through systemctl.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    mock_run = mocker.patch("subprocess.run")
    unit_path = tmp_path / "systemd" / "user" / "com.example.service"

    service.install_linux(unit_path, "/bin/git-syncd-daemon")

    assert "ExecStart=/bin/git-syncd-daemon" in unit_path.read_text()
    assert mock_run.call_args_list == [
        call(["systemctl", "--user", "daemon-reload"], check=True),
        call(
            ["systemctl", "--user", "enable", "--now", "com.example.service"],
            check=True,
        ),
    ]


def test_uninstall_removes_unit(tmp_path: Path, mocker: MagicMock) -> None:
    mocker.patch("sys.platform", "linux")
    mock_run = mocker.patch("subprocess.run")
    unit_path = tmp_path / "git-syncd.service"
    unit_path.write_text("[Unit]\n")
    mocker.patch("git_syncd.service.get_unit_path", return_value=unit_path)

    service.uninstall()

    assert not unit_path.exists()
    assert mock_run.call_args_list[-1] == call(["systemctl", "--user", "daemon-reload"])


def test_install_on_macos_defers_to_homebrew(
    mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    mocker.patch("sys.platform", "darwin")
    mock_install = mocker.patch("git_syncd.service.install_linux")

    service.install()

    mock_install.assert_not_called()
    assert "brew services start git-syncd" in capsys.readouterr().out


def test_get_executable_missing(mocker: MagicMock) -> None:
    mocker.patch("shutil.which", return_value=None)

    with pytest.raises(SystemExit):
        service.get_executable()


def test_is_service_enabled(mocker: MagicMock) -> None:
    mocker.patch("sys.platform", "linux")
    mocker.patch("subprocess.run", return_value=MagicMock(returncode=0))

    assert service.is_service_enabled() is True
