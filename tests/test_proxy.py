"""Tests for the supervised Claude Max proxy process."""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest
import requests

from errors import ProviderError
from proxy import PACKAGE_NAME, ClaudeMaxProxy


def _healthy(status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    return resp


def _process() -> MagicMock:
    process = MagicMock()
    process.poll.return_value = None
    process.returncode = 0
    return process


# ---------------------------------------------------------------
# Health / install checks
# ---------------------------------------------------------------

@patch("proxy.requests.get")
def test_is_running_checks_models_endpoint(mock_get: MagicMock) -> None:
    mock_get.return_value = _healthy()
    proxy = ClaudeMaxProxy(port=4100)

    assert proxy.is_running() is True
    assert mock_get.call_args.args[0] == "http://localhost:4100/v1/models"


@patch("proxy.requests.get")
def test_is_running_false_on_server_error_or_refused(mock_get: MagicMock) -> None:
    proxy = ClaudeMaxProxy()

    mock_get.return_value = _healthy(502)
    assert proxy.is_running() is False

    mock_get.side_effect = requests.ConnectionError("refused")
    assert proxy.is_running() is False


@patch("proxy.subprocess.run")
def test_check_installed(mock_run: MagicMock) -> None:
    mock_run.return_value = subprocess.CompletedProcess([], 0, stdout=f"/usr/lib\n`-- {PACKAGE_NAME}@1.0.0\n")
    assert ClaudeMaxProxy().check_installed() is True

    mock_run.return_value = subprocess.CompletedProcess([], 1, stdout="`-- (empty)\n")
    assert ClaudeMaxProxy().check_installed() is False

    mock_run.side_effect = FileNotFoundError("npm")
    assert ClaudeMaxProxy().check_installed() is False


@patch("proxy.subprocess.run")
def test_install_failure_raises(mock_run: MagicMock) -> None:
    mock_run.side_effect = subprocess.CalledProcessError(1, ["npm"])

    with pytest.raises(ProviderError, match="Failed to install"):
        ClaudeMaxProxy().install()


# ---------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------

@patch("proxy.requests.get")
@patch("proxy.subprocess.Popen")
def test_start_spawns_and_health_checks(mock_popen: MagicMock, mock_get: MagicMock) -> None:
    mock_popen.return_value = _process()
    mock_get.return_value = _healthy()
    proxy = ClaudeMaxProxy(port=3456, startup_delay_s=0)

    proxy.start()

    assert mock_popen.call_args.args[0] == [PACKAGE_NAME, "--port", "3456"]
    mock_get.assert_called_once()


@patch("proxy.requests.get")
@patch("proxy.subprocess.Popen")
def test_start_twice_keeps_single_process(mock_popen: MagicMock, mock_get: MagicMock) -> None:
    mock_popen.return_value = _process()
    mock_get.return_value = _healthy()
    proxy = ClaudeMaxProxy(startup_delay_s=0)

    proxy.start()
    proxy.start()

    assert mock_popen.call_count == 1


@patch("proxy.requests.get")
@patch("proxy.subprocess.Popen")
def test_failed_health_check_stops_child(mock_popen: MagicMock, mock_get: MagicMock) -> None:
    process = _process()
    mock_popen.return_value = process
    mock_get.side_effect = requests.ConnectionError("refused")
    proxy = ClaudeMaxProxy(startup_delay_s=0)

    with pytest.raises(ProviderError, match="health check failed"):
        proxy.start()
    process.terminate.assert_called_once()


@patch("proxy.subprocess.Popen")
def test_spawn_failure_raises(mock_popen: MagicMock) -> None:
    mock_popen.side_effect = FileNotFoundError(PACKAGE_NAME)

    with pytest.raises(ProviderError, match="Failed to start"):
        ClaudeMaxProxy(startup_delay_s=0).start()


@patch("proxy.requests.get")
@patch("proxy.subprocess.Popen")
def test_stop_kills_when_terminate_times_out(mock_popen: MagicMock, mock_get: MagicMock) -> None:
    process = _process()
    process.wait.side_effect = [subprocess.TimeoutExpired(["proxy"], 5), 0]
    mock_popen.return_value = process
    mock_get.return_value = _healthy()
    proxy = ClaudeMaxProxy(startup_delay_s=0)
    proxy.start()

    proxy.stop()

    process.terminate.assert_called_once()
    process.kill.assert_called_once()


def test_stop_without_child_is_noop() -> None:
    ClaudeMaxProxy().stop()


# ---------------------------------------------------------------
# ensure_running
# ---------------------------------------------------------------

@patch("proxy.subprocess.Popen")
@patch("proxy.requests.get")
def test_ensure_running_reuses_existing_server(mock_get: MagicMock, mock_popen: MagicMock) -> None:
    mock_get.return_value = _healthy()

    assert ClaudeMaxProxy().ensure_running() is True
    mock_popen.assert_not_called()


@patch("proxy.subprocess.run")
@patch("proxy.requests.get")
def test_ensure_running_when_not_installed(mock_get: MagicMock, mock_run: MagicMock) -> None:
    mock_get.side_effect = requests.ConnectionError("refused")
    mock_run.return_value = subprocess.CompletedProcess([], 1, stdout="")

    assert ClaudeMaxProxy().ensure_running() is False
