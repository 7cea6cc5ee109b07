"""Session gate parsing and fail-open behavior."""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from core.errors import GateInspectionFailure
from os_controller.session_gate import SessionGate, is_remote_session_name, parse_current_session

RDP_OUTPUT = """\
 USERNAME              SESSIONNAME        ID  STATE   IDLE TIME  LOGON TIME
>administrator         rdp-tcp#0           2  Active          .  12/12/2024 10:00
 operator              console             1  Active       none  12/11/2024 09:00
"""

CONSOLE_OUTPUT = """\
 USERNAME              SESSIONNAME        ID  STATE   IDLE TIME  LOGON TIME
>administrator         console             1  Active       none  12/12/2024 10:00
"""


def _completed(stdout: str, returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=["quser"], returncode=returncode, stdout=stdout, stderr=stderr)


def test_parse_current_session_reads_marked_line() -> None:
    assert parse_current_session(RDP_OUTPUT) == "rdp-tcp#0"
    assert parse_current_session(CONSOLE_OUTPUT) == "console"
    assert parse_current_session("no marker here\n") is None


def test_remote_session_names() -> None:
    assert is_remote_session_name("RDP-Tcp#3")
    assert not is_remote_session_name("console")
    assert not is_remote_session_name("")


def test_rdp_session_is_not_safe() -> None:
    with patch("os_controller.session_gate.subprocess.run", return_value=_completed(RDP_OUTPUT)):
        assert SessionGate().is_safe() is False


def test_console_session_is_safe() -> None:
    with patch("os_controller.session_gate.subprocess.run", return_value=_completed(CONSOLE_OUTPUT)):
        assert SessionGate().is_safe() is True


def test_disconnected_session_without_name_is_safe() -> None:
    output = " USERNAME  SESSIONNAME  ID  STATE\n>administrator  2  Disc\n"
    with patch("os_controller.session_gate.subprocess.run", return_value=_completed(output)):
        assert SessionGate().is_safe() is True


def test_missing_command_fails_open() -> None:
    gate = SessionGate(command=("definitely-not-a-real-quser-binary",))

    with pytest.raises(GateInspectionFailure):
        gate.current_session()
    assert gate.is_safe() is True


def test_timeout_fails_open() -> None:
    run = MagicMock(side_effect=subprocess.TimeoutExpired(cmd="quser", timeout=10))
    with patch("os_controller.session_gate.subprocess.run", run):
        assert SessionGate().is_safe() is True


def test_nonzero_exit_without_output_fails_open() -> None:
    completed = _completed("", returncode=1, stderr="No User exists for *")
    with patch("os_controller.session_gate.subprocess.run", return_value=completed):
        gate = SessionGate()
        with pytest.raises(GateInspectionFailure, match="No User exists"):
            gate.current_session()
        assert gate.is_safe() is True
