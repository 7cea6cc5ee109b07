"""Console/remote session detection via ``quser``.

``quser`` marks the session the caller runs in with ``>``::

     USERNAME              SESSIONNAME        ID  STATE   IDLE TIME  LOGON TIME
    >administrator         rdp-tcp#0           2  Active          .  12/12/2024 10:00

A session name containing ``rdp`` or ``tcp`` means a remote desktop client is
attached and a human may be looking at the screen, so synthetic input must
wait. Anything else (``console``, a disconnected session, no marker at all)
is considered safe to drive.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence

from core.errors import GateInspectionFailure

REMOTE_MARKERS = ("rdp", "tcp")


def parse_current_session(output: str) -> str | None:
    """Return the session name of the ``>``-marked line, or None."""
    for line in output.splitlines():
        stripped = line.strip()
        if not stripped.startswith(">"):
            continue
        parts = stripped.split()
        if len(parts) < 2:
            return ""
        return parts[1]
    return None


def is_remote_session_name(session_name: str) -> bool:
    name = session_name.lower()
    return any(marker in name for marker in REMOTE_MARKERS)


class SessionGate:
    """Answers whether the interactive session can be driven right now."""

    def __init__(self, command: Sequence[str] = ("quser",), timeout_seconds: float = 10.0) -> None:
        self.command = list(command)
        self.timeout_seconds = timeout_seconds
        self.logger = logging.getLogger("dash.session_gate")

    def current_session(self) -> str | None:
        """Run the inspection command and return the current session name."""
        try:
            completed = subprocess.run(
                self.command,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            raise GateInspectionFailure(f"Session inspection failed: {exc}") from exc
        if completed.returncode != 0 and not completed.stdout.strip():
            raise GateInspectionFailure(
                f"Session inspection exited with {completed.returncode}: {completed.stderr.strip()}"
            )
        return parse_current_session(completed.stdout)

    def is_safe(self) -> bool:
        """True when no remote session is attached.

        Inspection failures count as safe so that a broken ``quser`` cannot
        stall the queue forever.
        """
        try:
            session_name = self.current_session()
        except GateInspectionFailure as exc:
            self.logger.warning("%s; proceeding as console session.", exc)
            return True
        if session_name is None:
            return True
        if is_remote_session_name(session_name):
            self.logger.info("Remote session attached (%s).", session_name)
            return False
        return True
