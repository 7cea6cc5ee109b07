"""Structured JSONL audit trail of automation runs."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path


@dataclass
class AuditRecord:
    action: str
    identifier: str
    outcome: str  # success / failed / timeout
    reason: str = ""
    duration_seconds: float | None = None
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())


class AuditLogger:
    """Appends one JSON line per finished run.

    The file survives restarts, which the in-memory queue does not, so it is
    the only place to look up what happened to an earlier request.
    """

    def __init__(self, log_path: Path) -> None:
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger("dash.audit")
        self._write_lock = threading.Lock()

    def log(
        self,
        action: str,
        identifier: str,
        outcome: str,
        reason: str = "",
        duration_seconds: float | None = None,
    ) -> AuditRecord:
        """Append a record and return it."""
        record = AuditRecord(
            action=action,
            identifier=identifier,
            outcome=outcome,
            reason=reason,
            duration_seconds=round(duration_seconds, 3) if duration_seconds is not None else None,
        )
        line = json.dumps(asdict(record), ensure_ascii=True)
        with self._write_lock:
            with self.log_path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        level = logging.INFO if outcome == "success" else logging.WARNING
        self.logger.log(level, "%s %s: %s %s", action, identifier, outcome, reason)
        return record

    def read_recent(self, limit: int = 20) -> list[dict]:
        """Return the last ``limit`` records, oldest first."""
        if not self.log_path.exists():
            return []
        lines = self.log_path.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines[-limit:] if line.strip()]
