"""JSON settings documents stored in the bot's config tree.

Layout: ``<root>/<identifier>/settings.json`` and
``<root>/<identifier>/banksettings.json``. The documents belong to the bot;
this module treats them as opaque JSON apart from dot-path patches.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from core.errors import NotFoundError, ValidationError

SETTINGS_FILE = "settings.json"
BANK_SETTINGS_FILE = "banksettings.json"

logger = logging.getLogger("dash.settings_store")


def update_nested_property(document: dict[str, Any], path: str, value: Any) -> dict[str, Any]:
    """Return a copy of ``document`` with ``value`` set at dot-delimited ``path``.

    Missing or non-object intermediate keys are replaced by empty objects.
    """
    keys = path.split(".") if path else []
    if not keys or any(not key for key in keys):
        raise ValidationError(f"Invalid settings path: {path!r}")
    result = copy.deepcopy(document)
    current = result
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value
    return result


class SettingsStore:
    """Reads and writes per-identifier settings documents under ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _folder(self, identifier: str) -> Path:
        if not identifier or identifier in {".", ".."} or any(sep in identifier for sep in ("/", "\\")):
            raise ValidationError(f"Invalid IGG ID: {identifier!r}")
        return self.root / identifier

    def exists(self, identifier: str) -> bool:
        try:
            return self._folder(identifier).is_dir()
        except ValidationError:
            return False

    def read_settings(self, identifier: str) -> dict[str, Any]:
        return self._read(identifier, SETTINGS_FILE)

    def write_settings(self, identifier: str, document: dict[str, Any]) -> None:
        self._write(identifier, SETTINGS_FILE, document)

    def patch(self, identifier: str, path: str, value: Any) -> dict[str, Any]:
        """Set one nested value in settings.json and return the new document."""
        updated = update_nested_property(self.read_settings(identifier), path, value)
        self.write_settings(identifier, updated)
        return updated

    def read_bank_settings(self, identifier: str) -> dict[str, Any]:
        return self._read(identifier, BANK_SETTINGS_FILE)

    def write_bank_settings(self, identifier: str, document: dict[str, Any]) -> None:
        self._write(identifier, BANK_SETTINGS_FILE, document)

    def patch_bank(self, identifier: str, path: str, value: Any) -> dict[str, Any]:
        updated = update_nested_property(self.read_bank_settings(identifier), path, value)
        self.write_bank_settings(identifier, updated)
        return updated

    def _read(self, identifier: str, filename: str) -> dict[str, Any]:
        path = self._folder(identifier) / filename
        if not path.is_file():
            raise NotFoundError(f"{filename} not found for IGG ID {identifier}")
        with path.open("r", encoding="utf-8-sig") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValidationError(f"{filename} for IGG ID {identifier} is not a JSON object")
        return data

    def _write(self, identifier: str, filename: str, document: dict[str, Any]) -> None:
        if not isinstance(document, dict):
            raise ValidationError("Settings document must be a JSON object")
        folder = self._folder(identifier)
        if not folder.is_dir():
            raise NotFoundError(f"Settings folder not found for IGG ID {identifier}")
        target = folder / filename
        fd, tmp_name = tempfile.mkstemp(prefix=f".{filename}.", dir=folder)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_name, target)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info("Wrote %s for IGG ID %s", filename, identifier)
