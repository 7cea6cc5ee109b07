"""Request bodies accepted by the HTTP API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ApplyChangesRequest(BaseModel):
    """``{"identifier": ...}``; the dashboard's older ``iggId`` key is accepted too."""

    model_config = ConfigDict(populate_by_name=True)

    identifier: str | None = Field(default=None, alias="iggId")


class SettingPatchRequest(BaseModel):
    path: str | None = None
    value: Any = None
